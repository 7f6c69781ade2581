# relay_service/protocol/prompts.py
"""
System prompt construction.

The prompt is assembled from:
1. A persona base prompt (unknown personas fall back to "default")
2. A notice when web search is switched off for the request
3. A response-style modifier
4. Per-user blocks: skills, profile, remembered facts, other conversations

Each block is added only when the user actually supplied something for it.
"""
from typing import Dict, List, Optional

from relay_service.core.types import ProfileContext

_TOOL_GUIDANCE = """Tool usage instructions:
- ONLY use tools when REQUIRED or explicitly asked. Do NOT call tools for general chat, follow-ups, or when you can answer from knowledge.
- When the user clearly asks for real-time info (flights, weather, search, hotel availability, etc.), THEN use the tool.
- Use at most 2-3 tool calls per turn. After getting tool results, write your final answer directly; do not chain more tool calls.
- When searching for flights: use google_search to find IATA codes if needed (e.g. Dammam=DMM, Frankfurt=FRA), and ALWAYS pass outbound_date and return_date in YYYY-MM-DD format.
- CRITICAL for search_flights, search_hotels, get_current_weather: results appear as cards in the UI. Reply with ONLY 1-2 short sentences. NEVER list airlines, hotels, times, prices, temperatures or conditions; the user already sees them.
- If a tool returns an error, briefly say what went wrong and suggest the user try again or rephrase.
- When the user asks you to create something they can use (a webpage, a script, a document), use create_artifact with a clear title, a type (code, document, or html) and the full content.
- Use web_fetch when the user wants you to read a webpage, doc, or API response."""

PERSONA_PROMPTS: Dict[str, str] = {
    "default": f"""You are Relay, a capable and friendly assistant.

Your core principles:
- Be proactive: if a request needs a tool and you are missing a detail you can look up (like an airport code), look it up instead of asking.
- Be helpful: give accurate, useful and complete answers.
- Be honest: acknowledge uncertainty and correct mistakes.
- Be natural: write like a person, not a program. Avoid filler words and never describe yourself as a language model.
- Use standard Markdown formatting and no emojis.

{_TOOL_GUIDANCE}""",
    "professional": "You are Relay, a professional assistant. Maintain formal language, structured responses, and focus on clarity and accuracy.",
    "casual": "You are Relay, a friendly assistant. Be conversational, use occasional emoji, and maintain an approachable tone while still being helpful.",
    "technical": "You are Relay, a technical assistant. Focus on precision, include code examples, and use technical terminology where appropriate.",
    "creative": "You are Relay, a creative assistant. Be expressive, think outside the box, and help with creative projects with enthusiasm.",
    "educational": "You are Relay, an educational assistant. Explain concepts clearly with examples, use analogies, and encourage learning through questions.",
    "deep-research": """You are Relay Deep Research. Your sole purpose is to provide comprehensive, evidence-based answers.
- You MUST use the google_search tool extensively to verify facts and gather information.
- Verify multiple sources before answering.
- Provide deep analysis, not just surface-level summaries.
- Cite your sources clearly.""",
    "reasoner": """You are Relay Reasoner. Your goal is to solve complex problems through rigorous step-by-step thinking.
- Break every problem down into smaller components.
- Show your work: explain your thought process clearly.
- Use the calculator tool for any computation to ensure accuracy.
- Double-check your logic before concluding.""",
}

RESPONSE_STYLE_MODIFIERS: Dict[str, str] = {
    "normal": "",
    "learning": "Response style: Learning mode. Explain concepts step-by-step, use analogies, and encourage understanding through examples. Be educational and patient.",
    "concise": "Response style: Be concise and brief. Get to the point quickly. Avoid unnecessary elaboration.",
    "explanatory": "Response style: Be thorough and explanatory. Provide detailed explanations with examples. Cover nuances and edge cases.",
    "formal": "Response style: Use formal language. Be professional, structured, and precise. Avoid casual expressions.",
}

WEB_SEARCH_DISABLED = (
    "CRITICAL: Web search is DISABLED. Do NOT use the google_search tool. "
    "Answer only from your training knowledge."
)


def _numbered(items: List[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))


def _clean(items: Optional[List[str]]) -> List[str]:
    return [s.strip() for s in (items or []) if isinstance(s, str) and s.strip()]


def _profile_block(ctx: ProfileContext) -> Optional[str]:
    parts = []
    if ctx.profile_name:
        parts.append(f"Full name: {ctx.profile_name}")
    if ctx.preferred_name:
        parts.append(f"Preferred name / what Relay should call you: {ctx.preferred_name}")
    if ctx.work_function:
        parts.append(f"What best describes their work: {ctx.work_function}")
    if ctx.personal_preferences:
        parts.append(f"Personal preferences to consider in responses: {ctx.personal_preferences}")
    if not parts:
        return None
    return (
        "User profile - USE THIS IN EVERY RESPONSE:\n"
        + "\n".join(parts)
        + "\n\nAddress the user by their preferred name when natural. "
        "Reference their work and preferences when relevant."
    )


def _cross_chat_block(ctx: ProfileContext) -> Optional[str]:
    lines = []
    for item in ctx.cross_chat_context or []:
        title = (item.title or "").strip()
        if not title:
            continue
        preview = (item.last_preview or "").strip()
        lines.append(f"- {title}: {preview[:200]}" if preview else f"- {title}")
    if not lines:
        return None
    return "Recent conversations with this user (for context only; do not mention unless relevant):\n" + "\n".join(lines)


def build_system_prompt(persona: Optional[str] = None, ctx: Optional[ProfileContext] = None) -> str:
    """
    Build the system message for one request.

    Args:
        persona: Persona key (see PERSONA_PROMPTS); unknown or empty means "default"
        ctx: Per-user context; None means no user-specific blocks

    Returns:
        Complete system prompt string
    """
    blocks = [PERSONA_PROMPTS.get(persona or "default") or PERSONA_PROMPTS["default"]]
    if ctx is None:
        return blocks[0]

    if ctx.web_search_enabled is False:
        blocks.append(WEB_SEARCH_DISABLED)
    style = RESPONSE_STYLE_MODIFIERS.get(ctx.response_style or "normal")
    if style:
        blocks.append(style)
    skills = _clean(ctx.skills)
    if skills:
        blocks.append("User-defined skills to follow in every response:\n" + _numbered(skills))
    profile = _profile_block(ctx)
    if profile:
        blocks.append(profile)
    facts = _clean(ctx.memory_facts)
    if facts:
        blocks.append("Things to remember (use across conversations):\n" + _numbered(facts))
    cross = _cross_chat_block(ctx)
    if cross:
        blocks.append(cross)

    return "\n\n".join(blocks)
