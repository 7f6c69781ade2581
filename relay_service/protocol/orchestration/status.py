"""
Human-readable progress text and structured extras for tool rounds.

status_label() is shown while a tool runs, result_summary() after it returns,
and structured_events() pulls card payloads and artifacts out of the result.
"""

from typing import Any, Dict, List, Optional

from relay_service.core.types import Event, StreamEvent

FLIGHTS_URL = "https://www.google.com/travel/flights"
HOTELS_URL = "https://www.google.com/travel/hotels"

# tool name -> payload kind rendered as cards by the client
CARD_TOOLS = {
    "search_flights": "flights",
    "search_hotels": "hotels",
    "get_current_weather": "weather",
}


def _clip(value: str, size: int) -> str:
    return value[:size] + ("…" if len(value) > size else "")


def _str_arg(args: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def status_label(name: str, args: Dict[str, Any]) -> str:
    args = args or {}
    if name == "google_search":
        q = _str_arg(args, "query", "q")
        if q:
            return f'Let me search the web for "{_clip(q, 60)}". I\'ll find the most relevant and up-to-date information.'
        return "Searching the web for relevant information to answer your question."
    if name == "google_image_search":
        q = _str_arg(args, "query", "q")
        return f'Looking for images of "{_clip(q, 60)}".' if q else "Looking for images."
    if name == "web_fetch":
        url = _str_arg(args, "url")
        if url:
            return f"I'll read that page at {_clip(url, 50)} to get the details you need."
        return "Fetching the webpage to extract the information."
    if name == "search_flights":
        origin = _str_arg(args, "departure_id", "origin")
        dest = _str_arg(args, "arrival_id", "destination")
        if origin and dest:
            return f"Let me search for flights from {origin} to {dest}. I'll check prices and availability across airlines."
        return "Looking up flights for your trip. I'll compare prices and schedules."
    if name == "search_hotels":
        loc = _str_arg(args, "q", "location", "city")
        if loc:
            return f"Searching for hotels in {loc}. I'll find the best options that match your criteria."
        return "Searching for hotels that match your criteria. Let me compare the options."
    if name == "get_current_weather":
        loc = _str_arg(args, "location", "city")
        if loc:
            return f"Checking the current weather in {loc} and the forecast for the coming days."
        return "Getting the current weather conditions and forecast."
    if name == "get_world_time":
        tz = _str_arg(args, "timezone")
        return f"Checking the current time in {tz}." if tz else "Checking the current time."
    if name == "create_artifact":
        title = _str_arg(args, "title")
        kind = _str_arg(args, "type") or "document"
        if title:
            return f'Creating "{title}" as a {kind}. I\'ll build this step by step.'
        return f"Building your {kind}. Give me a moment to put this together."
    if name == "calculator":
        return "Running the calculation. Let me crunch those numbers."
    return "Working on that. Give me a moment."


def result_summary(name: str, result: Any) -> Optional[str]:
    """Short follow-up line once a tool has answered; None for errors or nothing to say."""
    if not isinstance(result, dict) or result.get("error"):
        return None
    if name == "google_search":
        n = len(result.get("results") or [])
        return f"Found {n} results. Let me format the best information for you." if n else None
    if name == "search_flights":
        n = len(result.get("flights") or [])
        return f"Found {n} flight options. Let me show you the best ones." if n else None
    if name == "search_hotels":
        n = len(result.get("hotels") or [])
        return f"Found {n} hotels. Let me highlight the top choices." if n else None
    if name == "get_current_weather":
        return "Got the weather data. Here's what I found."
    if name == "web_fetch":
        return "Finished reading the page. Let me summarize the key points."
    return None


def structured_events(name: str, result: Any) -> List[Event]:
    """Card payloads (flights, hotels, weather) and artifacts carried by a successful result."""
    if not isinstance(result, dict) or result.get("error"):
        return []
    events: List[Event] = []
    if name == "create_artifact" and result.get("title"):
        events.append(
            {
                "type": StreamEvent.ARTIFACT,
                "data": {
                    "title": result["title"],
                    "type": result.get("type", "document"),
                    "content": result.get("content", ""),
                },
            }
        )
    elif name == "search_flights" and result.get("flights"):
        events.append(_payload("flights", {"flights": result["flights"], "search_url": result.get("search_url") or FLIGHTS_URL}))
    elif name == "search_hotels" and result.get("hotels"):
        events.append(_payload("hotels", {"hotels": result["hotels"], "search_url": result.get("search_url") or HOTELS_URL}))
    elif name == "get_current_weather" and result.get("current"):
        events.append(
            _payload(
                "weather",
                {
                    "current": result["current"],
                    "forecast_summary": result.get("forecast_summary"),
                    "daily_forecast": result.get("daily_forecast"),
                },
            )
        )
    return events


def _payload(kind: str, data: Dict[str, Any]) -> Event:
    return {"type": StreamEvent.PAYLOAD, "data": {"kind": kind, "data": data}}


def card_instruction(name: str) -> Optional[str]:
    """Prefix for tool content whose results the client already shows as cards."""
    label = CARD_TOOLS.get(name)
    if not label:
        return None
    closing = "Here's the weather for that location." if label == "weather" else f"Here are the available {label} for your dates. Do you have any preference?"
    return (
        f"[CRITICAL: The {label} results are shown as cards in the UI. Reply with ONLY 1-2 sentences "
        f'like "{closing}" Do NOT list any data: no airlines, hotels, times, prices, temperatures, '
        "or conditions. Your reply will be hidden if you do.]"
    )
