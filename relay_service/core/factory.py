from importlib import import_module
from typing import Any, Dict, cast
import inspect

from relay_service.core.config import limit, load_settings
from relay_service.core.interfaces import CompletionProvider, HistoryStore, ProfileSource, TextExtractor


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate the class if callable.
    Filters kwargs to match the constructor signature (unless **kwargs is accepted)."""
    module, cls = dotted.rsplit(".", 1)
    mod = import_module(module)
    obj = getattr(mod, cls)

    if isinstance(obj, type):
        sig = inspect.signature(obj.__init__)
        params = list(sig.parameters.values())
        accepts_kwargs = any(p.kind == p.VAR_KEYWORD for p in params)
        if accepts_kwargs:
            return obj(**kwargs)
        allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
        filtered = {k: v for k, v in kwargs.items() if k in allowed}
        return obj(**filtered)

    # callable or object (rare)
    return obj


def _load_section(section: Dict[str, Any]) -> Any:
    impl = section.get("impl")
    if not impl:
        raise ValueError("component config is missing 'impl'")
    args = section.get("args", {}) or {}
    return load(impl, **args)


class ServiceFactory:
    """Builds the engine's components from settings, each exactly once."""

    def __init__(self, config: Dict[str, Any] | None = None):
        self.config = config if config is not None else load_settings()
        self._provider: CompletionProvider | None = None
        self._store: HistoryStore | None = None
        self._extractor: TextExtractor | None = None
        self._registry = None
        self._coordinator = None

    def _providers_cfg(self) -> Dict[str, Any]:
        return self.config.get("providers", {}) or {}

    def get_provider(self) -> CompletionProvider:
        if not self._provider:
            self._provider = cast(CompletionProvider, _load_section(self._providers_cfg().get("model", {})))
        return self._provider

    def get_store(self) -> HistoryStore:
        if not self._store:
            self._store = cast(HistoryStore, _load_section(self._providers_cfg().get("history_store", {})))
        return self._store

    def get_text_extractor(self) -> TextExtractor:
        if not self._extractor:
            self._extractor = cast(TextExtractor, _load_section(self._providers_cfg().get("text_extractor", {})))
        return self._extractor

    def get_profile_source(self) -> ProfileSource | None:
        section = self._providers_cfg().get("profile_source")
        if not section:
            return None
        return cast(ProfileSource, _load_section(section))

    def get_registry(self):
        from relay_service.core.tool_registry import ToolRegistry

        if self._registry is None:
            tools_cfg = self.config.get("tools", {}) or {}
            self._registry = ToolRegistry.from_config(tools_cfg.get("registry", []) or [], tools_cfg.get("enabled", []) or [])
        return self._registry

    def get_coordinator(self):
        from relay_service.protocol.orchestration.tool_runner import ExecutionCoordinator, ResultCache

        if self._coordinator is None:
            tools_cfg = self.config.get("tools", {}) or {}
            self._coordinator = ExecutionCoordinator(
                self.get_registry(),
                timeout=float(limit(self.config, "tool_timeout_sec", 30)),
                max_retries=int(limit(self.config, "tool_max_retries", 2)),
                cache=ResultCache(ttl=float(limit(self.config, "tool_cache_ttl_sec", 300))),
                cacheable=tools_cfg.get("cacheable", []) or [],
            )
        return self._coordinator

    def get_generation_service(self):
        from relay_service.protocol.composer import RequestComposer
        from relay_service.protocol.service.generation_service import GenerationService

        composer = RequestComposer(
            max_history=int(limit(self.config, "max_history_messages", 20)),
            text_extractor=self.get_text_extractor(),
        )
        return GenerationService(
            provider=self.get_provider(),
            registry=self.get_registry(),
            coordinator=self.get_coordinator(),
            composer=composer,
            history_store=self.get_store(),
            profile_source=self.get_profile_source(),
            max_tool_iterations=int(limit(self.config, "max_tool_iterations", 5)),
            default_model=(self.config.get("system", {}) or {}).get("default_model", "relay-beta"),
        )
