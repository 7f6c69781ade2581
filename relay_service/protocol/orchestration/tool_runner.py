import asyncio
import json
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from relay_service.core.errors import ToolNotFound, ToolTimeout
from relay_service.core.interfaces import ObservabilitySink
from relay_service.core.logging import logger
from relay_service.core.tool_registry import ToolRegistry
from relay_service.core.types import ToolResult


def cache_key(name: str, args: Dict[str, Any]) -> str:
    return f"{name}:{json.dumps(args or {}, sort_keys=True, default=str)}"


class ResultCache:
    """TTL map of tool results shared by every turn in the process."""

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, name: str, args: Dict[str, Any]) -> Optional[Any]:
        key = cache_key(name, args)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, name: str, args: Dict[str, Any], value: Any) -> None:
        with self._lock:
            self._entries[cache_key(name, args)] = (self._clock() + self.ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LoggingObservabilitySink(ObservabilitySink):
    def tool_call(self, name: str, duration_ms: int, success: bool, error: Optional[str] = None) -> None:
        if success:
            logger.info(f"tool={name} duration_ms={duration_ms} success=true")
        else:
            logger.warning(f"tool={name} duration_ms={duration_ms} success=false error={error}")


class ExecutionCoordinator:
    """Execute tools with a per-attempt timeout, bounded retries and a TTL cache"""

    def __init__(
        self,
        registry: ToolRegistry,
        timeout: float = 30.0,
        max_retries: int = 2,
        cache: Optional[ResultCache] = None,
        cacheable: Iterable[str] = ("get_current_weather", "google_search"),
        observer: Optional[ObservabilitySink] = None,
    ):
        self.registry = registry
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.cache = cache if cache is not None else ResultCache()
        self.cacheable = set(cacheable or ())
        self.observer = observer or LoggingObservabilitySink()

    async def run(self, name: str, args: Dict[str, Any]) -> ToolResult:
        args = args or {}
        is_cacheable = name in self.cacheable
        if is_cacheable:
            hit = self.cache.get(name, args)
            if hit is not None:
                logger.debug(f"Cache hit for {name}")
                return ToolResult(value=hit, duration_ms=0, success=True)

        start = time.perf_counter()
        result = await self._attempt(name, args)
        result.duration_ms = int((time.perf_counter() - start) * 1000)

        if result.success and is_cacheable:
            self.cache.set(name, args, result.value)
        self.observer.tool_call(name, result.duration_ms, result.success, result.error)
        return result

    async def _attempt(self, name: str, args: Dict[str, Any]) -> ToolResult:
        attempts = 1 + self.max_retries
        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                value = await asyncio.wait_for(self.registry.execute(name, args), timeout=self.timeout)
            except ToolNotFound as e:
                return ToolResult(error=str(e), success=False)
            except asyncio.TimeoutError:
                last_error = str(ToolTimeout(name, self.timeout))
            except Exception as e:
                last_error = str(e) or type(e).__name__
            else:
                if isinstance(value, dict) and value.get("error"):
                    # reported by the tool itself; another attempt would say the same
                    return ToolResult(value=value, error=str(value["error"]), success=False)
                return ToolResult(value=value, success=True)
            logger.warning(f"Tool {name} attempt {attempt}/{attempts} failed: {last_error}")
        return ToolResult(error=last_error, success=False)
