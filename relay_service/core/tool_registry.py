from dataclasses import dataclass, field
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional

from relay_service.core.errors import ToolNotFound
from relay_service.core.factory import load
from relay_service.core.logging import logger


@dataclass
class ParameterSpec:
    name: str
    type: str = "string"  # JSON schema type: string | number | integer | boolean | array | object
    description: str = ""
    required: bool = False


@dataclass
class ToolDescriptor:
    name: str
    description: str = ""
    parameters: List[ParameterSpec] = field(default_factory=list)

    @property
    def required(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def to_declaration(self) -> Dict[str, Any]:
        """Provider-neutral declaration: {name, description, parameters: {type: object, ...}}."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: {"type": p.type, "description": p.description} for p in self.parameters
                },
                "required": self.required,
            },
        }


ToolImpl = Callable[..., Awaitable[Any]]


class ToolRegistry:
    """Named tool descriptors plus their async implementations.

    Built once at startup and handed to whoever needs it; nothing registers
    itself behind the registry's back.
    """

    def __init__(self):
        self._descriptors: Dict[str, ToolDescriptor] = {}
        self._impls: Dict[str, ToolImpl] = {}

    @classmethod
    def from_config(cls, registry_cfg: List[Dict[str, Any]], enabled: List[str]) -> "ToolRegistry":
        registry = cls()
        for tcfg in registry_cfg or []:
            name = tcfg.get("name")
            if name not in (enabled or []):
                continue
            impl = tcfg.get("impl", "")
            args = tcfg.get("args", {}) or {}
            try:
                tool = load(impl, **args)
            except (ImportError, AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping tool {name}: cannot load {impl} ({e})")
                continue
            registry.register_tool(tool, name=name)
        logger.info(f"Tool registry ready: {', '.join(registry.names) or '(empty)'}")
        return registry

    def register(self, descriptor: ToolDescriptor, implementation: ToolImpl) -> None:
        if descriptor.name in self._descriptors:
            logger.debug(f"Tool {descriptor.name} re-registered, replacing previous implementation")
        self._descriptors[descriptor.name] = descriptor
        self._impls[descriptor.name] = implementation

    def register_tool(self, tool: Any, name: Optional[str] = None) -> None:
        """Register a BaseTool instance, optionally under a config-provided name."""
        if name and hasattr(tool, "_registry_name"):
            tool._registry_name = name
        self.register(tool.descriptor, tool.run)

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._descriptors.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._descriptors)

    def list_descriptors(self) -> List[ToolDescriptor]:
        return list(self._descriptors.values())

    def declarations(self, translate: Callable[[ToolDescriptor], Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Tool declarations in whatever shape `translate` produces."""
        return [translate(d) for d in self._descriptors.values()]

    async def execute(self, name: str, args: Dict[str, Any]) -> Any:
        impl = self._impls.get(name)
        if impl is None:
            raise ToolNotFound(name)
        result = impl(**(args or {}))
        if inspect.isawaitable(result):
            result = await result
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
