from abc import abstractmethod
import inspect
import re
from typing import Any, Dict, List, Literal, Optional, get_args, get_origin, get_type_hints

from relay_service.core.interfaces import Tool
from relay_service.core.tool_registry import ParameterSpec, ToolDescriptor

# =============================
# Tool Authoring Guidelines
# =============================
#
# To create a new tool:
# 1. Subclass BaseTool, set `tool_name`, and implement the async run() method with
#    explicit, type-annotated keyword arguments.
# 2. Use a Google-style docstring for run() with an Args: section, e.g.:
#
#     async def run(self, timezone: str) -> dict:
#         """
#         Get the current time for a timezone.
#         Args:
#             timezone: IANA timezone (e.g., Europe/Dublin, America/New_York).
#         """
#         ...
#
# 3. The descriptor is generated from the run() signature and docstring.
# 4. The class-level docstring is the tool's description.
#
# Report expected failures (bad input, missing API key, upstream error) by
# returning {"error": "..."}; raise only for things worth retrying.

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _json_type(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is Literal:
        values = get_args(annotation)
        return _json_type(type(values[0])) if values else "string"
    if origin is not None:
        # Optional[X] / X | None -> X; List[X] -> array
        if origin in (list, List):
            return "array"
        if origin in (dict, Dict):
            return "object"
        inner = [a for a in get_args(annotation) if a is not type(None)]
        if len(inner) == 1:
            return _json_type(inner[0])
        return "string"
    return _JSON_TYPES.get(annotation, "string")


class BaseTool(Tool):
    tool_name: str = ""

    def __init__(self):
        self._registry_name: str | None = None

    @staticmethod
    def _extract_param_descriptions(docstring: str) -> dict:
        """
        Parse the docstring for an Args: section and return a mapping of param name to description.
        """
        if not docstring:
            return {}
        param_desc = {}
        args_section = re.search(r"Args?:\s*(.*?)(^\s*Returns?:|\Z)", docstring, re.DOTALL | re.MULTILINE)
        if args_section:
            for line in args_section.group(1).splitlines():
                match = re.match(r"\s*(\w+)\s*:\s*(.*)", line)
                if match:
                    name, desc = match.groups()
                    param_desc[name] = desc.strip()
        return param_desc

    @property
    def name(self) -> str:
        if self._registry_name:
            return self._registry_name
        return self.tool_name or self.__class__.__name__

    @property
    def description(self) -> str:
        return inspect.cleandoc(self.__doc__ or "")

    @property
    def descriptor(self) -> ToolDescriptor:
        sig = inspect.signature(self.run)
        hints = get_type_hints(self.run)
        param_docs = self._extract_param_descriptions(self.run.__doc__ or "")
        params: List[ParameterSpec] = []
        for pname, param in sig.parameters.items():
            if pname == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            params.append(
                ParameterSpec(
                    name=pname,
                    type=_json_type(hints.get(pname, str)),
                    description=param_docs.get(pname, ""),
                    required=param.default is inspect.Parameter.empty,
                )
            )
        return ToolDescriptor(name=self.name, description=self.description, parameters=params)

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        """Execute tool with given arguments (the descriptor follows this signature)."""
        raise NotImplementedError()


def error(message: str, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"error": message}
    out.update(extra)
    return out


def clean_str(value: Optional[Any]) -> str:
    return str(value or "").strip()
