from dataclasses import dataclass, field
import json
from typing import Dict, List, Optional

from relay_service.core.types import ToolCallFragment, ToolInvocation


@dataclass
class _PartialCall:
    id: str = ""
    name: str = ""
    chunks: List[str] = field(default_factory=list)

    @property
    def arguments(self) -> str:
        return "".join(self.chunks)


class ToolCallAccumulator:
    """Rebuilds tool calls whose id, name and arguments arrive spread over many deltas.

    Fragments are grouped by their index. A fresh accumulator is used for every
    model round.
    """

    def __init__(self):
        self._calls: Dict[int, _PartialCall] = {}

    def absorb(self, fragment: ToolCallFragment) -> None:
        call = self._calls.setdefault(fragment.index, _PartialCall())
        if fragment.id:
            call.id = fragment.id
        if fragment.name:
            call.name = fragment.name
        if fragment.arguments:
            call.chunks.append(fragment.arguments)

    @staticmethod
    def _complete(call: _PartialCall, finished: bool = False) -> Optional[ToolInvocation]:
        if not call.id or not call.name:
            return None
        raw = call.arguments
        if finished and not raw.strip():
            # a call that takes no arguments streams none
            raw = "{}"
        try:
            args = json.loads(raw)
        except json.JSONDecodeError:
            # still streaming, or never going to parse
            return None
        if not isinstance(args, dict):
            return None
        return ToolInvocation(id=call.id, name=call.name, arguments=args, raw_arguments=raw)

    def materialize(self, finished: bool = False) -> Optional[ToolInvocation]:
        """The lowest-index call that is complete, or None.

        `finished` means the round ended with `tool_calls`, so an empty
        argument string is final and stands for `{}`.
        """
        for index in sorted(self._calls):
            invocation = self._complete(self._calls[index], finished)
            if invocation:
                return invocation
        return None

    def invocations(self, finished: bool = False) -> List[ToolInvocation]:
        out = []
        for index in sorted(self._calls):
            invocation = self._complete(self._calls[index], finished)
            if invocation:
                out.append(invocation)
        return out

    def __len__(self) -> int:
        return len(self._calls)
