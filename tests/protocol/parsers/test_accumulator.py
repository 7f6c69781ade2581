import json

from relay_service.core.types import ToolCallFragment
from relay_service.protocol.parsers.accumulator import ToolCallAccumulator


class TestToolCallAccumulator:
    """Reassembly of tool calls streamed as fragments."""

    def test_fragments_reassemble_into_one_invocation(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="c1", name="get_current_weather", arguments=""))
        acc.absorb(ToolCallFragment(index=0, arguments='{"latit'))
        acc.absorb(ToolCallFragment(index=0, arguments='ude": 48.1, "longitude"'))
        acc.absorb(ToolCallFragment(index=0, arguments=": 11.6}"))

        inv = acc.materialize()
        assert inv is not None
        assert inv.id == "c1"
        assert inv.name == "get_current_weather"
        assert inv.arguments == {"latitude": 48.1, "longitude": 11.6}
        assert json.loads(inv.raw_arguments) == inv.arguments

    def test_partial_arguments_do_not_materialize(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="c1", name="calculator", arguments='{"expression": "2'))
        assert acc.materialize() is None
        acc.absorb(ToolCallFragment(index=0, arguments='+2"}'))
        assert acc.materialize().arguments == {"expression": "2+2"}

    def test_missing_id_or_name_does_not_materialize(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, name="calculator", arguments="{}"))
        assert acc.materialize() is None
        acc.absorb(ToolCallFragment(index=0, id="c9"))
        assert acc.materialize().id == "c9"

    def test_empty_id_and_name_never_overwrite(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="c1", name="google_search"))
        acc.absorb(ToolCallFragment(index=0, id="", name=None, arguments='{"query": "x"}'))
        inv = acc.materialize()
        assert (inv.id, inv.name) == ("c1", "google_search")

    def test_indices_never_mix(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=1, id="b", name="calculator", arguments='{"expression": '))
        acc.absorb(ToolCallFragment(index=0, id="a", name="google_search", arguments='{"query": '))
        acc.absorb(ToolCallFragment(index=1, arguments='"1+1"}'))
        acc.absorb(ToolCallFragment(index=0, arguments='"news"}'))

        invocations = acc.invocations()
        assert [(i.id, i.arguments) for i in invocations] == [
            ("a", {"query": "news"}),
            ("b", {"expression": "1+1"}),
        ]
        assert acc.materialize().id == "a"

    def test_lowest_complete_index_wins(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="a", name="google_search", arguments='{"query": '))
        acc.absorb(ToolCallFragment(index=1, id="b", name="calculator", arguments='{"expression": "3*3"}'))
        assert acc.materialize().id == "b"

    def test_non_object_arguments_are_rejected(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="a", name="calculator", arguments="[1, 2]"))
        assert acc.materialize() is None

    def test_empty_accumulator(self):
        acc = ToolCallAccumulator()
        assert acc.materialize() is None
        assert acc.invocations() == []
        assert len(acc) == 0

    def test_empty_arguments_count_as_no_arguments_once_finished(self):
        acc = ToolCallAccumulator()
        acc.absorb(ToolCallFragment(index=0, id="c1", name="get_world_time", arguments=""))
        assert acc.materialize() is None

        inv = acc.materialize(finished=True)
        assert inv.arguments == {}
        assert inv.raw_arguments == "{}"
        assert [i.id for i in acc.invocations(finished=True)] == ["c1"]
