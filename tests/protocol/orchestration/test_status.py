from relay_service.core.types import StreamEvent
from relay_service.protocol.orchestration.status import (
    FLIGHTS_URL,
    card_instruction,
    result_summary,
    status_label,
    structured_events,
)


class TestStatusLabel:
    def test_search_quotes_query(self):
        assert '"rust 2024 edition"' in status_label("google_search", {"query": "rust 2024 edition"})

    def test_long_query_is_clipped(self):
        label = status_label("google_search", {"query": "x" * 100})
        assert "x" * 60 + "…" in label
        assert "x" * 61 not in label

    def test_flights_names_route(self):
        label = status_label("search_flights", {"departure_id": "MUC", "arrival_id": "LIS"})
        assert "from MUC to LIS" in label

    def test_missing_arguments_fall_back(self):
        assert status_label("search_flights", {}) == "Looking up flights for your trip. I'll compare prices and schedules."
        assert status_label("google_search", {"query": "   "}).startswith("Searching the web")

    def test_unknown_tool(self):
        assert status_label("mystery", {"a": 1}) == "Working on that. Give me a moment."
        assert status_label("mystery", None) == "Working on that. Give me a moment."


class TestResultSummary:
    def test_counts_results(self):
        assert result_summary("google_search", {"results": [1, 2, 3]}).startswith("Found 3 results")
        assert result_summary("search_hotels", {"hotels": [{}]}).startswith("Found 1 hotels")

    def test_nothing_to_say(self):
        assert result_summary("google_search", {"results": []}) is None
        assert result_summary("google_search", {"error": "boom"}) is None
        assert result_summary("calculator", {"result": 4}) is None
        assert result_summary("web_fetch", "plain text") is None


class TestStructuredEvents:
    def test_flights_payload_defaults_search_url(self):
        events = structured_events("search_flights", {"flights": [{"price": 99}]})
        assert events == [
            {
                "type": StreamEvent.PAYLOAD,
                "data": {"kind": "flights", "data": {"flights": [{"price": 99}], "search_url": FLIGHTS_URL}},
            }
        ]

    def test_weather_requires_current_block(self):
        assert structured_events("get_current_weather", {"forecast_summary": {}}) == []
        events = structured_events("get_current_weather", {"current": {"temperature": "3°C"}})
        assert events[0]["data"]["kind"] == "weather"

    def test_artifact(self):
        events = structured_events("create_artifact", {"title": "Notes", "type": "document", "content": "# hi"})
        assert events[0]["type"] == StreamEvent.ARTIFACT
        assert events[0]["data"] == {"title": "Notes", "type": "document", "content": "# hi"}

    def test_errors_and_empty_results_produce_nothing(self):
        assert structured_events("search_hotels", {"hotels": []}) == []
        assert structured_events("search_hotels", {"error": "no key"}) == []
        assert structured_events("google_search", {"results": [1]}) == []


class TestCardInstruction:
    def test_card_tools_get_a_prefix(self):
        assert card_instruction("search_hotels").startswith("[CRITICAL: The hotels results are shown as cards")
        assert "Here's the weather for that location." in card_instruction("get_current_weather")

    def test_other_tools_do_not(self):
        assert card_instruction("google_search") is None
