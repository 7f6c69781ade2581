"""
Tests for tools that call public HTTP endpoints (web_fetch, get_current_weather).

httpx.AsyncClient is swapped for one bound to an httpx.MockTransport.
"""
import httpx
import pytest

from relay_service.tools import weather_tool, web_fetch_tool
from relay_service.tools.weather_tool import GetWeatherTool, describe_code
from relay_service.tools.web_fetch_tool import WebFetchTool

_RealAsyncClient = httpx.AsyncClient


def _mock_http(monkeypatch, module, handler):
    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _RealAsyncClient(*args, **kwargs)

    monkeypatch.setattr(module.httpx, "AsyncClient", factory)


OPEN_METEO = {
    "current": {"temperature_2m": 21.4, "weather_code": 2, "wind_speed_10m": 12.0, "is_day": 1},
    "hourly": {
        "temperature_2m": [10.0, 20.0] + [15.0] * 30,
        "precipitation_probability": [5, None, 40] + [0] * 29,
    },
    "daily": {
        "time": ["2026-05-01", "2026-05-02", "2026-05-03", "2026-05-04"],
        "temperature_2m_max": [22, 23, 24, 25],
        "temperature_2m_min": [11, 12, 13, 14],
        "weather_code": [0, 61, 95, 3],
    },
}


class TestWebFetch:
    @pytest.mark.asyncio
    async def test_returns_text(self, monkeypatch):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(200, text="<p>hello</p>", headers={"content-type": "text/html; charset=utf-8"})

        _mock_http(monkeypatch, web_fetch_tool, handler)
        assert await WebFetchTool().run("https://example.com") == {"content": "<p>hello</p>"}
        assert seen["ua"] == web_fetch_tool.USER_AGENT

    @pytest.mark.asyncio
    async def test_large_body_is_truncated(self, monkeypatch):
        _mock_http(
            monkeypatch,
            web_fetch_tool,
            lambda r: httpx.Response(200, content=b"a" * 150, headers={"content-type": "text/plain"}),
        )
        result = await WebFetchTool(max_bytes=100).run("http://example.com/big.txt")
        assert result["content"] == "a" * 100 + "\n\n[Content truncated - response exceeded 100 bytes]"

    @pytest.mark.asyncio
    async def test_truncation_note_reports_the_configured_cap(self, monkeypatch):
        _mock_http(
            monkeypatch,
            web_fetch_tool,
            lambda r: httpx.Response(200, content=b"b" * 2500, headers={"content-type": "text/html"}),
        )
        result = await WebFetchTool(max_bytes=2000).run("https://example.com/")
        assert result["content"].endswith("[Content truncated - response exceeded 2KB]")
        assert result["content"].count("b") == 2000

    @pytest.mark.asyncio
    async def test_rejects_other_schemes(self):
        assert await WebFetchTool().run("file:///etc/passwd") == {"error": "Only http and https URLs are allowed"}
        assert await WebFetchTool().run("") == {"error": "URL is required"}

    @pytest.mark.asyncio
    async def test_http_error_status(self, monkeypatch):
        _mock_http(monkeypatch, web_fetch_tool, lambda r: httpx.Response(404, text="nope", headers={"content-type": "text/html"}))
        assert await WebFetchTool().run("https://example.com/missing") == {"error": "HTTP 404"}

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self, monkeypatch):
        _mock_http(monkeypatch, web_fetch_tool, lambda r: httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"}))
        assert await WebFetchTool().run("https://example.com/a.png") == {"error": "Unsupported content type: image/png"}

    @pytest.mark.asyncio
    async def test_timeout(self, monkeypatch):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        _mock_http(monkeypatch, web_fetch_tool, handler)
        assert await WebFetchTool().run("https://example.com") == {"error": "Fetch timed out"}


class TestWeather:
    @pytest.mark.asyncio
    async def test_summarizes_open_meteo(self, monkeypatch):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=OPEN_METEO)

        _mock_http(monkeypatch, weather_tool, handler)
        result = await GetWeatherTool().run(48.14, 11.58)

        assert seen["params"]["latitude"] == "48.14"
        assert seen["params"]["timezone"] == "auto"
        assert result["current"] == {"temperature": "21.4°C", "condition": "Partly cloudy", "wind": "12.0 km/h", "isDay": "Yes"}
        assert result["forecast_summary"]["max_precipitation_probability"] == "40%"
        assert [d["condition"] for d in result["daily_forecast"]] == ["Clear sky", "Slight rain", "Thunderstorm"]

    @pytest.mark.asyncio
    async def test_bad_coordinates(self):
        assert await GetWeatherTool().run(123, 0) == {"error": "coordinates out of range"}
        assert await GetWeatherTool().run("north", 0) == {"error": "latitude and longitude must be numbers"}

    @pytest.mark.asyncio
    async def test_upstream_failure_status(self, monkeypatch):
        _mock_http(monkeypatch, weather_tool, lambda r: httpx.Response(502))
        assert await GetWeatherTool().run(0, 0) == {"error": "Failed to fetch weather data"}

    @pytest.mark.asyncio
    async def test_network_errors_propagate_for_retry(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        _mock_http(monkeypatch, weather_tool, handler)
        with pytest.raises(httpx.ConnectError):
            await GetWeatherTool().run(0, 0)

    def test_unknown_code(self):
        assert describe_code(12345) == "Unknown"
        assert describe_code(None) == "Unknown"
