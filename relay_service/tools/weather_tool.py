"""
weather_tool.py - Current weather and short forecast from the Open-Meteo API.

Open-Meteo needs no API key. Results are small and time-sensitive, which is
why get_current_weather is in the default cacheable set.
"""

from typing import Any, Dict, List

import httpx

from relay_service.core.logging import logger
from relay_service.tools.base import BaseTool, error

WEATHER_API_URL = "https://api.open-meteo.com/v1/forecast"

# WMO weather interpretation codes
WEATHER_CODES: Dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_code(code: Any) -> str:
    try:
        return WEATHER_CODES.get(int(code), "Unknown")
    except (TypeError, ValueError):
        return "Unknown"


def summarize_forecast(data: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce an Open-Meteo response to current conditions, a 24h summary and 3 days."""
    current = data["current"]
    hourly = data["hourly"]
    daily = data["daily"]

    temps: List[float] = hourly["temperature_2m"][:24]
    precip: List[float] = [p or 0 for p in hourly["precipitation_probability"][:24]]
    avg_temp = sum(temps) / len(temps) if temps else 0.0

    return {
        "current": {
            "temperature": f"{current['temperature_2m']}°C",
            "condition": describe_code(current["weather_code"]),
            "wind": f"{current['wind_speed_10m']} km/h",
            "isDay": "Yes" if current.get("is_day") else "No",
        },
        "forecast_summary": {
            "average_temp_next_24h": f"{avg_temp:.1f}°C",
            "max_precipitation_probability": f"{max(precip) if precip else 0}%",
        },
        "daily_forecast": [
            {
                "date": day,
                "max_temp": f"{daily['temperature_2m_max'][i]}°C",
                "min_temp": f"{daily['temperature_2m_min'][i]}°C",
                "condition": describe_code(daily["weather_code"][i]),
            }
            for i, day in enumerate(daily["time"][:3])
        ],
    }


class GetWeatherTool(BaseTool):
    """Get the current weather and forecast for a specific location. Use this when the user asks for weather info."""

    tool_name = "get_current_weather"

    def __init__(self, timeout: float = 10.0):
        super().__init__()
        self.timeout = timeout

    async def run(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """
        Args:
            latitude: Latitude of the location
            longitude: Longitude of the location
        """
        try:
            lat, lon = float(latitude), float(longitude)
        except (TypeError, ValueError):
            return error("latitude and longitude must be numbers")
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            return error("coordinates out of range")

        params = {
            "latitude": lat,
            "longitude": lon,
            "current": "temperature_2m,weather_code,wind_speed_10m,wind_direction_10m,is_day",
            "hourly": "temperature_2m,precipitation_probability,weather_code",
            "daily": "temperature_2m_max,temperature_2m_min,weather_code",
            "timezone": "auto",
        }
        # network failures propagate so the coordinator can retry them
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(WEATHER_API_URL, params=params)

        if response.status_code != 200:
            logger.warning(f"Weather API returned status {response.status_code}")
            return error("Failed to fetch weather data")
        try:
            return summarize_forecast(response.json())
        except (KeyError, IndexError, TypeError, ValueError):
            return error("Could not parse weather data from API response.")
