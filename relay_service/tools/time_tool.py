from typing import Any, Dict
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from relay_service.tools.base import BaseTool, error

# Normalize common timezone names
TIMEZONE_ALIASES = {
    "eastern": "America/New_York",
    "central": "America/Chicago",
    "mountain": "America/Denver",
    "pacific": "America/Los_Angeles",
    "est": "America/New_York",
    "cst": "America/Chicago",
    "mst": "America/Denver",
    "pst": "America/Los_Angeles",
    "uk": "Europe/London",
    "london": "Europe/London",
    "utc": "UTC",
}


class TimeTool(BaseTool):
    """Get the current time for a specific timezone or location."""

    tool_name = "get_world_time"

    async def run(self, timezone: str) -> Dict[str, Any]:
        """
        Args:
            timezone: The IANA timezone identifier (e.g., 'America/New_York', 'Europe/London', 'Asia/Tokyo'). If not known, ask the user or infer from location.
        """
        tz_name = str(timezone or "").strip()
        tz_name = TIMEZONE_ALIASES.get(tz_name.lower(), tz_name)
        try:
            now = datetime.now(ZoneInfo(tz_name))
        except (ZoneInfoNotFoundError, ValueError, OSError):
            return error(f"Invalid timezone: {timezone}")

        # e.g. "Monday, March 2, 2026 at 3:04:05 PM EST"
        stamp = f"{now:%A}, {now:%B} {now.day}, {now:%Y} at {now:%I:%M:%S %p} {now:%Z}"
        return {"time": stamp, "timezone": tz_name, "iso": now.isoformat()}
