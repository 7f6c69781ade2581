"""
travel_tool.py - Flight and hotel search through SerpApi's Google Flights/Hotels engines.

Both tools return labeled result sets that the client renders as cards, so the
orchestrator forwards them as structured payload events.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from relay_service.core.logging import logger
from relay_service.tools.base import BaseTool, clean_str, error
from relay_service.tools.serpapi_client import SerpApiClient, SerpApiError, get_client

FLIGHTS_URL = "https://www.google.com/travel/flights"
HOTELS_URL = "https://www.google.com/travel/hotels"
MAX_OPTIONS = 5


def parse_date(value: Any) -> Optional[str]:
    """Normalize a user/model supplied date to YYYY-MM-DD, or None."""
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%d %B %Y", "%B %d %Y", "%B %d, %Y", "%d %b %Y", "%b %d, %Y"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s).date().isoformat()
    except ValueError:
        return None


def _days_from_today(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def _format_duration(minutes: Any) -> str:
    if not isinstance(minutes, int) or minutes <= 0:
        return "—"
    return f"{minutes // 60}h {minutes % 60}m"


class FlightSearchTool(BaseTool):
    """Search for flights. Returns options displayed as cards. Do NOT type out airlines, times, or prices; only add 1-2 sentences asking about preferences."""

    tool_name = "search_flights"

    def __init__(self, client: Optional[SerpApiClient] = None):
        super().__init__()
        self._client = client

    async def run(
        self,
        departure_id: str,
        arrival_id: str,
        outbound_date: Optional[str] = None,
        return_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Args:
            departure_id: Departure airport code (e.g., SFO, JFK, LHR)
            arrival_id: Arrival airport code (e.g., LAX, CDG, HND)
            outbound_date: Date of departure in YYYY-MM-DD format (e.g. 2026-02-12). Required for accurate results.
            return_date: Date of return in YYYY-MM-DD format (e.g. 2026-02-19). Required for round-trip.
        """
        dep = clean_str(departure_id).upper()
        arr = clean_str(arrival_id).upper()
        if not dep or not arr:
            return error("departure_id and arrival_id are required")

        params: Dict[str, Any] = {
            "departure_id": dep,
            "arrival_id": arr,
            "outbound_date": parse_date(outbound_date) or _days_from_today(1),
            "currency": "USD",
            "deep_search": "true",
        }
        ret = parse_date(return_date)
        if ret:
            params["return_date"] = ret
            params["type"] = "1"  # round trip
        else:
            params["type"] = "2"  # one way

        logger.info(f"Flight search: {dep} -> {arr} on {params['outbound_date']}")
        try:
            data = await get_client(self._client).search("google_flights", **params)
        except (ValueError, SerpApiError) as e:
            return error(str(e))

        raw = data.get("best_flights") or data.get("other_flights") or []
        search_url = (data.get("search_metadata") or {}).get("google_flights_url") or FLIGHTS_URL

        flights = []
        for flight in raw[:MAX_OPTIONS]:
            segments = flight.get("flights") or []
            first = segments[0] if segments else {}
            last = segments[-1] if segments else {}
            flights.append(
                {
                    "airline": first.get("airline") or flight.get("airline") or "Unknown",
                    "airline_logo": first.get("airline_logo") or flight.get("airline_logo"),
                    "departure": (first.get("departure_airport") or {}).get("time"),
                    "arrival": (last.get("arrival_airport") or {}).get("time"),
                    "duration": _format_duration(flight.get("total_duration")),
                    "price": flight.get("price", "—"),
                    "link": search_url,
                    "booking_token": flight.get("departure_token"),
                }
            )

        if not flights:
            return error(
                "No flights found for this route/date. Try different dates or check airport codes.",
                search_url=search_url,
            )
        return {"flights": flights, "search_url": search_url}


class HotelSearchTool(BaseTool):
    """Search for hotels. Returns options displayed as cards. Do NOT type out hotel names, prices, or details; only add 1-2 sentences asking about preferences."""

    tool_name = "search_hotels"

    def __init__(self, client: Optional[SerpApiClient] = None):
        super().__init__()
        self._client = client

    async def run(
        self,
        q: str,
        check_in_date: Optional[str] = None,
        check_out_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Args:
            q: City or location to search for hotels (e.g., 'Hotels in Paris')
            check_in_date: Check-in date (YYYY-MM-DD)
            check_out_date: Check-out date (YYYY-MM-DD)
        """
        params = {
            "q": clean_str(q) or "hotels",
            "check_in_date": parse_date(check_in_date) or _days_from_today(1),
            "check_out_date": parse_date(check_out_date) or _days_from_today(2),
            "currency": "USD",
        }
        logger.info(f"Hotel search: {params['q']} {params['check_in_date']}..{params['check_out_date']}")
        try:
            data = await get_client(self._client).search("google_hotels", **params)
        except (ValueError, SerpApiError) as e:
            return error(str(e))

        search_url = (data.get("search_metadata") or {}).get("google_hotels_url") or HOTELS_URL
        hotels = []
        for hotel in (data.get("properties") or [])[:MAX_OPTIONS]:
            images = hotel.get("images") or []
            img0 = images[0] if images else {}
            per_night = hotel.get("rate_per_night") or {}
            total = hotel.get("total_rate") or {}
            amenities = hotel.get("amenities") or []
            hotels.append(
                {
                    "name": hotel.get("name", "Unknown"),
                    "description": hotel.get("description", ""),
                    "image": img0.get("original_image") or img0.get("thumbnail"),
                    "rating": hotel.get("overall_rating") or hotel.get("extracted_hotel_class"),
                    "price": per_night.get("lowest") or per_night.get("extracted_lowest"),
                    "total_price": total.get("lowest") or total.get("extracted_lowest"),
                    "amenities": ", ".join(amenities[:3]) or None,
                    "link": hotel.get("link"),
                    "gps": hotel.get("gps_coordinates"),
                }
            )
        return {"hotels": hotels, "search_url": search_url}
