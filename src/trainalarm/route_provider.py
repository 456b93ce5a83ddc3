"""Route lookup from the train status scraper, with a fixed demo route fallback."""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests

from .exceptions import RouteUnavailable
from .models import Coordinates, Route, Station

logger = logging.getLogger(__name__)

TRAIN_NUMBER_PATTERN = re.compile(r"^\d{5}$")

DEFAULT_SCRAPER_URL = "http://localhost:8000"

# Chennai -> Kanyakumari (Train 12661 Cape Express)
DEMO_TRAIN_NAME = "Chennai Kanyakumari Cape Express"
DEMO_STATIONS = [
    ("Chennai Central", "MAS", 13.0827, 80.2707, "Origin", "07:10"),
    ("Chengalpattu", "CGL", 12.6921, 79.9765, "08:18", "08:20"),
    ("Villupuram Junction", "VM", 11.9393, 79.4924, "09:48", "09:53"),
    ("Cuddalore Port", "CUPJ", 11.7447, 79.7678, "10:22", "10:24"),
    ("Chidambaram", "CDM", 11.3993, 79.6934, "11:05", "11:07"),
    ("Mayiladuthurai Jn", "MV", 11.1034, 79.6508, "11:55", "12:00"),
    ("Thanjavur Junction", "TJ", 10.7870, 79.1378, "13:00", "13:05"),
    ("Trichy Junction", "TPJ", 10.8155, 78.6877, "14:05", "14:15"),
    ("Dindigul Junction", "DG", 10.3673, 77.9803, "15:18", "15:20"),
    ("Madurai Junction", "MDU", 9.9252, 78.1198, "16:30", "16:40"),
    ("Virudhunagar Jn", "VPT", 9.5810, 77.9624, "17:28", "17:30"),
    ("Tirunelveli Jn", "TEN", 8.7139, 77.7567, "18:55", "19:00"),
    ("Nagercoil Junction", "NCJ", 8.1833, 77.4119, "19:55", "20:00"),
    ("Kanyakumari", "CAPE", 8.0883, 77.5385, "20:30", "Terminus"),
]


@dataclass
class RouteResult:
    """A route together with provider metadata."""
    route: Route
    last_updated: str
    is_demo: bool = False


def validate_train_number(train_number: str) -> str:
    """
    Check a train number before querying the provider.

    Raises:
        RouteUnavailable: If it is not a 5-digit numeric string (status 400).
    """
    train_number = (train_number or "").strip()
    if not TRAIN_NUMBER_PATTERN.match(train_number):
        raise RouteUnavailable("Invalid train number. Must be 5 digits.", status=400)
    return train_number


def _parse_coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_events(train_number: str, data: Dict[str, Any]) -> Route:
    """
    Build a Route from a scraper response.

    Stops with absent or unparsable coordinates become stations without
    coordinates rather than errors.
    """
    stations: List[Station] = []
    for index, stop in enumerate(data.get("events") or []):
        lat = _parse_coordinate(stop.get("lat"))
        lon = _parse_coordinate(stop.get("lon"))
        stations.append(Station(
            name=stop.get("station") or "Unknown Station",
            code=stop.get("code") or "???",
            sequence_index=index,
            coordinates=Coordinates(lat, lon) if lat is not None and lon is not None else None,
            scheduled_arrival=stop.get("arrival") or "N/A",
            scheduled_departure=stop.get("departure") or "N/A",
            delay=stop.get("delay") or "00:00",
        ))

    return Route(
        train_number=str(data.get("train_number") or train_number),
        train_name=data.get("train_name") or f"Train {train_number}",
        stations=stations,
    )


class RouteProviderClient:
    """Fetches live train routes from the scraper service."""

    def __init__(self, base_url: str = DEFAULT_SCRAPER_URL, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._cache: Dict[str, Tuple[RouteResult, float]] = {}  # train_number -> (result, timestamp)
        self._cache_ttl = 30  # Cache for 30 seconds
        self._max_cache_size = 10  # Limit cache entries

    def fetch_route(self, train_number: str) -> RouteResult:
        """
        Get the stops of a train.

        Args:
            train_number: 5-digit train number (e.g., "12661")

        Returns:
            RouteResult with the ordered stations.

        Raises:
            RouteUnavailable: With status 400 for a malformed number, 404 for an
                unknown train, 503 if the scraper is offline, 500 otherwise.
        """
        train_number = validate_train_number(train_number)

        now = time.time()
        if train_number in self._cache:
            result, timestamp = self._cache[train_number]
            if now - timestamp < self._cache_ttl:
                logger.debug(f"Using cached route for train {train_number}")
                return result

        data = self._get(train_number)
        if not data.get("events"):
            raise RouteUnavailable(f"Train {train_number} not found.", status=404)

        route = parse_events(train_number, data)
        route.validate()
        result = RouteResult(
            route=route,
            last_updated=data.get("last_update") or datetime.now().isoformat(),
        )

        self._evict_expired_cache(now)
        if len(self._cache) >= self._max_cache_size:
            oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
            del self._cache[oldest_key]
        self._cache[train_number] = (result, now)

        logger.info(f"Fetched {len(route)} stations for train {train_number}")
        return result

    def _get(self, train_number: str) -> Dict[str, Any]:
        url = f"{self.base_url}/train/{train_number}"
        logger.debug(f"Fetching {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Scraper unreachable at {self.base_url}: {e}")
            raise RouteUnavailable("Train status scraper is offline.", status=503)
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                raise RouteUnavailable(f"Train {train_number} not found.", status=404)
            logger.error(f"Error fetching train {train_number}: {e}")
            raise RouteUnavailable("Failed to fetch train data.", status=500)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error fetching train {train_number}: {e}")
            raise RouteUnavailable("Failed to fetch train data.", status=500)

    def _evict_expired_cache(self, current_time: float) -> None:
        """Remove expired cache entries."""
        expired_keys = [
            key for key, (_, timestamp) in self._cache.items()
            if current_time - timestamp >= self._cache_ttl
        ]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        self._cache.clear()


class DemoRouteProvider:
    """Returns a fixed real-world route. Always succeeds."""

    def fetch_route(self, train_number: str = "12661") -> RouteResult:
        stations = [
            Station(
                name=name,
                code=code,
                sequence_index=index,
                coordinates=Coordinates(lat, lon),
                scheduled_arrival=arrival,
                scheduled_departure=departure,
            )
            for index, (name, code, lat, lon, arrival, departure) in enumerate(DEMO_STATIONS)
        ]
        route = Route(
            train_number=train_number,
            train_name=f"{DEMO_TRAIN_NAME} ({train_number})",
            stations=stations,
        )
        return RouteResult(route=route, last_updated=datetime.now().isoformat(), is_demo=True)


class RouteService:
    """
    Chooses between the live provider and the demo route.

    In demo mode the demo route is always used. Otherwise provider outages
    (status 503/500) fall back to the demo route when ``fallback`` is set;
    malformed or unknown train numbers are still reported.
    """

    def __init__(
        self,
        client: Optional[RouteProviderClient] = None,
        demo: Optional[DemoRouteProvider] = None,
        demo_mode: bool = False,
        fallback: bool = True,
    ):
        self.client = client or RouteProviderClient()
        self.demo = demo or DemoRouteProvider()
        self.demo_mode = demo_mode
        self.fallback = fallback

    def fetch_route(self, train_number: str) -> RouteResult:
        if self.demo_mode:
            return self.demo.fetch_route(train_number)
        try:
            return self.client.fetch_route(train_number)
        except RouteUnavailable as e:
            if self.fallback and e.status >= 500:
                logger.warning(f"Route provider unavailable ({e.reason}), using demo route")
                return self.demo.fetch_route(validate_train_number(train_number))
            raise
