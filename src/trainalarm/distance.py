"""Great-circle distance calculation between coordinates."""

import logging
import math
from typing import Any, Optional

from .exceptions import MalformedCoordinate
from .models import Coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Returned when either endpoint is missing; callers treat it as "unknown, assume safe"
UNKNOWN_DISTANCE = math.inf


def _coerce(value: Any, limit: float, label: str) -> float:
    """Convert a degree value to float, rejecting non-numeric or out of range input."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedCoordinate(f"{label} is not numeric: {value!r}")
    if not math.isfinite(number) or abs(number) > limit:
        raise MalformedCoordinate(f"{label} out of range: {value!r}")
    return number


def calculate_distance(lat1: Any, lon1: Any, lat2: Any, lon2: Any) -> float:
    """
    Calculate the distance between two points using the haversine formula.

    Args:
        lat1: Latitude of point 1 (decimal degrees)
        lon1: Longitude of point 1 (decimal degrees)
        lat2: Latitude of point 2 (decimal degrees)
        lon2: Longitude of point 2 (decimal degrees)

    Returns:
        Distance in kilometers, or UNKNOWN_DISTANCE if any value is missing or malformed.
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return UNKNOWN_DISTANCE

    try:
        phi1 = math.radians(_coerce(lat1, 90, "lat1"))
        phi2 = math.radians(_coerce(lat2, 90, "lat2"))
        lam1 = math.radians(_coerce(lon1, 180, "lon1"))
        lam2 = math.radians(_coerce(lon2, 180, "lon2"))
    except MalformedCoordinate as e:
        logger.debug(f"Treating malformed coordinate as missing: {e}")
        return UNKNOWN_DISTANCE

    d_phi = phi2 - phi1
    d_lam = lam2 - lam1

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    # Rounding can push a marginally above 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance(a: Optional[Coordinates], b: Optional[Coordinates]) -> float:
    """Distance in kilometers between two coordinate pairs; either may be missing."""
    if a is None or b is None:
        return UNKNOWN_DISTANCE
    return calculate_distance(a.lat, a.lon, b.lat, b.lon)


def format_distance(km: float) -> str:
    """
    Render a distance for alert text.

    Meters below 1 km, two-decimal km below 10 km, rounded km otherwise.
    """
    if km is None or math.isnan(km) or math.isinf(km):
        return "--"
    if km < 1:
        return f"{round(km * 1000)} m"
    if km < 10:
        return f"{km:.2f} km"
    return f"{round(km)} km"
