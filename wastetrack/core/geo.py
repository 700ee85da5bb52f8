import math
import logging
from typing import Any, Optional

from wastetrack.exceptions import TruckValidationError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_coordinate(name: str, value: Any) -> float:
    """
    Converts a raw JSON value into a coordinate.

    Booleans, strings and NaN are rejected even though Python could coerce
    some of them. Out-of-range values are rejected, never clamped.
    """
    if value is None:
        raise TruckValidationError(f"Missing field: {name}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TruckValidationError(f"Field '{name}' must be a number.")

    coordinate = float(value)
    if math.isnan(coordinate) or math.isinf(coordinate):
        raise TruckValidationError(f"Field '{name}' must be a finite number.")

    low, high = LATITUDE_RANGE if name == "latitude" else LONGITUDE_RANGE
    if not low <= coordinate <= high:
        raise TruckValidationError(f"Field '{name}' ({coordinate}) must be between {low:g} and {high:g}.")
    return coordinate


def within_radius(center_lat: float, center_lng: float, lat: float, lng: float, radius_km: float) -> bool:
    return haversine_km(center_lat, center_lng, lat, lng) <= radius_km


def coordinates_from_payload(payload: dict) -> Optional[tuple]:
    """
    Pulls a (latitude, longitude) pair out of an event payload.

    Top-level latitude/longitude win over the nested currentLocation object.
    Returns None when neither form carries a complete numeric pair.
    """
    lat = payload.get("latitude")
    lng = payload.get("longitude")
    nested = payload.get("currentLocation")
    if (lat is None or lng is None) and isinstance(nested, dict):
        lat = nested.get("latitude") if lat is None else lat
        lng = nested.get("longitude") if lng is None else lng

    try:
        return parse_coordinate("latitude", lat), parse_coordinate("longitude", lng)
    except TruckValidationError as e:
        logger.debug(f"No usable coordinates in payload for {payload.get('truckId')}: {e.message}")
        return None
