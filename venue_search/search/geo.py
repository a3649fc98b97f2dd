"""Distance parsing and great-circle distance."""

import math
import re

# Mean earth radius used by Elasticsearch for arc distances
EARTH_RADIUS_M = 6371008.7714

_UNIT_TO_METERS: dict[str, float] = {
    "mm": 0.001,
    "cm": 0.01,
    "m": 1.0,
    "meters": 1.0,
    "km": 1000.0,
    "kilometers": 1000.0,
    "mi": 1609.344,
    "miles": 1609.344,
    "yd": 0.9144,
    "yards": 0.9144,
    "ft": 0.3048,
    "feet": 0.3048,
    "in": 0.0254,
    "nmi": 1852.0,
    "nm": 1852.0,
}

_DISTANCE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$")


def parse_distance(value: str) -> float:
    """
    Parse an Elasticsearch-style distance string into meters.

    "10km" -> 10000.0, "500m" -> 500.0, "3mi" -> 4828.032. A bare number is meters.

    Raises:
        ValueError: if the string is not a non-negative number followed by a known unit.
    """
    match = _DISTANCE_RE.match(value.lower())
    if not match:
        raise ValueError(f"Invalid distance '{value}'")
    number, unit = match.groups()
    factor = _UNIT_TO_METERS.get(unit or "m")
    if factor is None:
        raise ValueError(f"Unknown distance unit '{unit}' in '{value}'")
    return float(number) * factor


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Numerically stable haversine distance in meters."""
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)
    dlat = rlat2 - rlat1
    dlon = rlon2 - rlon1
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))
    return EARTH_RADIUS_M * c
