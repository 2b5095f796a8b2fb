"""Distance and length helpers for trail records."""

import math
import re

from shapely.geometry import Point

from config import KM_PER_DEGREE

EARTH_RADIUS_KM = 6371.0

# Length tags in priority order, with the unit each one is expressed in
LENGTH_TAGS = [
    ("length", "km"),
    ("distance", "km"),
    ("distance:km", "km"),
    ("distance:m", "m"),
    ("distance:mi", "mi"),
    ("distance:ft", "ft"),
]

# Multipliers converting a unit to kilometres
UNIT_TO_KM = {
    "km": 1.0,
    "m": 0.001,
    "mi": 1.60934,
    "ft": 0.0003048,
}

_NUMBER_RE = re.compile(r"^\s*([-+]?\d+(?:[.,]\d+)?)\s*(km|mi|ft|m)?\b", re.IGNORECASE)


def haversine_km(lat1, lon1, lat2, lon2):
    """Return the great-circle distance in km between two points."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_length_km(coords):
    """Sum of the Haversine distances between consecutive (lat, lon) points."""
    return sum(
        haversine_km(coords[i][0], coords[i][1], coords[i + 1][0], coords[i + 1][1])
        for i in range(len(coords) - 1)
    )


def flat_distance_km(lat1, lon1, lat2, lon2):
    """Equirectangular-ish distance: planar degrees times KM_PER_DEGREE.

    Only good enough for a coarse "is it near the city" check.
    """
    return Point(lon1, lat1).distance(Point(lon2, lat2)) * KM_PER_DEGREE


def round_one_decimal(value):
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    # halves round up
    return math.floor(value * 10 + 0.5) / 10


def parse_length_value(raw, default_unit="km"):
    """Parse an OSM length value like "12", "12.5 km", "800 m" or "3,2".

    Returns kilometres, or None when no leading number is found. A unit
    written in the value wins over ``default_unit``.
    """
    if raw is None:
        return None
    match = _NUMBER_RE.match(str(raw))
    if not match:
        return None
    number = float(match.group(1).replace(",", "."))
    unit = (match.group(2) or default_unit).lower()
    return number * UNIT_TO_KM[unit]


def length_from_tags(tags):
    """Return the first usable length tag converted to km, or None."""
    for key, unit in LENGTH_TAGS:
        if key not in tags:
            continue
        length = parse_length_value(tags[key], unit)
        if length is not None and length >= 0:
            return round_one_decimal(length)
    return None
