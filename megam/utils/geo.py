"""
📏 Distance & geo helpers
========================
Great-circle distance used for station search and hybrid enhancement.
"""

import math

EARTH_RADIUS_KM = 6371


def to_radians(degrees: float) -> float:
    return degrees * math.pi / 180


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in kilometers using the haversine formula"""
    lat1_rad = to_radians(lat1)
    lat2_rad = to_radians(lat2)
    dlat = to_radians(lat2 - lat1)
    dlon = to_radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def location_key(lat: float, lng: float) -> str:
    """Cache/model key for a coordinate, rounded to 2 decimals (~1km)"""
    return f"{lat:.2f}_{lng:.2f}"
