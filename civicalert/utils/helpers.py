"""
Helper utilities
"""

import math
from typing import List, Tuple

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0

# Rough meters per degree of latitude, used only for bounding boxes
METERS_PER_DEGREE = 111000.0

def calculate_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float
) -> float:
    """
    Calculate distance between two coordinates using Haversine formula

    Args:
        lat1, lon1: First coordinate
        lat2, lon2: Second coordinate

    Returns:
        Distance in kilometers
    """
    # Convert to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    # Rounding can push a a hair past 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c

def distance_meters(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float
) -> float:
    """Haversine distance in meters"""
    return calculate_distance(lat1, lon1, lat2, lon2) * 1000

def is_within_radius(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    radius_meters: float
) -> bool:
    """Inclusive boundary: a point exactly on the circle is inside"""
    return distance_meters(lat1, lon1, lat2, lon2) <= radius_meters

def bounding_box(
    latitude: float,
    longitude: float,
    radius_meters: float
) -> Tuple[float, float, float, float]:
    """
    Coarse (min_lat, max_lat, min_lon, max_lon) box around a point

    Only a pre-filter; callers must still apply the exact distance check.
    """
    lat_delta = radius_meters / METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(latitude))
    if cos_lat < 1e-6:
        # Near the poles every longitude is in range
        lon_delta = 180.0
    else:
        lon_delta = radius_meters / (METERS_PER_DEGREE * cos_lat)

    return (
        latitude - lat_delta,
        latitude + lat_delta,
        longitude - lon_delta,
        longitude + lon_delta,
    )

def longitude_ranges(min_lon: float, max_lon: float) -> List[Tuple[float, float]]:
    """
    Split a bounding-box longitude window into ranges inside [-180, 180]

    A window that crosses the antimeridian becomes two ranges, one on
    each side of it.
    """
    if max_lon - min_lon >= 360.0:
        return [(-180.0, 180.0)]
    if min_lon < -180.0:
        return [(min_lon + 360.0, 180.0), (-180.0, max_lon)]
    if max_lon > 180.0:
        return [(min_lon, 180.0), (-180.0, max_lon - 360.0)]
    return [(min_lon, max_lon)]
