"""Utilities package"""

from .helpers import calculate_distance, distance_meters, is_within_radius, bounding_box, longitude_ranges

__all__ = [
    "calculate_distance",
    "distance_meters",
    "is_within_radius",
    "bounding_box",
    "longitude_ranges",
]
