"""Common utility functions."""

from .geo import (
    Point,
    calculate_distance,
    distance_meters,
    within_radius,
    within_service_area,
    is_valid_coordinate,
    encode_geohash,
    get_covering_geohashes,
)

__all__ = [
    "Point",
    "calculate_distance",
    "distance_meters",
    "within_radius",
    "within_service_area",
    "is_valid_coordinate",
    "encode_geohash",
    "get_covering_geohashes",
]
