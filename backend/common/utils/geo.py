"""
Geographic utility functions.

This module provides the core geospatial calculations used throughout the
application: great-circle distance, radius (geofence) checks, the configured
service area, and the geohash cells backing the nearby-booking index.
"""

import math
from math import radians, cos, sin, asin, sqrt
from typing import NamedTuple, Optional, Set

from django.conf import settings

EARTH_RADIUS_METERS = 6371000


class Point(NamedTuple):
    """A (latitude, longitude) pair in decimal degrees."""
    latitude: float
    longitude: float


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push a slightly above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * EARTH_RADIUS_METERS


def distance_meters(a: Point, b: Point) -> float:
    """Haversine distance between two points."""
    return calculate_distance(a[0], a[1], b[0], b[1])


def within_radius(point: Point, center: Point, radius_meters: float) -> bool:
    """True when point lies inside the circle, boundary included."""
    return distance_meters(point, center) <= float(radius_meters)


def is_valid_coordinate(lat, lon) -> bool:
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def service_area() -> Optional[tuple]:
    """Return (center, radius_meters) when a service area is configured."""
    center = getattr(settings, "SERVICE_AREA_CENTER", None)
    radius = getattr(settings, "SERVICE_AREA_RADIUS_METERS", None)
    if center is None or radius is None:
        return None
    return Point(float(center[0]), float(center[1])), float(radius)


def within_service_area(point: Point) -> bool:
    area = service_area()
    if area is None:
        return True
    center, radius = area
    return within_radius(point, center, radius)


# Base32 alphabet for geohash
_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def encode_geohash(lat: float, lon: float, precision: int = 6) -> str:
    """
    Encode latitude/longitude to geohash string.

    Args:
        lat: Latitude (-90 to 90)
        lon: Longitude (-180 to 180)
        precision: Number of characters (1-12)

    Returns:
        Geohash string
    """
    lat, lon = float(lat), float(lon)
    lat_range = (-90.0, 90.0)
    lon_range = (-180.0, 180.0)

    geohash = []
    bits = [16, 8, 4, 2, 1]
    bit = 0
    ch = 0
    is_lon = True

    while len(geohash) < precision:
        if is_lon:
            mid = (lon_range[0] + lon_range[1]) / 2
            if lon >= mid:
                ch |= bits[bit]
                lon_range = (mid, lon_range[1])
            else:
                lon_range = (lon_range[0], mid)
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat >= mid:
                ch |= bits[bit]
                lat_range = (mid, lat_range[1])
            else:
                lat_range = (lat_range[0], mid)

        is_lon = not is_lon

        if bit < 4:
            bit += 1
        else:
            geohash.append(_BASE32[ch])
            bit = 0
            ch = 0

    return "".join(geohash)


def geohash_cell_size(precision: int) -> tuple:
    """Return (lat_degrees, lon_degrees) spanned by one cell."""
    total_bits = 5 * precision
    lon_bits = (total_bits + 1) // 2
    lat_bits = total_bits // 2
    return 180.0 / (2 ** lat_bits), 360.0 / (2 ** lon_bits)


def get_covering_geohashes(lat: float, lon: float, radius_meters: float, precision: int = 6) -> Set[str]:
    """
    Get all geohash cells that cover the circular area around a point.

    Samples the circle's bounding box at half-cell spacing, so every cell
    intersecting the box is returned regardless of the radius.

    Args:
        lat: Center latitude
        lon: Center longitude
        radius_meters: Search radius in meters
        precision: Geohash precision

    Returns:
        Set of geohash strings covering the area
    """
    lat, lon = float(lat), float(lon)
    meters_per_degree = math.pi * EARTH_RADIUS_METERS / 180.0
    lat_offset = radius_meters / meters_per_degree
    # Near the poles a degree of longitude collapses; cover the full band
    cos_lat = max(abs(math.cos(math.radians(lat))), 1e-6)
    lon_offset = min(radius_meters / (meters_per_degree * cos_lat), 180.0)

    cell_lat, cell_lon = geohash_cell_size(precision)
    lat_step = cell_lat / 2
    lon_step = cell_lon / 2

    min_lat = max(lat - lat_offset, -90.0)
    max_lat = min(lat + lat_offset, 90.0)
    min_lon = lon - lon_offset
    max_lon = lon + lon_offset

    geohashes = set()
    sample_lat = min_lat
    while True:
        sample_lon = min_lon
        while True:
            wrapped_lon = ((sample_lon + 180.0) % 360.0) - 180.0
            geohashes.add(encode_geohash(sample_lat, wrapped_lon, precision))
            if sample_lon >= max_lon:
                break
            sample_lon = min(sample_lon + lon_step, max_lon)
        if sample_lat >= max_lat:
            break
        sample_lat = min(sample_lat + lat_step, max_lat)

    return geohashes
