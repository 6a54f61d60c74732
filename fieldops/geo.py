"""
Geofencing utilities for field agents.

Great-circle distance between two GPS points and the radius checks used by
check-in, check-out and service-area eligibility.
"""

from collections import namedtuple
from math import radians, cos, sin, asin, sqrt

EARTH_RADIUS_METERS = 6371000.0
METERS_PER_MILE = 1609.344

GeoCheck = namedtuple("GeoCheck", ["location_verified", "distance_meters"])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def distance_meters(a, b):
    """Return the great-circle distance in metres between two (lat, lng) points."""
    lat1, lng1 = float(a[0]), float(a[1])
    lat2, lng2 = float(b[0]), float(b[1])
    return _haversine(lat1, lng1, lat2, lng2)


def is_within_radius(distance, radius_meters):
    return distance <= radius_meters


def check_location(reported, target, radius_meters):
    """Classify ``reported`` against ``target`` for a radius in metres.

    When either point is missing the check is skipped and the location is
    trusted: ``GeoCheck(True, None)``. The distance is rounded to whole
    metres because that is what clients display.
    """
    if not has_coordinates(reported) or not has_coordinates(target):
        return GeoCheck(True, None)

    distance = int(round(distance_meters(reported, target)))
    return GeoCheck(is_within_radius(distance, radius_meters), distance)


def has_coordinates(point):
    if point is None:
        return False
    lat, lng = point
    return lat is not None and lng is not None


def miles_to_meters(miles):
    return float(miles) * METERS_PER_MILE


# ---------------------------------------------------------------------------
# Internal geometry helpers
# ---------------------------------------------------------------------------

def _haversine(lat1, lng1, lat2, lng2):
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * asin(sqrt(a))
