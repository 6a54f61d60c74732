"""
Validation utilities for request payloads
"""
from fieldops.errors import ValidationError


def validate_latitude(value):
    """
    Validate a latitude in degrees

    Args:
        value: Candidate latitude

    Returns:
        bool: True if valid, False otherwise
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return -90 <= value <= 90


def validate_longitude(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return -180 <= value <= 180


def read_coordinates(data, required=True):
    """Pull ``latitude``/``longitude`` out of a JSON body.

    Returns ``(lat, lng)``; both ``None`` when optional and absent.
    """
    lat = data.get('latitude')
    lng = data.get('longitude')

    if lat is None and lng is None and not required:
        return None, None
    if lat is None or lng is None:
        raise ValidationError("Location required", field="latitude,longitude")
    if not validate_latitude(lat) or not validate_longitude(lng):
        raise ValidationError("Invalid coordinates", latitude=lat, longitude=lng)
    return float(lat), float(lng)
