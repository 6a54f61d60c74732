"""
Geofence calculation tests
"""
import pytest

from fieldops import geo

from conftest import JOB_SITE, offset_north


class TestDistance:
    """Test great-circle distance"""

    def test_same_point_is_zero(self):
        assert geo.distance_meters(JOB_SITE, JOB_SITE) == 0

    def test_one_thousandth_degree_north(self):
        distance = geo.distance_meters(JOB_SITE, (40.7138, -74.0060))
        assert round(distance) == 111

    def test_symmetric(self):
        other = (40.7580, -73.9855)
        assert geo.distance_meters(JOB_SITE, other) == pytest.approx(geo.distance_meters(other, JOB_SITE))

    def test_new_york_to_los_angeles(self):
        distance = geo.distance_meters(JOB_SITE, (34.0522, -118.2437))
        assert distance == pytest.approx(3_936_000, rel=0.01)

    def test_radius_is_inclusive(self):
        assert geo.is_within_radius(100, 100)
        assert not geo.is_within_radius(100.5, 100)


class TestCheckLocation:
    """Test the radius classification used by check-in and checkout"""

    def test_inside_radius(self):
        result = geo.check_location(offset_north(JOB_SITE, 0.00045), JOB_SITE, 100)
        assert result.location_verified is True
        assert result.distance_meters == 50

    def test_outside_radius_reports_distance(self):
        result = geo.check_location(offset_north(JOB_SITE, 0.00135), JOB_SITE, 100)
        assert result.location_verified is False
        assert result.distance_meters == 150

    def test_missing_job_location_is_trusted(self):
        result = geo.check_location(JOB_SITE, None, 100)
        assert result == geo.GeoCheck(True, None)

    def test_missing_agent_location_is_trusted(self):
        result = geo.check_location((None, None), JOB_SITE, 100)
        assert result.location_verified is True
        assert result.distance_meters is None

    def test_miles_to_meters(self):
        assert geo.miles_to_meters(25) == pytest.approx(40233.6)
