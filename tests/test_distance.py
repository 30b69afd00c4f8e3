"""Unit tests for the great-circle helpers."""

import pytest

from ridecore.domain.distance import haversine_km, path_distance_km
from tests.support import DEPOT, north_of


def meridian(*offsets_km):
    return [(p.latitude, p.longitude) for p in (north_of(DEPOT, km) for km in offsets_km)]


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(12.74, 77.82, 12.74, 77.82) == 0.0

    def test_known_distance(self):
        # Hosur bus stand -> Kempegowda airport, ~52 km as the crow flies
        d = haversine_km(12.7402, 77.8240, 13.1986, 77.7066)
        assert 48.0 < d < 56.0

    def test_symmetric(self):
        d1 = haversine_km(12.0, 77.0, 13.0, 78.0)
        d2 = haversine_km(13.0, 78.0, 12.0, 77.0)
        assert abs(d1 - d2) < 1e-9

    def test_meridian_offset_is_exact(self):
        p = north_of(DEPOT, 7.9)
        d = haversine_km(DEPOT.latitude, DEPOT.longitude, p.latitude, p.longitude)
        assert d == pytest.approx(7.9, abs=1e-9)


class TestPathDistance:
    def test_sums_consecutive_hops(self):
        points = meridian(0, 2, 5, 3)
        total, used = path_distance_km(points)
        assert total == pytest.approx(2 + 3 + 2, abs=1e-9)
        assert used == 3

    def test_single_point_is_zero(self):
        assert path_distance_km(meridian(0)) == (0.0, 0)

    def test_empty_path(self):
        assert path_distance_km([]) == (0.0, 0)

    def test_gps_jump_filter(self):
        points = meridian(0, 1, 40, 41)
        total, used = path_distance_km(points, max_segment_km=5.0)
        # the two 39 km hops are dropped
        assert total == pytest.approx(1 + 1, abs=1e-9)
        assert used == 2

    def test_filter_off_by_default(self):
        points = meridian(0, 1, 40)
        total, used = path_distance_km(points)
        assert total == pytest.approx(40, abs=1e-9)
        assert used == 2
