"""
utils.helpers unit tests
"""
import pytest

from civicalert.utils.helpers import (
    bounding_box,
    calculate_distance,
    distance_meters,
    is_within_radius,
    longitude_ranges,
)

KINGSTON = (18.0179, -76.8099)
NEARBY = (18.02, -76.81)
FAR_AWAY = (19.5, -75.0)


class TestCalculateDistance:
    """Haversine distance"""

    @pytest.mark.parametrize("a, b", [
        (KINGSTON, NEARBY),
        (KINGSTON, FAR_AWAY),
        ((0.0, 179.9), (0.0, -179.9)),
        ((-33.8688, 151.2093), (51.5074, -0.1278)),
    ])
    def test_symmetric(self, a, b):
        assert calculate_distance(*a, *b) == pytest.approx(calculate_distance(*b, *a))

    def test_same_point_is_zero(self):
        assert calculate_distance(*KINGSTON, *KINGSTON) == 0

    def test_known_distances(self):
        assert distance_meters(*KINGSTON, *NEARBY) == pytest.approx(250, abs=50)
        assert calculate_distance(*KINGSTON, *FAR_AWAY) == pytest.approx(255, abs=15)

    def test_antipodal_points(self):
        # Half the Earth's circumference
        assert calculate_distance(0, 0, 0, 180) == pytest.approx(20015.1, abs=1)


class TestIsWithinRadius:
    """Inclusive boundary"""

    def test_exact_radius_included(self):
        radius = distance_meters(*KINGSTON, *NEARBY)
        assert is_within_radius(*KINGSTON, *NEARBY, radius)

    def test_just_outside_radius_excluded(self):
        radius = distance_meters(*KINGSTON, *NEARBY)
        assert not is_within_radius(*KINGSTON, *NEARBY, radius - 1e-6)


class TestBoundingBox:
    """Coarse pre-filter box"""

    def test_contains_points_on_circle(self):
        min_lat, max_lat, min_lon, max_lon = bounding_box(*KINGSTON, 5000)
        lat, lon = NEARBY

        assert min_lat <= lat <= max_lat
        assert min_lon <= lon <= max_lon

    def test_excludes_far_point(self):
        min_lat, max_lat, min_lon, max_lon = bounding_box(*KINGSTON, 5000)
        lat, lon = FAR_AWAY

        assert not (min_lat <= lat <= max_lat and min_lon <= lon <= max_lon)

    def test_pole_spans_all_longitudes(self):
        _, _, min_lon, max_lon = bounding_box(90.0, 0.0, 1000)
        assert max_lon - min_lon == 360.0


class TestLongitudeRanges:
    """Antimeridian handling for the bounding box"""

    def test_window_inside_range_is_unchanged(self):
        assert longitude_ranges(-77.0, -76.0) == [(-77.0, -76.0)]

    def test_window_past_east_edge_wraps(self):
        _, _, min_lon, max_lon = bounding_box(0.0, 179.99, 5000)

        ranges = longitude_ranges(min_lon, max_lon)

        assert len(ranges) == 2
        assert any(low <= -179.99 <= high for low, high in ranges)
        assert any(low <= 179.99 <= high for low, high in ranges)

    def test_window_past_west_edge_wraps(self):
        ranges = longitude_ranges(-180.5, -179.5)

        assert ranges == [(179.5, 180.0), (-180.0, -179.5)]

    def test_pole_window_covers_everything(self):
        _, _, min_lon, max_lon = bounding_box(90.0, 0.0, 1000)

        assert longitude_ranges(min_lon, max_lon) == [(-180.0, 180.0)]
