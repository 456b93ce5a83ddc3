"""Tests for great-circle distance calculation."""

import math
import unittest

from hypothesis import given, settings, strategies as st

from trip_fixtures import CHENNAI, CHENGALPATTU, VILLUPURAM
from trainalarm.distance import UNKNOWN_DISTANCE, calculate_distance, distance, format_distance
from trainalarm.models import Coordinates

latitudes = st.floats(min_value=-90.0, max_value=90.0, allow_nan=False, allow_infinity=False)
longitudes = st.floats(min_value=-180.0, max_value=180.0, allow_nan=False, allow_infinity=False)


class TestCalculateDistance(unittest.TestCase):
    """Test the haversine implementation."""

    def test_chennai_to_villupuram(self):
        """Chennai Central to Villupuram Junction on a 6371 km sphere."""
        km = calculate_distance(*CHENNAI, *VILLUPURAM)
        self.assertAlmostEqual(km, 152.65, delta=1.0)

    def test_chennai_to_chengalpattu(self):
        km = calculate_distance(*CHENNAI, *CHENGALPATTU)
        self.assertAlmostEqual(km, 53.88, delta=0.5)

    def test_one_degree_of_latitude(self):
        km = calculate_distance(0.0, 0.0, 1.0, 0.0)
        self.assertAlmostEqual(km, 6371 * math.pi / 180, places=6)

    def test_missing_value_is_unknown(self):
        self.assertEqual(calculate_distance(None, 80.0, 12.0, 79.0), UNKNOWN_DISTANCE)
        self.assertEqual(calculate_distance(13.0, 80.0, 12.0, None), UNKNOWN_DISTANCE)
        self.assertTrue(math.isinf(UNKNOWN_DISTANCE))

    def test_malformed_values_are_unknown(self):
        """Non-numeric or out of range values degrade instead of raising."""
        self.assertEqual(calculate_distance("abc", 80.0, 12.0, 79.0), UNKNOWN_DISTANCE)
        self.assertEqual(calculate_distance(13.0, 80.0, 95.0, 79.0), UNKNOWN_DISTANCE)
        self.assertEqual(calculate_distance(13.0, float("nan"), 12.0, 79.0), UNKNOWN_DISTANCE)

    def test_numeric_strings_are_accepted(self):
        self.assertAlmostEqual(
            calculate_distance("13.0827", "80.2707", "11.9393", "79.4924"),
            calculate_distance(*CHENNAI, *VILLUPURAM),
        )

    def test_distance_with_missing_coordinates(self):
        self.assertEqual(distance(None, Coordinates(*VILLUPURAM)), UNKNOWN_DISTANCE)
        self.assertEqual(distance(Coordinates(*CHENNAI), None), UNKNOWN_DISTANCE)


class TestDistanceProperties(unittest.TestCase):
    """Property-based checks of the distance function."""

    @settings(max_examples=100)
    @given(lat=latitudes, lon=longitudes)
    def test_identity(self, lat, lon):
        self.assertEqual(calculate_distance(lat, lon, lat, lon), 0)

    @settings(max_examples=100)
    @given(lat1=latitudes, lon1=longitudes, lat2=latitudes, lon2=longitudes)
    def test_symmetry(self, lat1, lon1, lat2, lon2):
        a = Coordinates(lat1, lon1)
        b = Coordinates(lat2, lon2)
        self.assertAlmostEqual(distance(a, b), distance(b, a), places=9)

    @settings(max_examples=100)
    @given(lat1=latitudes, lon1=longitudes, lat2=latitudes, lon2=longitudes)
    def test_bounded_by_half_circumference(self, lat1, lon1, lat2, lon2):
        km = calculate_distance(lat1, lon1, lat2, lon2)
        self.assertGreaterEqual(km, 0)
        self.assertLessEqual(km, math.pi * 6371 + 1e-6)


class TestFormatDistance(unittest.TestCase):

    def test_meters_below_one_km(self):
        self.assertEqual(format_distance(0.5), "500 m")
        self.assertEqual(format_distance(0.0), "0 m")

    def test_two_decimals_below_ten_km(self):
        self.assertEqual(format_distance(1.0), "1.00 km")
        self.assertEqual(format_distance(2.346), "2.35 km")

    def test_rounded_km_otherwise(self):
        self.assertEqual(format_distance(10.0), "10 km")
        self.assertEqual(format_distance(152.65), "153 km")

    def test_unknown_distance(self):
        self.assertEqual(format_distance(UNKNOWN_DISTANCE), "--")


if __name__ == "__main__":
    unittest.main()
