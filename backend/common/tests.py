import math

from django.test import SimpleTestCase

from common.utils import Coordinate, calculate_distance, distance
from common.utils.geo import EARTH_RADIUS_METERS


class DistanceTests(SimpleTestCase):
    def setUp(self):
        self.points = [
            Coordinate(-37.813, 144.963),
            Coordinate(-37.8135, 144.9635),
            Coordinate(28.6139, 77.2090),
            Coordinate(51.5074, -0.1278),
            Coordinate(0.0, 0.0),
            Coordinate(89.9, 179.9),
            Coordinate(-89.9, -179.9),
        ]

    def test_distance_is_symmetric(self):
        for a in self.points:
            for b in self.points:
                ab = distance(a, b)
                ba = distance(b, a)
                self.assertTrue(
                    math.isclose(ab, ba, rel_tol=1e-6, abs_tol=1e-9),
                    f"{a} -> {b}: {ab} != {ba}",
                )

    def test_distance_to_self_is_zero(self):
        for point in self.points:
            self.assertEqual(distance(point, point), 0.0)

    def test_one_degree_of_latitude(self):
        expected = EARTH_RADIUS_METERS * math.pi / 180
        self.assertAlmostEqual(calculate_distance(10, 20, 11, 20), expected, places=3)

    def test_antipodal_points(self):
        self.assertAlmostEqual(
            distance(Coordinate(0, 0), Coordinate(0, 180)),
            math.pi * EARTH_RADIUS_METERS,
            delta=1,
        )

    def test_melbourne_pickup_is_tens_of_meters_away(self):
        meters = distance(Coordinate(-37.813, 144.963), Coordinate(-37.8135, 144.9635))
        self.assertGreater(meters, 50)
        self.assertLess(meters, 80)

    def test_non_finite_input_yields_nan(self):
        self.assertTrue(math.isnan(distance(Coordinate(math.nan, 0), Coordinate(0, 0))))
        self.assertTrue(math.isnan(distance(Coordinate(0, 0), Coordinate(0, math.inf))))
        self.assertTrue(math.isnan(calculate_distance(0, 0, -math.inf, 0)))

    def test_accepts_numeric_strings(self):
        self.assertAlmostEqual(
            calculate_distance("10", "20", "11", "20"),
            calculate_distance(10, 20, 11, 20),
        )


class CoordinateTests(SimpleTestCase):
    def test_in_range_is_matchable(self):
        self.assertTrue(Coordinate(-90, 180).is_matchable)
        self.assertTrue(Coordinate(45.5, -73.6).is_matchable)

    def test_out_of_range_or_non_finite_is_not_matchable(self):
        self.assertFalse(Coordinate(91, 0).is_matchable)
        self.assertFalse(Coordinate(0, -180.5).is_matchable)
        self.assertFalse(Coordinate(math.nan, 0).is_matchable)
        self.assertFalse(Coordinate(0, math.inf).is_matchable)

    def test_dict_round_trip(self):
        coord = Coordinate.from_dict({"latitude": "1.5", "longitude": 2})
        self.assertEqual(coord, Coordinate(1.5, 2.0))
        self.assertEqual(coord.to_dict(), {"latitude": 1.5, "longitude": 2.0})
        self.assertIsNone(Coordinate.from_dict(None))
