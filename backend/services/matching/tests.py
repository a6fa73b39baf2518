import math
import random

from django.test import SimpleTestCase, override_settings

from common.utils import Coordinate, distance
from common.utils.geo import EARTH_RADIUS_METERS
from realtime.outbound import RecordingOutbound
from realtime.registry import PresenceRegistry, Role, get_presence_registry
from services.matching import find_nearby_drivers, find_nearest_driver

METERS_PER_DEGREE_LAT = EARTH_RADIUS_METERS * math.pi / 180

PICKUP = Coordinate(-37.8135, 144.9635)


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    return Coordinate(origin.latitude + meters / METERS_PER_DEGREE_LAT, origin.longitude)


class FindNearbyDriversTests(SimpleTestCase):
    def setUp(self):
        self.registry = PresenceRegistry()

    def add_driver(self, driver_id, location, outbound=None):
        return self.registry.register(driver_id, Role.DRIVER, outbound or RecordingOutbound(), location)

    def ids(self, matches):
        return [m.participant.id for m in matches]

    def test_empty_registry_returns_empty_list(self):
        self.assertEqual(find_nearby_drivers(PICKUP, 5000, registry=self.registry), [])
        self.assertIsNone(find_nearest_driver(PICKUP, 5000, registry=self.registry))

    def test_empty_registry_is_not_swapped_for_the_shared_one(self):
        shared = get_presence_registry()
        shared.clear()
        self.addCleanup(shared.clear)
        shared.register("ghost", Role.DRIVER, RecordingOutbound(), north_of(PICKUP, 70))

        self.assertEqual(find_nearby_drivers(PICKUP, 5000, registry=self.registry), [])
        self.assertEqual(self.ids(find_nearby_drivers(PICKUP, 5000)), ["ghost"])

    def test_sorted_nearest_first(self):
        self.add_driver("d1", north_of(PICKUP, 200))
        self.add_driver("d2", north_of(PICKUP, 50))
        self.add_driver("d3", north_of(PICKUP, 1200))

        matches = find_nearby_drivers(PICKUP, 5000, registry=self.registry)

        self.assertEqual(self.ids(matches), ["d2", "d1", "d3"])
        self.assertAlmostEqual(matches[0].distance_meters, 50, delta=0.01)
        self.assertAlmostEqual(matches[1].distance_meters, 200, delta=0.01)
        self.assertEqual(find_nearest_driver(PICKUP, 5000, registry=self.registry).participant.id, "d2")

    def test_excludes_drivers_outside_radius(self):
        self.add_driver("near", north_of(PICKUP, 4000))
        self.add_driver("far", north_of(PICKUP, 6000))

        self.assertEqual(self.ids(find_nearby_drivers(PICKUP, 5000, registry=self.registry)), ["near"])

    def test_excludes_ineligible_participants(self):
        self.add_driver("no-location", None)
        self.add_driver("out-of-range", Coordinate(95.0, 144.9635))
        closed = RecordingOutbound()
        closed.close()
        self.add_driver("closed", north_of(PICKUP, 10), outbound=closed)
        self.registry.register("rider", Role.RIDER, RecordingOutbound(), north_of(PICKUP, 5))
        self.add_driver("ok", north_of(PICKUP, 100))

        self.assertEqual(self.ids(find_nearby_drivers(PICKUP, 5000, registry=self.registry)), ["ok"])

    def test_ties_keep_registration_order(self):
        spot = north_of(PICKUP, 300)
        for driver_id in ["a", "b", "c"]:
            self.add_driver(driver_id, spot)

        self.assertEqual(self.ids(find_nearby_drivers(PICKUP, 5000, registry=self.registry)), ["a", "b", "c"])

    def test_radius_is_inclusive(self):
        edge = north_of(PICKUP, 1000)
        self.add_driver("edge", edge)

        matches = find_nearby_drivers(PICKUP, distance(PICKUP, edge), registry=self.registry)

        self.assertEqual(self.ids(matches), ["edge"])

    def test_larger_radius_contains_smaller_radius_result(self):
        rng = random.Random(7)
        for i in range(40):
            self.add_driver(
                f"d{i}",
                Coordinate(PICKUP.latitude + rng.uniform(-0.08, 0.08), PICKUP.longitude + rng.uniform(-0.08, 0.08)),
            )

        radii = [0, 250, 1000, 2500, 5000, 10000, 20000]
        for small, large in zip(radii, radii[1:]):
            inner = self.ids(find_nearby_drivers(PICKUP, small, registry=self.registry))
            outer = self.ids(find_nearby_drivers(PICKUP, large, registry=self.registry))
            remaining = iter(outer)
            self.assertTrue(all(d in remaining for d in inner), f"{small}m result not inside {large}m result")

    def test_results_are_non_decreasing(self):
        rng = random.Random(11)
        for i in range(60):
            self.add_driver(f"d{i}", Coordinate(rng.uniform(-38.0, -37.6), rng.uniform(144.8, 145.1)))

        distances = [m.distance_meters for m in find_nearby_drivers(PICKUP, 50000, registry=self.registry)]
        self.assertEqual(distances, sorted(distances))

    @override_settings(RIDE_MATCH_RADIUS_METERS=100)
    def test_default_radius_comes_from_settings(self):
        self.add_driver("close", north_of(PICKUP, 80))
        self.add_driver("further", north_of(PICKUP, 150))

        self.assertEqual(self.ids(find_nearby_drivers(PICKUP, registry=self.registry)), ["close"])
