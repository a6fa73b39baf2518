from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.test import SimpleTestCase, override_settings
from rest_framework.test import APIClient

from common.utils import Coordinate
from realtime.outbound import RecordingOutbound
from realtime.registry import PresenceRegistry, Role, get_presence_registry

PICKUP = Coordinate(-37.8135, 144.9635)


class RelayHttpTests(SimpleTestCase):
    def setUp(self):
        self.client = APIClient()
        self.registry = get_presence_registry()
        self.registry.clear()

    def tearDown(self):
        self.registry.clear()

    def test_health_check(self):
        self.registry.register("r1", Role.RIDER, RecordingOutbound())

        response = self.client.get("/health/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "healthy")
        self.assertEqual(response.data["onlineUsers"], 1)
        self.assertEqual(response.data["services"]["channels"], "healthy")

    def test_stats(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound(), PICKUP)
        self.registry.register("d2", Role.DRIVER, RecordingOutbound())
        self.registry.register("r1", Role.RIDER, RecordingOutbound())

        response = self.client.get("/stats/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total"], 3)
        self.assertEqual(response.data["drivers"], 2)
        self.assertEqual(response.data["riders"], 1)
        self.assertEqual(response.data["driverList"], [
            {"id": "d1", "location": PICKUP.to_dict()},
            {"id": "d2", "location": None},
        ])

    @override_settings(PRESENCE_MAX_AGE_SECONDS=300)
    def test_cleanup_sweeps_stale_participants(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)
        clock = {"now": now - timedelta(minutes=6)}
        registry = PresenceRegistry(clock=lambda: clock["now"])
        registry.register("stale", Role.DRIVER, RecordingOutbound())
        clock["now"] = now - timedelta(minutes=1)
        registry.register("fresh", Role.RIDER, RecordingOutbound())
        clock["now"] = now

        with patch("relay_backend.views.get_presence_registry", return_value=registry):
            response = self.client.post("/cleanup/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["beforeCount"], 2)
        self.assertEqual(response.data["afterCount"], 1)
        self.assertEqual(response.data["cleanedCount"], 1)
        self.assertIsNotNone(registry.get("fresh"))

    def test_cleanup_requires_post(self):
        self.assertEqual(self.client.get("/cleanup/").status_code, 405)

    def test_reset(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound(), PICKUP)
        self.registry.register("r1", Role.RIDER, RecordingOutbound())

        response = self.client.post("/reset/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["beforeCount"], 2)
        self.assertEqual(self.registry.count(), 0)

    def test_nearby_drivers(self):
        self.registry.register("far", Role.DRIVER, RecordingOutbound(), Coordinate(-37.8235, 144.9635))
        self.registry.register("near", Role.DRIVER, RecordingOutbound(), Coordinate(-37.8140, 144.9635))
        self.registry.register("rider", Role.RIDER, RecordingOutbound(), PICKUP)

        response = self.client.get(
            "/api/nearby-drivers/", {"userLat": PICKUP.latitude, "userLng": PICKUP.longitude, "radius": 2000}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual([d["id"] for d in response.data["drivers"]], ["near", "far"])
        self.assertLess(response.data["drivers"][0]["distance"], response.data["drivers"][1]["distance"])

    def test_nearby_drivers_radius_filter(self):
        self.registry.register("far", Role.DRIVER, RecordingOutbound(), Coordinate(-37.8235, 144.9635))

        response = self.client.get(
            "/api/nearby-drivers/", {"userLat": PICKUP.latitude, "userLng": PICKUP.longitude, "radius": 500}
        )

        self.assertEqual(response.data["drivers"], [])

    def test_nearby_drivers_bad_input(self):
        self.assertEqual(self.client.get("/api/nearby-drivers/").status_code, 400)
        self.assertEqual(
            self.client.get("/api/nearby-drivers/", {"userLat": "north", "userLng": "1"}).status_code, 400
        )
        self.assertEqual(
            self.client.get("/api/nearby-drivers/", {"userLat": "95", "userLng": "1"}).status_code, 400
        )
        self.assertEqual(
            self.client.get("/api/nearby-drivers/", {"userLat": "1", "userLng": "1", "radius": "-5"}).status_code,
            400,
        )
