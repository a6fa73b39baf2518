import math
import threading
from datetime import datetime, timedelta, timezone as dt_timezone

from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, override_settings

from common.utils import Coordinate
from common.utils.geo import EARTH_RADIUS_METERS
from relay_backend.asgi import application
from .events import AcceptRide, PeerMessage, Register, RideRequest, parse_event
from .exceptions import MalformedEvent, UnknownEventType
from .lifecycle import Connection
from .outbound import RecordingOutbound
from .registry import PresenceRegistry, Role, get_presence_registry
from .relay import Relay
from .sweeper import PresenceSweeper, start_presence_sweeper

METERS_PER_DEGREE_LAT = EARTH_RADIUS_METERS * math.pi / 180

DRIVER_SPOT = Coordinate(-37.813, 144.963)
PICKUP = Coordinate(-37.8135, 144.9635)


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    return Coordinate(origin.latitude + meters / METERS_PER_DEGREE_LAT, origin.longitude)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def ride_request_payload(pickup=PICKUP, ride_id="ride-1"):
    return {
        "type": "request_ride",
        "ride_id": ride_id,
        "pickup_latitude": pickup.latitude,
        "pickup_longitude": pickup.longitude,
        "destination_latitude": -37.8183,
        "destination_longitude": 144.9671,
        "estimated_fare": 18.5,
        "timestamp": 1700000000000,
    }


# ---------------------- Registry ----------------------

class PresenceRegistryTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = PresenceRegistry(clock=self.clock)

    def test_register_and_get(self):
        outbound = RecordingOutbound()
        participant = self.registry.register("d1", Role.DRIVER, outbound, DRIVER_SPOT)

        self.assertEqual(self.registry.get("d1"), participant)
        self.assertEqual(participant.id, "d1")
        self.assertEqual(participant.location, DRIVER_SPOT)
        self.assertEqual(participant.last_seen, self.clock.now)
        self.assertIs(participant.outbound, outbound)
        self.assertIsNone(self.registry.get("missing"))

    def test_second_registration_overwrites(self):
        self.registry.register("u1", Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)
        self.registry.register("u1", "rider", RecordingOutbound())

        participant = self.registry.get("u1")
        self.assertEqual(participant.role, Role.RIDER)
        self.assertIsNone(participant.location)
        self.assertEqual(self.registry.count(), 1)

    def test_update_location(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound())
        self.clock.advance(seconds=30)

        self.assertTrue(self.registry.update_location("d1", DRIVER_SPOT))

        participant = self.registry.get("d1")
        self.assertEqual(participant.location, DRIVER_SPOT)
        self.assertEqual(participant.last_seen, self.clock.now)

    def test_update_location_for_unknown_id_is_ignored(self):
        self.assertFalse(self.registry.update_location("ghost", DRIVER_SPOT))
        self.assertIsNone(self.registry.get("ghost"))
        self.assertEqual(self.registry.count(), 0)

    def test_remove_excludes_from_role_listing(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)
        self.registry.register("d2", Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)

        removed = self.registry.remove("d1")

        self.assertEqual(removed.id, "d1")
        self.assertIsNone(self.registry.get("d1"))
        self.assertEqual([p.id for p in self.registry.list_by_role(Role.DRIVER)], ["d2"])

    def test_remove_absent_id_is_noop(self):
        self.assertIsNone(self.registry.remove("nobody"))

    def test_remove_with_foreign_outbound_keeps_entry(self):
        old, new = RecordingOutbound(), RecordingOutbound()
        self.registry.register("u1", Role.RIDER, old)
        self.registry.register("u1", Role.RIDER, new)

        self.assertIsNone(self.registry.remove("u1", outbound=old))
        self.assertIs(self.registry.get("u1").outbound, new)
        self.assertIsNotNone(self.registry.remove("u1", outbound=new))

    def test_list_by_role_is_a_snapshot(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)
        self.registry.register("r1", Role.RIDER, RecordingOutbound())

        drivers = self.registry.list_by_role(Role.DRIVER)
        self.registry.update_location("d1", PICKUP)
        self.registry.register("d2", Role.DRIVER, RecordingOutbound())

        self.assertEqual([(p.id, p.location) for p in drivers], [("d1", DRIVER_SPOT)])
        self.assertEqual([p.id for p in self.registry.list_by_role("rider")], ["r1"])

    def test_sweep_removes_only_stale_entries(self):
        self.registry.register("stale", Role.DRIVER, RecordingOutbound())
        self.clock.advance(minutes=5)
        self.registry.register("fresh", Role.RIDER, RecordingOutbound())
        self.clock.advance(minutes=1)

        removed = self.registry.sweep(timedelta(minutes=5))

        self.assertEqual(removed, 1)
        self.assertIsNone(self.registry.get("stale"))
        self.assertIsNotNone(self.registry.get("fresh"))

    def test_touch_keeps_entry_alive(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound())
        self.clock.advance(minutes=4)
        self.assertTrue(self.registry.touch("d1"))
        self.clock.advance(minutes=4)

        self.assertEqual(self.registry.sweep(timedelta(minutes=5)), 0)
        self.assertFalse(self.registry.touch("ghost"))

    def test_clear_and_counts(self):
        self.registry.register("d1", Role.DRIVER, RecordingOutbound())
        self.registry.register("r1", Role.RIDER, RecordingOutbound())
        self.registry.register("r2", Role.RIDER, RecordingOutbound())

        self.assertEqual(self.registry.count_by_role(), {"driver": 1, "rider": 2})
        self.assertIsNotNone(self.registry.get("r2"))
        self.assertEqual(self.registry.clear(), 3)
        self.assertEqual(self.registry.count(), 0)

    def test_concurrent_mutations_leave_consistent_state(self):
        registry = PresenceRegistry()

        def worker(prefix):
            for i in range(200):
                pid = f"{prefix}-{i}"
                registry.register(pid, Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)
                registry.update_location(pid, PICKUP)
                registry.list_by_role(Role.DRIVER)
                if i % 2:
                    registry.remove(pid)

        threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        drivers = registry.list_by_role(Role.DRIVER)
        self.assertEqual(len(drivers), 8 * 100)
        self.assertTrue(all(p.location == PICKUP for p in drivers))

    def test_singleton(self):
        self.assertIs(get_presence_registry(), get_presence_registry())


# ---------------------- Event Parsing ----------------------

class ParseEventTests(SimpleTestCase):
    def test_register_accepts_role_alias(self):
        event = parse_event({"type": "register", "role": "driver", "location": {"latitude": 1, "longitude": 2}})
        self.assertEqual(event, Register(role=Role.DRIVER, location=Coordinate(1.0, 2.0)))

    def test_register_with_user_id(self):
        event = parse_event({"type": "register", "userType": "rider", "userId": "r-9"})
        self.assertEqual(event.user_id, "r-9")
        self.assertIsNone(event.location)

    def test_request_ride(self):
        event = parse_event(ride_request_payload())
        self.assertIsInstance(event, RideRequest)
        self.assertEqual(event.pickup, PICKUP)
        self.assertEqual(event.ride_id, "ride-1")

    def test_accept_ride_optional_fields(self):
        event = parse_event({"type": "accept_ride", "rider_id": "r1", "ride_id": 7})
        self.assertEqual(event, AcceptRide(rider_id="r1", ride_id=7))

    def test_peer_message(self):
        event = parse_event({"type": "ice-candidate", "targetId": "d1", "candidate": {"sdpMid": "0"}})
        self.assertEqual(
            event,
            PeerMessage(kind="ice-candidate", target_id="d1", body_key="candidate", body={"sdpMid": "0"}),
        )

    def test_malformed_payloads(self):
        bad = [
            [],
            {"userType": "driver"},
            {"type": "register", "userType": "pilot"},
            {"type": "location-update"},
            {"type": "location-update", "location": {"latitude": "north", "longitude": 1}},
            {"type": "location-update", "location": {"latitude": math.nan, "longitude": 1}},
            {"type": "request_ride", "ride_id": "x"},
            {"type": "accept_ride", "ride_id": "x"},
            {"type": "offer", "offer": {}},
        ]
        for data in bad:
            with self.assertRaises(MalformedEvent, msg=data):
                parse_event(data)

    def test_unknown_type(self):
        with self.assertRaises(UnknownEventType):
            parse_event({"type": "teleport"})


# ---------------------- Relay ----------------------

class RelayTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = PresenceRegistry(clock=self.clock)
        self.relay = Relay(self.registry)

    def connection(self, fail=False):
        return Connection(RecordingOutbound(fail=fail))

    async def join(self, role, user_id, location=None):
        conn = self.connection()
        payload = {"type": "register", "userType": role, "userId": user_id}
        if location is not None:
            payload["location"] = location.to_dict()
        await self.relay.receive(conn, payload)
        return conn

    def events(self, conn):
        return conn.outbound.events

    async def test_register_driver_acks(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)

        self.assertEqual(self.events(driver), [{"type": "registered", "userId": "d1", "userType": "driver"}])
        self.assertEqual(self.registry.get("d1").location, DRIVER_SPOT)
        self.assertTrue(driver.is_bound)

    async def test_register_without_user_id_uses_connection_id(self):
        conn = self.connection()
        await self.relay.receive(conn, {"type": "register", "userType": "rider"})

        self.assertIsNotNone(self.registry.get(conn.connection_id))
        self.assertEqual(self.events(conn)[0]["userId"], conn.connection_id)

    async def test_rider_gets_drivers_snapshot_from_registration_time(self):
        await self.join("driver", "d1", DRIVER_SPOT)
        await self.join("driver", "no-location")
        rider = await self.join("rider", "r1")
        await self.join("driver", "d2", PICKUP)

        lists = rider.outbound.of_type("drivers-list")
        self.assertEqual(self.events(rider)[0]["type"], "registered")
        self.assertEqual(
            lists[0]["drivers"],
            [{"id": "d1", "location": DRIVER_SPOT.to_dict(), "lastSeen": self.registry.get("d1").last_seen_ms}],
        )
        # later driver registrations arrive as separate broadcasts
        self.assertEqual([d["id"] for d in lists[1]["drivers"]], ["d1", "d2"])

    async def test_drivers_never_receive_driver_broadcasts(self):
        d1 = await self.join("driver", "d1", DRIVER_SPOT)
        await self.join("driver", "d2", PICKUP)
        await self.relay.receive(d1, {"type": "location-update", "location": PICKUP.to_dict()})

        self.assertEqual([e["type"] for e in self.events(d1)], ["registered"])

    async def test_driver_location_update_fans_out_to_riders(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        r1 = await self.join("rider", "r1")
        r2 = await self.join("rider", "r2")
        self.clock.advance(seconds=10)

        await self.relay.receive(driver, {"type": "location-update", "location": PICKUP.to_dict()})

        expected = {"type": "driver-location-update", "driverId": "d1", "location": PICKUP.to_dict()}
        self.assertEqual(r1.outbound.of_type("driver-location-update"), [expected])
        self.assertEqual(r2.outbound.of_type("driver-location-update"), [expected])
        self.assertEqual(self.registry.get("d1").location, PICKUP)
        self.assertEqual(self.registry.get("d1").last_seen, self.clock.now)

    async def test_rider_location_update_is_not_broadcast(self):
        rider = await self.join("rider", "r1")
        other = await self.join("rider", "r2")

        await self.relay.receive(rider, {"type": "location-update", "location": PICKUP.to_dict()})

        self.assertEqual(self.registry.get("r1").location, PICKUP)
        self.assertEqual(other.outbound.of_type("driver-location-update"), [])

    async def test_location_update_from_unregistered_connection_is_dropped(self):
        rider = await self.join("rider", "r1")
        stranger = self.connection()

        await self.relay.receive(stranger, {"type": "location-update", "location": PICKUP.to_dict()})

        self.assertEqual(self.events(stranger), [])
        self.assertEqual(self.registry.count(), 1)
        self.assertEqual(rider.outbound.of_type("driver-location-update"), [])

    async def test_request_ride_goes_to_driver_in_radius(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        rider = await self.join("rider", "r1")
        rider_before = len(self.events(rider))

        await self.relay.receive(rider, ride_request_payload())

        offers = driver.outbound.of_type("ride_request")
        self.assertEqual(len(offers), 1)
        self.assertEqual(offers[0]["ride_id"], "ride-1")
        self.assertEqual(offers[0]["rider_id"], "r1")
        self.assertEqual(offers[0]["pickup_latitude"], PICKUP.latitude)
        self.assertEqual(offers[0]["estimated_fare"], 18.5)
        self.assertEqual(offers[0]["pickup_address"], "Unknown address")
        self.assertEqual(offers[0]["estimated_duration"], 15)
        self.assertEqual(offers[0]["timestamp"], 1700000000000)
        self.assertEqual(len(self.events(rider)), rider_before)

    async def test_request_ride_without_drivers(self):
        rider = await self.join("rider", "r1")
        rider_before = len(self.events(rider))

        await self.relay.receive(rider, ride_request_payload())

        self.assertEqual(self.events(rider)[rider_before:], [{"type": "no_drivers_available"}])

    async def test_request_ride_only_reaches_nearest_driver(self):
        far = await self.join("driver", "d1", north_of(PICKUP, 200))
        near = await self.join("driver", "d2", north_of(PICKUP, 50))
        rider = await self.join("rider", "r1")

        await self.relay.receive(rider, ride_request_payload())

        self.assertEqual(len(near.outbound.of_type("ride_request")), 1)
        self.assertEqual(far.outbound.of_type("ride_request"), [])

    async def test_request_ride_ignores_drivers_beyond_radius(self):
        far = await self.join("driver", "d1", north_of(PICKUP, 5100))
        rider = await self.join("rider", "r1")

        await self.relay.receive(rider, ride_request_payload())

        self.assertEqual(far.outbound.of_type("ride_request"), [])
        self.assertEqual(rider.outbound.of_type("no_drivers_available"), [{"type": "no_drivers_available"}])

    async def test_request_ride_requires_registered_rider(self):
        await self.join("driver", "d0", DRIVER_SPOT)
        stranger = self.connection()
        driver = await self.join("driver", "d1", DRIVER_SPOT)

        await self.relay.receive(stranger, ride_request_payload())
        await self.relay.receive(driver, ride_request_payload())

        self.assertEqual(
            self.events(stranger),
            [{"type": "error", "message": "request_ride requires a registered rider"}],
        )
        self.assertEqual(
            driver.outbound.of_type("error"),
            [{"type": "error", "message": "request_ride is only allowed for riders"}],
        )

    async def test_request_ride_rejects_unusable_pickup(self):
        await self.join("driver", "d1", DRIVER_SPOT)
        rider = await self.join("rider", "r1")

        await self.relay.receive(rider, ride_request_payload(pickup=Coordinate(95.0, 144.9)))

        self.assertEqual(rider.outbound.of_type("error")[0]["message"], "request_ride requires valid pickup coordinates")

    async def test_failed_offer_drops_driver_and_tells_rider(self):
        broken = Connection(RecordingOutbound())
        await self.relay.receive(broken, {
            "type": "register", "userType": "driver", "userId": "d1", "location": DRIVER_SPOT.to_dict(),
        })
        broken.outbound.fail = True
        rider = await self.join("rider", "r1")

        await self.relay.receive(rider, ride_request_payload())

        self.assertIsNone(self.registry.get("d1"))
        self.assertEqual(rider.outbound.of_type("no_drivers_available"), [{"type": "no_drivers_available"}])

    async def test_failed_offer_refreshes_riders_drivers_list(self):
        broken = Connection(RecordingOutbound())
        await self.relay.receive(broken, {
            "type": "register", "userType": "driver", "userId": "d1", "location": DRIVER_SPOT.to_dict(),
        })
        await self.join("driver", "d2", north_of(PICKUP, 3000))
        rider = await self.join("rider", "r1")
        broken.outbound.fail = True

        await self.relay.receive(rider, ride_request_payload())

        lists = rider.outbound.of_type("drivers-list")
        self.assertEqual([d["id"] for d in lists[0]["drivers"]], ["d1", "d2"])
        self.assertEqual([d["id"] for d in lists[-1]["drivers"]], ["d2"])
        self.assertEqual(self.events(rider)[-1], {"type": "no_drivers_available"})

    async def test_failed_rider_delivery_during_broadcast_does_not_rebroadcast(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        r1 = await self.join("rider", "r1")
        r2 = await self.join("rider", "r2")
        r2.outbound.fail = True
        before = len(self.events(r1))

        await self.relay.receive(driver, {"type": "location-update", "location": PICKUP.to_dict()})

        self.assertIsNone(self.registry.get("r2"))
        self.assertIsNotNone(self.registry.get("r1"))
        self.assertEqual([e["type"] for e in self.events(r1)[before:]], ["driver-location-update"])

    async def test_relay_keeps_an_empty_registry_it_was_given(self):
        shared = get_presence_registry()
        shared.clear()
        self.addCleanup(shared.clear)
        shared.register("ghost", Role.DRIVER, RecordingOutbound(), DRIVER_SPOT)

        registry = PresenceRegistry()
        relay = Relay(registry)
        self.assertIs(relay.registry, registry)

        rider = Connection(RecordingOutbound())
        await relay.receive(rider, {"type": "register", "userType": "rider", "userId": "r1"})
        await relay.receive(rider, ride_request_payload())

        self.assertEqual(rider.outbound.of_type("drivers-list")[0]["drivers"], [])
        self.assertEqual(rider.outbound.of_type("no_drivers_available"), [{"type": "no_drivers_available"}])
        self.assertIsNone(shared.get("r1"))

    async def test_accept_ride_notifies_rider(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        rider = await self.join("rider", "r1")

        await self.relay.receive(driver, {"type": "accept_ride", "rider_id": "r1", "ride_id": "ride-1", "timestamp": 5})

        self.assertEqual(
            rider.outbound.of_type("ride_accepted"),
            [{"type": "ride_accepted", "driver_id": "d1", "ride_id": "ride-1", "estimated_arrival": 10, "timestamp": 5}],
        )

    async def test_accept_ride_for_departed_rider_is_silent(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)

        await self.relay.receive(
            driver, {"type": "accept_ride", "rider_id": "gone", "ride_id": "ride-1", "estimated_arrival": 4}
        )

        self.assertEqual([e["type"] for e in self.events(driver)], ["registered"])

    async def test_decline_ride_changes_nothing(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        rider = await self.join("rider", "r1")
        before = (len(self.events(driver)), len(self.events(rider)), self.registry.count())

        await self.relay.receive(driver, {"type": "decline_ride", "ride_id": "ride-1"})

        self.assertEqual((len(self.events(driver)), len(self.events(rider)), self.registry.count()), before)

    async def test_traffic_refreshes_last_seen(self):
        driver = await self.join("driver", "d1", DRIVER_SPOT)
        self.clock.advance(minutes=3)

        await self.relay.receive(driver, {"type": "decline_ride", "ride_id": "x"})

        self.assertEqual(self.registry.get("d1").last_seen, self.clock.now)

    async def test_driver_disconnect_refreshes_riders(self):
        d1 = await self.join("driver", "d1", DRIVER_SPOT)
        await self.join("driver", "d2", PICKUP)
        rider = await self.join("rider", "r1")

        await self.relay.disconnect(d1)

        self.assertIsNone(self.registry.get("d1"))
        self.assertNotIn("d1", [p.id for p in self.registry.list_by_role(Role.DRIVER)])
        latest = rider.outbound.of_type("drivers-list")[-1]
        self.assertEqual([d["id"] for d in latest["drivers"]], ["d2"])
        self.assertFalse(d1.outbound.is_open)

    async def test_rider_disconnect_does_not_broadcast(self):
        r1 = await self.join("rider", "r1")
        r2 = await self.join("rider", "r2")
        before = len(self.events(r2))

        await self.relay.disconnect(r1)

        self.assertIsNone(self.registry.get("r1"))
        self.assertEqual(len(self.events(r2)), before)

    async def test_unregistered_disconnect_is_noop(self):
        await self.join("rider", "r1")
        await self.relay.disconnect(self.connection())
        self.assertEqual(self.registry.count(), 1)

    async def test_stale_connection_close_keeps_newer_registration(self):
        old = await self.join("rider", "u1")
        new = await self.join("rider", "u1")

        await self.relay.disconnect(old)

        self.assertIs(self.registry.get("u1").outbound, new.outbound)

    async def test_reregistering_under_new_id_releases_old_one(self):
        conn = await self.join("rider", "a")
        await self.relay.receive(conn, {"type": "register", "userType": "rider", "userId": "b"})

        self.assertIsNone(self.registry.get("a"))
        self.assertIsNotNone(self.registry.get("b"))

    async def test_signaling_is_forwarded_to_target(self):
        rider = await self.join("rider", "r1")
        driver = await self.join("driver", "d1", DRIVER_SPOT)

        await self.relay.receive(rider, {"type": "offer", "targetId": "d1", "offer": {"sdp": "v=0"}})
        await self.relay.receive(driver, {"type": "answer", "targetId": "r1", "answer": {"sdp": "v=0"}})

        offer = driver.outbound.of_type("offer")[0]
        self.assertEqual((offer["offer"], offer["fromId"]), ({"sdp": "v=0"}, "r1"))
        self.assertIsInstance(offer["timestamp"], int)
        self.assertEqual(rider.outbound.of_type("answer")[0]["fromId"], "d1")

    async def test_signaling_to_missing_target(self):
        rider = await self.join("rider", "r1")
        before = len(self.events(rider))

        await self.relay.receive(rider, {"type": "offer", "targetId": "ghost", "offer": {}})
        await self.relay.receive(rider, {"type": "ice-candidate", "targetId": "ghost", "candidate": {}})
        await self.relay.receive(rider, {"type": "p2p_order_request", "targetId": "ghost", "orderRequest": {}})
        await self.relay.receive(rider, {"type": "p2p_order_response", "targetId": "ghost", "orderResponse": {}})

        self.assertEqual(self.events(rider)[before:], [
            {"type": "user_not_found", "targetId": "ghost"},
            {"type": "driver_not_available", "driverId": "ghost"},
        ])

    async def test_p2p_order_fallback_is_forwarded(self):
        rider = await self.join("rider", "r1")
        driver = await self.join("driver", "d1", DRIVER_SPOT)

        await self.relay.receive(rider, {"type": "p2p_order_request", "targetId": "d1", "orderRequest": {"fare": 9}})

        forwarded = driver.outbound.of_type("p2p_order_request")[0]
        self.assertEqual(forwarded["orderRequest"], {"fare": 9})
        self.assertEqual(forwarded["fromId"], "r1")

    async def test_bad_messages_get_error_replies(self):
        conn = self.connection()

        await self.relay.receive(conn, {"type": "teleport"})
        await self.relay.receive(conn, {"type": "register"})
        await self.relay.receive(conn, "not a dict")

        errors = conn.outbound.of_type("error")
        self.assertEqual(len(errors), 3)
        self.assertEqual(errors[0]["message"], "Unknown message type: teleport")
        self.assertEqual(self.registry.count(), 0)


# ---------------------- Sweeper ----------------------

class PresenceSweeperTests(SimpleTestCase):
    def test_sweep_once(self):
        clock = FakeClock()
        registry = PresenceRegistry(clock=clock)
        registry.register("old", Role.DRIVER, RecordingOutbound())
        clock.advance(minutes=5)
        registry.register("new", Role.RIDER, RecordingOutbound())
        clock.advance(minutes=1)

        sweeper = PresenceSweeper(registry, timedelta(minutes=5), interval_seconds=60)

        self.assertEqual(sweeper.sweep_once(), 1)
        self.assertEqual([p.id for p in registry.list_by_role(Role.RIDER)], ["new"])

    @override_settings(PRESENCE_SWEEP_ENABLED=False)
    def test_disabled_by_settings(self):
        self.assertIsNone(start_presence_sweeper())


# ---------------------- WebSocket Consumer ----------------------

class RelayConsumerTests(SimpleTestCase):
    def setUp(self):
        get_presence_registry().clear()

    def tearDown(self):
        get_presence_registry().clear()

    async def connect(self):
        communicator = WebsocketCommunicator(application, "/ws/")
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        return communicator

    async def test_ride_flow_over_websocket(self):
        driver = await self.connect()
        rider = await self.connect()
        try:
            await driver.send_json_to({
                "type": "register", "userType": "driver", "userId": "d1", "location": DRIVER_SPOT.to_dict(),
            })
            self.assertEqual(
                await driver.receive_json_from(),
                {"type": "registered", "userId": "d1", "userType": "driver"},
            )

            await rider.send_json_to({"type": "register", "userType": "rider", "userId": "r1"})
            self.assertEqual((await rider.receive_json_from())["type"], "registered")
            drivers_list = await rider.receive_json_from()
            self.assertEqual(drivers_list["type"], "drivers-list")
            self.assertEqual([d["id"] for d in drivers_list["drivers"]], ["d1"])

            await rider.send_json_to(ride_request_payload())
            offer = await driver.receive_json_from()
            self.assertEqual(offer["type"], "ride_request")
            self.assertEqual(offer["rider_id"], "r1")

            await driver.send_json_to({"type": "accept_ride", "rider_id": "r1", "ride_id": "ride-1", "estimated_arrival": 6})
            accepted = await rider.receive_json_from()
            self.assertEqual(accepted["type"], "ride_accepted")
            self.assertEqual(accepted["driver_id"], "d1")
            self.assertEqual(accepted["estimated_arrival"], 6)

            await driver.disconnect()
            refreshed = await rider.receive_json_from()
            self.assertEqual(refreshed, {"type": "drivers-list", "drivers": []})
            self.assertIsNone(get_presence_registry().get("d1"))
        finally:
            await rider.disconnect()

        self.assertEqual(get_presence_registry().count(), 0)

    async def test_no_drivers_available(self):
        rider = await self.connect()
        try:
            await rider.send_json_to({"type": "register", "userType": "rider", "userId": "r1"})
            await rider.receive_json_from()
            self.assertEqual(await rider.receive_json_from(), {"type": "drivers-list", "drivers": []})

            await rider.send_json_to(ride_request_payload())

            self.assertEqual(await rider.receive_json_from(), {"type": "no_drivers_available"})
            self.assertTrue(await rider.receive_nothing())
        finally:
            await rider.disconnect()

    async def test_invalid_frames_do_not_close_socket(self):
        communicator = await self.connect()
        try:
            await communicator.send_to(text_data="{not json")
            self.assertEqual(
                await communicator.receive_json_from(),
                {"type": "error", "message": "Message is not valid JSON"},
            )

            await communicator.send_json_to({"latitude": 1})
            self.assertEqual(
                await communicator.receive_json_from(),
                {"type": "error", "message": "Message type is required"},
            )

            await communicator.send_json_to({"type": "location-update", "location": {"latitude": 1}})
            error = await communicator.receive_json_from()
            self.assertEqual(error["type"], "error")

            await communicator.send_json_to({"type": "register", "userType": "rider", "userId": "r1"})
            self.assertEqual((await communicator.receive_json_from())["type"], "registered")
        finally:
            await communicator.disconnect()
