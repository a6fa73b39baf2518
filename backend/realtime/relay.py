"""
Relay: routes inbound events between participants.

The relay is a dispatch table keyed by event kind. Handlers resolve their
targets through the presence registry on every call and keep no state of
their own between dispatches.

Event contracts:
    register           -> registered ack; riders get the drivers list,
                          a new driver triggers a drivers list to all riders
    location-update    -> drivers' positions fan out to every rider
    request_ride       -> offered to the single nearest driver, or the rider
                          gets no_drivers_available
    accept_ride        -> ride_accepted forwarded to the rider if still online
    decline_ride       -> logged only
    offer/answer/ice-candidate, p2p_order_*
                       -> forwarded verbatim to targetId
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from services.matching import find_nearby_drivers
from .broadcast import broadcast_driver_location, broadcast_drivers_list, send_drivers_list
from .events import (
    AcceptRide,
    DeclineRide,
    Event,
    LocationUpdate,
    PeerMessage,
    Register,
    RideRequest,
    parse_event,
)
from .exceptions import MalformedEvent, NotRegisteredError, RelayError, RoleMismatchError
from .lifecycle import Connection
from .notifications import deliver, notify_participant, remove_participant
from .registry import Participant, PresenceRegistry, Role, get_presence_registry

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_ARRIVAL = 10
DEFAULT_ESTIMATED_DURATION = 15

# Reply sent back to the sender when a peer message target is offline.
# Types missing here are dropped silently.
PEER_NOT_FOUND_REPLIES = {
    "offer": lambda target_id: {"type": "user_not_found", "targetId": target_id},
    "answer": lambda target_id: {"type": "user_not_found", "targetId": target_id},
    "p2p_order_request": lambda target_id: {"type": "driver_not_available", "driverId": target_id},
}


def _now_ms() -> int:
    return int(timezone.now().timestamp() * 1000)


class Relay:
    """Stateless event dispatcher over a ``PresenceRegistry``."""

    def __init__(self, registry: Optional[PresenceRegistry] = None, match_radius: Optional[float] = None):
        self.registry = registry if registry is not None else get_presence_registry()
        self.match_radius = match_radius
        self._handlers = {
            Register.kind: self.on_register,
            LocationUpdate.kind: self.on_location_update,
            RideRequest.kind: self.on_request_ride,
            AcceptRide.kind: self.on_accept_ride,
            DeclineRide.kind: self.on_decline_ride,
        }

    # ---------------------- Entry Points ----------------------

    async def receive(self, connection: Connection, data: Any):
        """Parse a decoded message and dispatch it, replying with ``error`` on bad input."""
        try:
            event = parse_event(data)
            await self.dispatch(connection, event)
        except RelayError as e:
            logger.info("Rejected message from %s: %s", connection.sender_id, e)
            await self.reply(connection, {"type": "error", "message": str(e)})

    async def dispatch(self, connection: Connection, event: Event):
        """Route one parsed event to its handler."""
        if self.sender(connection) is not None:
            self.registry.touch(connection.participant_id)

        if isinstance(event, PeerMessage):
            handler = self.on_peer_message
        else:
            handler = self._handlers[event.kind]
        await handler(connection, event)

    async def disconnect(self, connection: Connection):
        """Release the connection's registry entry and refresh riders if a driver left."""
        participant_id = connection.close()
        if participant_id is None:
            return

        await remove_participant(self.registry, participant_id, connection.outbound)

    # ---------------------- Helpers ----------------------

    def sender(self, connection: Connection) -> Optional[Participant]:
        """Registry entry owned by ``connection``, if any."""
        if not connection.is_bound:
            return None
        participant = self.registry.get(connection.participant_id)
        if participant is None or participant.outbound is not connection.outbound:
            return None
        return participant

    async def reply(self, connection: Connection, event: Dict[str, Any]) -> bool:
        """Send ``event`` back to the connection that sent the current message."""
        participant = self.sender(connection)
        if participant is not None:
            return await deliver(self.registry, participant, event)
        return await connection.outbound.push(event)

    def _require_sender(self, connection: Connection, event_kind: str, role: Role) -> Participant:
        participant = self.sender(connection)
        if participant is None:
            raise NotRegisteredError(f"{event_kind} requires a registered {role.value}")
        if participant.role != role:
            raise RoleMismatchError(f"{event_kind} is only allowed for {role.value}s")
        return participant

    # ---------------------- Event Handlers ----------------------

    async def on_register(self, connection: Connection, event: Register):
        participant_id = event.user_id or connection.sender_id

        previous_id = connection.bind(participant_id)
        if previous_id is not None:
            await remove_participant(self.registry, previous_id, connection.outbound)

        participant = self.registry.register(
            participant_id, event.role, connection.outbound, location=event.location
        )
        if event.location is None:
            logger.info("Participant %s registered without a location", participant_id)

        await self.reply(connection, {
            "type": "registered",
            "userId": participant.id,
            "userType": participant.role.value,
        })

        if participant.is_rider:
            await send_drivers_list(self.registry, participant)
        else:
            await broadcast_drivers_list(self.registry)

    async def on_location_update(self, connection: Connection, event: LocationUpdate):
        participant = self.sender(connection)
        if participant is None:
            logger.debug("Dropping location-update from unregistered %s", connection.sender_id)
            return

        if not self.registry.update_location(participant.id, event.location):
            return

        updated = self.registry.get(participant.id)
        if updated is not None and updated.is_driver:
            await broadcast_driver_location(self.registry, updated)

    async def on_request_ride(self, connection: Connection, event: RideRequest):
        rider = self._require_sender(connection, event.kind, Role.RIDER)
        if not event.pickup.is_matchable:
            raise MalformedEvent("request_ride requires valid pickup coordinates")

        matches = find_nearby_drivers(event.pickup, self.match_radius, registry=self.registry)
        if not matches:
            logger.info("No drivers available for ride %s from %s", event.ride_id, rider.id)
            await self.reply(connection, {"type": "no_drivers_available"})
            return

        nearest = matches[0]
        payload = {
            "type": "ride_request",
            "ride_id": event.ride_id,
            "rider_id": rider.id,
            "pickup_latitude": event.pickup.latitude,
            "pickup_longitude": event.pickup.longitude,
            "destination_latitude": event.destination.latitude,
            "destination_longitude": event.destination.longitude,
            "pickup_address": event.pickup_address or "Unknown address",
            "destination_address": event.destination_address or "Unknown address",
            "estimated_fare": event.estimated_fare,
            "estimated_duration": getattr(
                settings, "RIDE_DEFAULT_ESTIMATED_DURATION", DEFAULT_ESTIMATED_DURATION
            ),
            "passenger_name": "Passenger",
            "timestamp": event.timestamp,
        }

        logger.info(
            "Offering ride %s to driver %s (%.0fm from pickup)",
            event.ride_id, nearest.participant.id, nearest.distance_meters,
        )
        if not await deliver(self.registry, nearest.participant, payload):
            # The offer reached nobody; the rider should not wait on it
            await self.reply(connection, {"type": "no_drivers_available"})

    async def on_accept_ride(self, connection: Connection, event: AcceptRide):
        estimated_arrival = event.estimated_arrival
        if estimated_arrival is None:
            estimated_arrival = getattr(
                settings, "RIDE_DEFAULT_ESTIMATED_ARRIVAL", DEFAULT_ESTIMATED_ARRIVAL
            )

        delivered = await notify_participant(self.registry, event.rider_id, {
            "type": "ride_accepted",
            "driver_id": connection.sender_id,
            "ride_id": event.ride_id,
            "estimated_arrival": estimated_arrival,
            "timestamp": event.timestamp,
        })
        if delivered is None:
            logger.info("Rider %s gone before ride %s was accepted", event.rider_id, event.ride_id)

    async def on_decline_ride(self, connection: Connection, event: DeclineRide):
        # TODO: offer the ride to the next-nearest driver once requests are tracked per ride
        logger.info("Driver %s declined ride %s", connection.sender_id, event.ride_id)

    async def on_peer_message(self, connection: Connection, event: PeerMessage):
        target = self.registry.get(event.target_id)
        if target is None:
            logger.info("%s target %s is not online", event.kind, event.target_id)
            build_reply = PEER_NOT_FOUND_REPLIES.get(event.kind)
            if build_reply is not None:
                await self.reply(connection, build_reply(event.target_id))
            return

        logger.debug("Relaying %s: %s -> %s", event.kind, connection.sender_id, target.id)
        await deliver(self.registry, target, {
            "type": event.kind,
            event.body_key: event.body,
            "fromId": connection.sender_id,
            "timestamp": _now_ms(),
        })
