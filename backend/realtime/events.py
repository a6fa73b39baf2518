"""
Inbound relay events.

Every WebSocket message is parsed into one of the frozen dataclasses below
before it reaches the relay. ``parse_event`` is the only entry point; it
raises ``MalformedEvent`` or ``UnknownEventType`` and never returns a
half-built event.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from rest_framework import serializers as drf_serializers

from common.utils import Coordinate
from .exceptions import MalformedEvent, UnknownEventType
from .registry import Role
from . import serializers


@dataclass(frozen=True)
class Register:
    kind = "register"
    role: Role
    user_id: Optional[str] = None
    location: Optional[Coordinate] = None


@dataclass(frozen=True)
class LocationUpdate:
    kind = "location-update"
    location: Coordinate


@dataclass(frozen=True)
class RideRequest:
    kind = "request_ride"
    ride_id: Any
    pickup: Coordinate
    destination: Coordinate
    estimated_fare: float
    timestamp: Any
    pickup_address: Optional[str] = None
    destination_address: Optional[str] = None


@dataclass(frozen=True)
class AcceptRide:
    kind = "accept_ride"
    rider_id: str
    ride_id: Any
    estimated_arrival: Optional[float] = None
    timestamp: Any = None


@dataclass(frozen=True)
class DeclineRide:
    kind = "decline_ride"
    ride_id: Any


@dataclass(frozen=True)
class PeerMessage:
    """
    Message forwarded verbatim to another participant.

    ``kind`` is one of the signaling types (offer, answer, ice-candidate) or
    the P2P order fallback types; ``body_key`` names the payload field.
    """
    kind: str
    target_id: str
    body_key: str
    body: Any


Event = Union[Register, LocationUpdate, RideRequest, AcceptRide, DeclineRide, PeerMessage]


# Peer message type -> field carrying the opaque body
PEER_BODY_KEYS = {
    "offer": "offer",
    "answer": "answer",
    "ice-candidate": "candidate",
    "p2p_order_request": "orderRequest",
    "p2p_order_response": "orderResponse",
}


def _validated(serializer_class, data: Dict[str, Any], msg_type: str) -> Dict[str, Any]:
    serializer = serializer_class(data=data)
    try:
        serializer.is_valid(raise_exception=True)
    except drf_serializers.ValidationError as e:
        raise MalformedEvent(f"Invalid {msg_type} payload: {e.detail}") from e
    return serializer.validated_data


_coordinate = Coordinate.from_dict


def _parse_register(data):
    data = dict(data)
    # "role" is accepted as an alias of "userType"
    if "userType" not in data and "role" in data:
        data["userType"] = data["role"]
    attrs = _validated(serializers.RegisterSerializer, data, "register")
    return Register(
        role=Role(attrs["userType"]),
        user_id=attrs.get("userId"),
        location=_coordinate(attrs.get("location")),
    )


def _parse_location_update(data):
    attrs = _validated(serializers.LocationUpdateSerializer, data, "location-update")
    return LocationUpdate(location=_coordinate(attrs["location"]))


def _parse_request_ride(data):
    attrs = _validated(serializers.RideRequestSerializer, data, "request_ride")
    return RideRequest(
        ride_id=attrs["ride_id"],
        pickup=Coordinate(attrs["pickup_latitude"], attrs["pickup_longitude"]),
        destination=Coordinate(attrs["destination_latitude"], attrs["destination_longitude"]),
        estimated_fare=attrs["estimated_fare"],
        timestamp=attrs["timestamp"],
        pickup_address=attrs.get("pickup_address"),
        destination_address=attrs.get("destination_address"),
    )


def _parse_accept_ride(data):
    attrs = _validated(serializers.AcceptRideSerializer, data, "accept_ride")
    return AcceptRide(
        rider_id=attrs["rider_id"],
        ride_id=attrs["ride_id"],
        estimated_arrival=attrs.get("estimated_arrival"),
        timestamp=attrs.get("timestamp"),
    )


def _parse_decline_ride(data):
    attrs = _validated(serializers.DeclineRideSerializer, data, "decline_ride")
    return DeclineRide(ride_id=attrs["ride_id"])


_PARSERS = {
    Register.kind: _parse_register,
    LocationUpdate.kind: _parse_location_update,
    RideRequest.kind: _parse_request_ride,
    AcceptRide.kind: _parse_accept_ride,
    DeclineRide.kind: _parse_decline_ride,
}


def parse_event(data: Any) -> Event:
    """Turn a decoded JSON message into a typed event."""
    if not isinstance(data, dict):
        raise MalformedEvent("Message must be a JSON object")

    msg_type = data.get("type")
    if not msg_type or not isinstance(msg_type, str):
        raise MalformedEvent("Message type is required")

    if msg_type in PEER_BODY_KEYS:
        attrs = _validated(serializers.TargetedSerializer, data, msg_type)
        body_key = PEER_BODY_KEYS[msg_type]
        return PeerMessage(
            kind=msg_type,
            target_id=attrs["targetId"],
            body_key=body_key,
            body=data.get(body_key),
        )

    parser = _PARSERS.get(msg_type)
    if parser is None:
        raise UnknownEventType(f"Unknown message type: {msg_type}")
    return parser(data)
