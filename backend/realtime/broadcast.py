"""
Role-based fan-out of presence updates.

Only riders receive broadcasts: the current drivers list and live driver
locations. Drivers never hear about other drivers.

Every broadcast works off a registry snapshot taken before the first send,
so a participant added or removed mid-broadcast does not change who is
targeted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .notifications import deliver
from .registry import Participant, PresenceRegistry, Role

logger = logging.getLogger(__name__)


def build_drivers_list(registry: PresenceRegistry) -> Dict[str, Any]:
    """``drivers-list`` payload from the current driver snapshot."""
    drivers = [
        {
            "id": driver.id,
            "location": driver.location.to_dict(),
            "lastSeen": driver.last_seen_ms,
        }
        for driver in registry.list_by_role(Role.DRIVER)
        if driver.location is not None
    ]
    return {"type": "drivers-list", "drivers": drivers}


async def broadcast_to_role(
    registry: PresenceRegistry,
    role: Role,
    event: Dict[str, Any],
) -> int:
    """
    Send ``event`` to every participant with ``role``.

    Returns:
        Number of participants the event was delivered to
    """
    recipients: List[Participant] = registry.list_by_role(role)
    delivered = 0
    for participant in recipients:
        if not participant.outbound.is_open:
            continue
        if await deliver(registry, participant, event):
            delivered += 1

    logger.debug(
        "Broadcast %s to %d/%d %ss",
        event.get("type"), delivered, len(recipients), Role(role).value,
    )
    return delivered


async def send_drivers_list(registry: PresenceRegistry, rider: Participant) -> bool:
    """Send the current drivers snapshot to one rider."""
    return await deliver(registry, rider, build_drivers_list(registry))


async def broadcast_drivers_list(registry: PresenceRegistry) -> int:
    """Send a fresh drivers snapshot to every rider."""
    return await broadcast_to_role(registry, Role.RIDER, build_drivers_list(registry))


async def broadcast_driver_location(registry: PresenceRegistry, driver: Participant) -> int:
    """Tell every rider where ``driver`` is now."""
    if driver.location is None:
        return 0
    payload = {
        "type": "driver-location-update",
        "driverId": driver.id,
        "location": driver.location.to_dict(),
    }
    return await broadcast_to_role(registry, Role.RIDER, payload)
