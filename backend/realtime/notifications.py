"""
Notification helpers for sending events to a single participant.

Delivery is best-effort and single-attempt. A participant whose transport
refuses a message is treated as disconnected: it is dropped from the
registry the same way a closed socket is.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .outbound import Outbound
from .registry import Participant, PresenceRegistry

logger = logging.getLogger(__name__)


async def remove_participant(
    registry: PresenceRegistry,
    participant_id: str,
    outbound: Outbound,
) -> Optional[Participant]:
    """
    Drop the entry ``participant_id`` if ``outbound`` still owns it.

    When a driver leaves, riders get a fresh drivers list. That broadcast
    only targets riders, and removing a rider never broadcasts, so a failed
    send during it cannot trigger another one.

    Returns:
        The removed participant, or None if the entry belongs to someone else
    """
    removed = registry.remove(participant_id, outbound=outbound)
    if removed is None:
        return None

    logger.info("Participant %s (%s) removed", removed.id, removed.role.value)
    if removed.is_driver:
        from .broadcast import broadcast_drivers_list
        await broadcast_drivers_list(registry)
    return removed


async def deliver(
    registry: PresenceRegistry,
    participant: Participant,
    event: Dict[str, Any],
) -> bool:
    """
    Push ``event`` to ``participant``.

    Returns:
        True if the transport accepted the event, False otherwise
    """
    if await participant.outbound.push(event):
        logger.debug("WS -> %s: %s", participant.id, event.get("type"))
        return True

    logger.warning(
        "Delivery of %s to %s failed; removing participant",
        event.get("type"), participant.id,
    )
    await remove_participant(registry, participant.id, participant.outbound)
    return False


async def notify_participant(
    registry: PresenceRegistry,
    participant_id: str,
    event: Dict[str, Any],
) -> Optional[bool]:
    """
    Send ``event`` to the participant registered as ``participant_id``.

    Returns:
        None if nobody is registered under that id, else the delivery result
    """
    participant = registry.get(participant_id)
    if participant is None:
        logger.debug("No participant %s for %s", participant_id, event.get("type"))
        return None
    return await deliver(registry, participant, event)
