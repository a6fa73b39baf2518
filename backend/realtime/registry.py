"""
In-memory presence registry for online drivers and riders.

This module provides:
- The ``Participant`` record for one registered connection
- ``PresenceRegistry``, the single owner of all online state
- A process-wide singleton accessor

Architecture:
- Participants are immutable; every mutation swaps the whole record under
  the registry lock, so snapshots never expose half-applied updates
- One ``threading.Lock`` guards the mapping; the WebSocket event loop and the
  background sweeper thread both go through it
- Nothing is persisted; a process restart starts with an empty registry
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from django.utils import timezone

from common.utils import Coordinate
from .outbound import Outbound

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    DRIVER = "driver"
    RIDER = "rider"


@dataclass(frozen=True)
class Participant:
    """One registered online actor."""
    id: str
    role: Role
    location: Optional[Coordinate]
    last_seen: datetime
    outbound: Outbound

    @property
    def is_driver(self) -> bool:
        return self.role == Role.DRIVER

    @property
    def is_rider(self) -> bool:
        return self.role == Role.RIDER

    @property
    def is_matchable(self) -> bool:
        """Drivers are matchable with a usable location and a live connection."""
        return (
            self.is_driver
            and self.location is not None
            and self.location.is_matchable
            and self.outbound.is_open
        )

    @property
    def last_seen_ms(self) -> int:
        return int(self.last_seen.timestamp() * 1000)


class PresenceRegistry:
    """
    Mapping of participant id to ``Participant``.

    Provides:
    - register / get / remove / update_location / touch
    - Role snapshots for fan-out and matching
    - Staleness sweep and maintenance reset
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._participants: Dict[str, Participant] = {}
        self._lock = threading.Lock()
        self._clock = clock or timezone.now

    # ---------------------- Mutations ----------------------

    def register(
        self,
        participant_id: str,
        role: Role,
        outbound: Outbound,
        location: Optional[Coordinate] = None,
    ) -> Participant:
        """Insert or replace the entry for ``participant_id``."""
        participant = Participant(
            id=participant_id,
            role=Role(role),
            location=location,
            last_seen=self._clock(),
            outbound=outbound,
        )
        with self._lock:
            replaced = participant_id in self._participants
            self._participants[participant_id] = participant

        if replaced:
            logger.info("Participant %s re-registered as %s", participant_id, participant.role.value)
        else:
            logger.info("Participant %s registered as %s", participant_id, participant.role.value)
        return participant

    def update_location(self, participant_id: str, location: Coordinate) -> bool:
        """Set location and last_seen. Unknown ids are ignored and return False."""
        with self._lock:
            current = self._participants.get(participant_id)
            if current is None:
                return False
            self._participants[participant_id] = replace(
                current, location=location, last_seen=self._clock()
            )
        return True

    def touch(self, participant_id: str) -> bool:
        """Refresh last_seen for a participant that sent traffic."""
        with self._lock:
            current = self._participants.get(participant_id)
            if current is None:
                return False
            self._participants[participant_id] = replace(current, last_seen=self._clock())
        return True

    def remove(self, participant_id: str, outbound: Optional[Outbound] = None) -> Optional[Participant]:
        """
        Delete the entry for ``participant_id``.

        When ``outbound`` is given, the entry is only removed if it still
        belongs to that handle; a newer registration under the same id is
        left alone.
        """
        with self._lock:
            current = self._participants.get(participant_id)
            if current is None:
                return None
            if outbound is not None and current.outbound is not outbound:
                return None
            del self._participants[participant_id]
        return current

    def sweep(self, max_age: timedelta) -> int:
        """Remove every participant whose last_seen is older than ``max_age``."""
        with self._lock:
            cutoff = self._clock() - max_age
            stale = [pid for pid, p in self._participants.items() if p.last_seen < cutoff]
            for pid in stale:
                del self._participants[pid]

        for pid in stale:
            logger.info("Swept stale participant %s", pid)
        return len(stale)

    def clear(self) -> int:
        """Drop every participant. Maintenance only."""
        with self._lock:
            count = len(self._participants)
            self._participants.clear()
        return count

    # ---------------------- Queries ----------------------

    def get(self, participant_id: str) -> Optional[Participant]:
        with self._lock:
            return self._participants.get(participant_id)

    def list_by_role(self, role: Role) -> List[Participant]:
        """Snapshot of all participants with ``role``, in registration order."""
        role = Role(role)
        with self._lock:
            return [p for p in self._participants.values() if p.role == role]

    def count(self) -> int:
        with self._lock:
            return len(self._participants)

    def count_by_role(self) -> Dict[str, int]:
        with self._lock:
            counts = {role.value: 0 for role in Role}
            for p in self._participants.values():
                counts[p.role.value] += 1
        return counts


# ---------------------- Singleton Instance ----------------------

_presence_registry: Optional[PresenceRegistry] = None
_singleton_lock = threading.Lock()


def get_presence_registry() -> PresenceRegistry:
    """Get singleton PresenceRegistry instance."""
    global _presence_registry
    if _presence_registry is None:
        with _singleton_lock:
            if _presence_registry is None:
                _presence_registry = PresenceRegistry()
    return _presence_registry
