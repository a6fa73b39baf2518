"""
Nearest-driver matching over the in-memory presence registry.

Drivers are ranked by great-circle distance from the pickup point. Only the
registry snapshot taken at the start of the call is considered.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings

from common.utils import Coordinate, distance
from realtime.registry import Participant, PresenceRegistry, Role, get_presence_registry

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 5000


@dataclass(frozen=True)
class NearbyDriver:
    participant: Participant
    distance_meters: float


def default_radius() -> float:
    return float(getattr(settings, "RIDE_MATCH_RADIUS_METERS", DEFAULT_RADIUS_METERS))


def find_nearby_drivers(
    pickup: Coordinate,
    radius_meters: Optional[float] = None,
    registry: Optional[PresenceRegistry] = None,
) -> List[NearbyDriver]:
    """
    Return drivers within ``radius_meters`` of ``pickup``, nearest first.

    Drivers without a usable location or with a closed connection are
    skipped. Equal distances keep registry enumeration order. An empty list
    means no driver qualifies.
    """
    registry = registry if registry is not None else get_presence_registry()
    if radius_meters is None:
        radius_meters = default_radius()

    drivers = registry.list_by_role(Role.DRIVER)

    candidates = []
    for driver in drivers:
        if not driver.is_matchable:
            continue
        meters = distance(pickup, driver.location)
        # NaN compares False against everything, so it is excluded here too
        if not meters <= radius_meters:
            continue
        candidates.append(NearbyDriver(participant=driver, distance_meters=meters))

    candidates.sort(key=lambda c: c.distance_meters)

    logger.debug(
        "Nearby search at (%s, %s) r=%sm: %d of %d drivers matched",
        pickup.latitude, pickup.longitude, radius_meters, len(candidates), len(drivers),
    )
    return candidates


def find_nearest_driver(
    pickup: Coordinate,
    radius_meters: Optional[float] = None,
    registry: Optional[PresenceRegistry] = None,
) -> Optional[NearbyDriver]:
    """Closest qualifying driver, or None."""
    matches = find_nearby_drivers(pickup, radius_meters, registry)
    return matches[0] if matches else None


def is_valid_radius(radius_meters: float) -> bool:
    return math.isfinite(radius_meters) and radius_meters >= 0
