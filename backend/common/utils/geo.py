"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
"""

import math
from dataclasses import dataclass
from math import radians, cos, sin, atan2, sqrt
from typing import Any, Dict, Optional

EARTH_RADIUS_METERS = 6371000


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    @property
    def is_matchable(self) -> bool:
        """Finite and inside [-90, 90] / [-180, 180]."""
        return (
            math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
            and -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Coordinate"]:
        if not data:
            return None
        return cls(latitude=float(data["latitude"]), longitude=float(data["longitude"]))


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters, or NaN when any input is not finite
    """
    values = [float(lat1), float(lon1), float(lat2), float(lon2)]
    if not all(math.isfinite(v) for v in values):
        return math.nan

    lat1, lon1, lat2, lon2 = map(radians, values)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # rounding can push antipodal points just past 1.0
    if a > 1.0:
        a = 1.0
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return c * EARTH_RADIUS_METERS


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two coordinates."""
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)
