"""
Driver matching service.

This module handles:
    - Ranking online drivers by distance from a pickup point
    - Picking the single nearest driver for a ride request
"""

from .nearby import NearbyDriver, find_nearby_drivers, find_nearest_driver

__all__ = [
    "NearbyDriver",
    "find_nearby_drivers",
    "find_nearest_driver",
]
