"""
Services package - Business logic layer.

This package contains business logic that operates on the presence registry
but is decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Nearest-driver ranking for ride requests
"""

from .matching import (
    NearbyDriver,
    find_nearby_drivers,
    find_nearest_driver,
)

__all__ = [
    "NearbyDriver",
    "find_nearby_drivers",
    "find_nearest_driver",
]
