"""Common utility functions."""

from .geo import Coordinate, calculate_distance, distance

__all__ = [
    "Coordinate",
    "calculate_distance",
    "distance",
]
