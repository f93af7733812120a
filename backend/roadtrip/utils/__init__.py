"""Shared utilities."""

from .geo import haversine_distance, haversine_matrix, route_distance

__all__ = ["haversine_distance", "haversine_matrix", "route_distance"]
