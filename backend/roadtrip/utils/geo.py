"""Geographic helpers: great-circle distances between coordinates."""

import math
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def haversine_matrix(points: Sequence[tuple[float, float]]) -> NDArray[np.float64]:
    """Pairwise haversine distances (km) for a list of (lat, lng) points.

    Vectorized equivalent of calling ``haversine_distance`` for every pair.
    """
    n = len(points)
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)

    coords = np.radians(np.asarray(points, dtype=np.float64))
    lat = coords[:, 0][:, np.newaxis]
    lng = coords[:, 1][:, np.newaxis]

    d_lat = lat.T - lat
    d_lng = lng.T - lng
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat) * np.cos(lat.T) * np.sin(d_lng / 2) ** 2
    distances = 2 * EARTH_RADIUS_KM * np.arcsin(np.minimum(1.0, np.sqrt(a)))
    np.fill_diagonal(distances, 0.0)
    return distances


def route_distance(points: Sequence[tuple[float, float]]) -> float:
    """Total length (km) of a route visiting ``points`` in order."""
    return sum(
        haversine_distance(points[i][0], points[i][1], points[i + 1][0], points[i + 1][1])
        for i in range(len(points) - 1)
    )
