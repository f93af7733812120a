"""Route optimizer: detour-minimizing city selection and insertion."""

from .service import (
    DetourRouteOptimizerService,
    DistanceMatrix,
    Insertion,
    RouteOptimizerService,
    RouteSelection,
    route_length_km,
)

__all__ = [
    "DetourRouteOptimizerService",
    "DistanceMatrix",
    "Insertion",
    "RouteOptimizerService",
    "RouteSelection",
    "route_length_km",
]
