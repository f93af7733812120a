"""Route optimizer: greedy nearest-insertion with detour scoring.

Given an origin, a destination and a pool of candidate cities, picks the
cities that add the least extra driving. Distances are straight-line
haversine kilometers, computed once per call as a numpy matrix.

The same insertion step answers two follow-up questions on an existing
route: "insert the best of these landmarks" and "what would adding city X
cost".
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence, Union

import numpy as np
from numpy.typing import NDArray

from roadtrip.models import CityCandidate, Coordinates
from roadtrip.utils.geo import haversine_matrix

logger = logging.getLogger(__name__)

Point = Union[CityCandidate, Coordinates, tuple[float, float]]


def _as_latlng(point: Point) -> tuple[float, float] | None:
    """(lat, lng) for a city, coordinates object or tuple; None if unplaceable."""
    if isinstance(point, CityCandidate):
        coords = point.coordinates
        return (coords.lat, coords.lng) if coords else None
    if isinstance(point, Coordinates):
        return (point.lat, point.lng)
    if isinstance(point, tuple) and len(point) == 2:
        return (float(point[0]), float(point[1]))
    return None


@dataclass
class DistanceMatrix:
    """Pairwise distances for route anchors followed by candidates."""

    points: list[tuple[float, float]]
    distances: NDArray[np.float64]

    @classmethod
    def build(cls, points: list[tuple[float, float]]) -> "DistanceMatrix":
        return cls(points=points, distances=haversine_matrix(points))


@dataclass
class RouteSelection:
    """Optimizer output: chosen stops in route order plus ranked leftovers."""

    selected: list[CityCandidate] = field(default_factory=list)
    alternatives: list[CityCandidate] = field(default_factory=list)


@dataclass
class Insertion:
    """Where a city goes in a route and how many kilometers it adds."""

    city: CityCandidate
    position: int
    detour_km: float


class RouteOptimizerService(ABC):
    """Abstract base class for city selection along a road trip."""

    @abstractmethod
    def select(
        self,
        candidates: Sequence[CityCandidate],
        origin: Point,
        destination: Point,
        count: int,
    ) -> RouteSelection:
        pass

    @abstractmethod
    def insert_into_route(
        self,
        route: Sequence[CityCandidate],
        candidates: Sequence[CityCandidate],
    ) -> tuple[list[CityCandidate], Insertion | None]:
        pass

    @abstractmethod
    def insertion_cost(self, route: Sequence[CityCandidate], city: CityCandidate) -> Insertion:
        pass


class DetourRouteOptimizerService(RouteOptimizerService):
    """Greedy insertion: repeatedly add the (city, position) with the smallest detour.

    Ties go to the candidate seen first in input order, then to the earliest
    position, because only a strictly smaller detour replaces the current best.
    """

    def select(
        self,
        candidates: Sequence[CityCandidate],
        origin: Point,
        destination: Point,
        count: int,
    ) -> RouteSelection:
        """Select ``count`` cities between ``origin`` and ``destination``.

        Candidates without valid coordinates never make it onto the route and
        are returned as alternatives. When no more than ``count`` placeable
        candidates exist, all of them are selected in input order.
        """
        if count < 0:
            raise ValueError("count must be non-negative")

        start = _as_latlng(origin)
        end = _as_latlng(destination)
        if start is None or end is None:
            raise ValueError("origin and destination need valid coordinates")

        placeable = [c for c in candidates if c.has_coordinates]
        if len(placeable) <= count:
            selected_ids = {id(c) for c in placeable}
            return RouteSelection(
                selected=list(placeable),
                alternatives=[c for c in candidates if id(c) not in selected_ids],
            )

        logger.info(f"[ROUTE] Selecting {count} of {len(placeable)} placeable candidates")
        order, _ = self._greedy_insert([start, end], placeable, count)
        selected = [placeable[i] for i in order]
        selected_ids = {id(c) for c in selected}
        return RouteSelection(
            selected=selected,
            alternatives=[c for c in candidates if id(c) not in selected_ids],
        )

    def insert_into_route(
        self,
        route: Sequence[CityCandidate],
        candidates: Sequence[CityCandidate],
    ) -> tuple[list[CityCandidate], Insertion | None]:
        """Insert the single cheapest candidate into an existing route.

        The route's first and last stops stay fixed. Candidates already on the
        route (by name) or without coordinates are skipped. Returns the new
        route and the insertion made, or the unchanged route and None.
        """
        anchors = self._route_points(route)
        on_route = {stop.key for stop in route}
        pool = [c for c in candidates if c.has_coordinates and c.key not in on_route]
        if not pool:
            return list(route), None

        _, insertion = self._greedy_insert(anchors, pool, 1)
        index, position, detour = insertion[0]
        new_route = list(route)
        new_route.insert(position, pool[index])
        logger.info(f"[ROUTE] Inserted {pool[index].name} at position {position} (+{detour:.1f} km)")
        return new_route, Insertion(city=pool[index], position=position, detour_km=detour)

    def insertion_cost(self, route: Sequence[CityCandidate], city: CityCandidate) -> Insertion:
        """Best position for ``city`` in ``route`` and the kilometers it adds."""
        if not city.has_coordinates:
            raise ValueError(f"{city.name} has no valid coordinates")
        anchors = self._route_points(route)
        _, insertion = self._greedy_insert(anchors, [city], 1)
        _, position, detour = insertion[0]
        return Insertion(city=city, position=position, detour_km=detour)

    @staticmethod
    def _route_points(route: Sequence[CityCandidate]) -> list[tuple[float, float]]:
        if len(route) < 2:
            raise ValueError("A route needs at least an origin and a destination")
        points = []
        for stop in route:
            latlng = _as_latlng(stop)
            if latlng is None:
                raise ValueError(f"Route stop {stop.name} has no valid coordinates")
            points.append(latlng)
        return points

    @staticmethod
    def _greedy_insert(
        anchors: list[tuple[float, float]],
        pool: Sequence[CityCandidate],
        count: int,
    ) -> tuple[list[int], list[tuple[int, int, float]]]:
        """Run ``count`` insertion rounds.

        Returns the pool indices in final route order (anchors stripped) and,
        per round, ``(pool_index, route_position, detour_km)``.
        """
        k = len(anchors)
        matrix = DistanceMatrix.build(anchors + [_as_latlng(c) for c in pool])
        d = matrix.distances

        working = list(range(k))
        remaining = list(range(k, k + len(pool)))
        rounds: list[tuple[int, int, float]] = []

        for _ in range(min(count, len(remaining))):
            best: tuple[int, int] | None = None
            best_cost = float("inf")
            for c in remaining:
                for i in range(1, len(working)):
                    a, b = working[i - 1], working[i]
                    cost = d[a, c] + d[c, b] - d[a, b]
                    if cost < best_cost:
                        best_cost = cost
                        best = (c, i)
            city_idx, position = best  # type: ignore[misc]
            working.insert(position, city_idx)
            remaining.remove(city_idx)
            rounds.append((city_idx - k, position, float(best_cost)))

        order = [idx - k for idx in working if idx >= k]
        return order, rounds


def route_length_km(stops: Sequence[Point]) -> float:
    """Total straight-line length of a route through ``stops`` in order."""
    points = [_as_latlng(s) for s in stops]
    if any(p is None for p in points):
        raise ValueError("Every stop needs valid coordinates")
    matrix = haversine_matrix(points)  # type: ignore[arg-type]
    return float(sum(matrix[i, i + 1] for i in range(len(points) - 1)))
