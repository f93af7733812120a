"""Merge engine.

Pools every city proposed by any source, remembers which sources proposed
it, and builds one "best overall" route from the pool. Cities recommended
by several sources carry all of their themes. With known endpoints the
pool is run through the route optimizer again; without them the cities
recommended by the most sources win.
"""

import logging
from typing import Sequence

from roadtrip.models import CityCandidate, Recommendations, SourceResult
from roadtrip.services.route_optimizer import RouteOptimizerService
from roadtrip.services.sources import BEST_OVERALL, BEST_OVERALL_ID, SOURCE_PROFILES

logger = logging.getLogger(__name__)


def _has_event(value: str | None) -> bool:
    return bool(value) and value.strip().lower() not in ("none", "n/a", "null")


def _display_name(source_id: str) -> str:
    profile = SOURCE_PROFILES.get(source_id)
    return profile.short_name if profile else source_id.replace("-", " ").title()


def theme_display(themes: Sequence[str]) -> str:
    """'Adventure + Culture' style label for a list of source ids."""
    return " + ".join(_display_name(t) for t in themes)


class MergeEngine:
    """Builds the ``best-overall`` result from per-source results."""

    def __init__(self, optimizer: RouteOptimizerService) -> None:
        self._optimizer = optimizer

    def merge(self, results: Sequence[SourceResult], requested_stops: int) -> SourceResult:
        origin, destination = self._endpoints(results)
        endpoint_keys = self._endpoint_keys(results, origin, destination)
        pool = [c for c in self._pool(results) if c.key not in endpoint_keys]

        if origin is not None and destination is not None:
            selection = self._optimizer.select(pool, origin, destination, requested_stops)
            selected, alternatives = selection.selected, selection.alternatives
        else:
            logger.info("[MERGE] No endpoint coordinates; ranking by source count")
            ranked = sorted(pool, key=lambda c: len(c.themes), reverse=True)
            selected, alternatives = ranked[:requested_stops], ranked[requested_stops:]

        for city in [*selected, *alternatives]:
            city.theme_display = theme_display(city.themes)

        contributing = [r.source_id for r in results if not r.failed]
        shared = sum(1 for c in pool if len(c.themes) > 1)
        logger.info(
            f"[MERGE] {len(selected)} stops from {len(pool)} pooled cities "
            f"({len(contributing)} sources, {shared} shared)"
        )

        return SourceResult(
            source_id=BEST_OVERALL_ID,
            display_meta=BEST_OVERALL.meta,
            recommendations=Recommendations(
                origin=origin,
                destination=destination,
                waypoints=selected,
                alternatives=alternatives,
            ),
            metrics={
                "sources_merged": len(contributing),
                "pooled_candidates": len(pool),
                "shared_cities": shared,
            },
            description=self._describe(selected),
        )

    @staticmethod
    def _pool(results: Sequence[SourceResult]) -> list[CityCandidate]:
        pooled: dict[str, CityCandidate] = {}
        for result in results:
            recs = result.recommendations
            for city in [*recs.waypoints, *recs.alternatives]:
                key = city.key
                existing = pooled.get(key)
                if existing is None:
                    pooled[key] = city.model_copy(
                        deep=True, update={"themes": [result.source_id], "theme_display": None}
                    )
                    continue

                if result.source_id not in existing.themes:
                    existing.themes.append(result.source_id)
                for activity in city.activities:
                    if activity not in existing.activities:
                        existing.activities.append(activity)
                if not _has_event(existing.current_events) and _has_event(city.current_events):
                    existing.current_events = city.current_events
                if not existing.has_coordinates and city.has_coordinates:
                    existing.latitude = city.latitude
                    existing.longitude = city.longitude
        return list(pooled.values())

    @staticmethod
    def _endpoints(
        results: Sequence[SourceResult],
    ) -> tuple[CityCandidate | None, CityCandidate | None]:
        for result in results:
            recs = result.recommendations
            if (
                recs.origin is not None
                and recs.destination is not None
                and recs.origin.has_coordinates
                and recs.destination.has_coordinates
            ):
                return recs.origin, recs.destination
        return None, None

    @staticmethod
    def _endpoint_keys(
        results: Sequence[SourceResult],
        origin: CityCandidate | None,
        destination: CityCandidate | None,
    ) -> set[str]:
        """Names no merged stop may take: the chosen endpoints and every source's own."""
        endpoints = [origin, destination]
        for result in results:
            endpoints += [result.recommendations.origin, result.recommendations.destination]
        return {c.key for c in endpoints if c is not None and c.key}

    @staticmethod
    def _describe(selected: Sequence[CityCandidate]) -> str:
        names: list[str] = []
        for city in selected:
            for theme in city.themes:
                name = _display_name(theme)
                if name not in names:
                    names.append(name)
        if not names:
            return "No cities could be combined from the selected sources."
        if len(names) == 1:
            joined = names[0]
        else:
            joined = ", ".join(names[:-1]) + f" and {names[-1]}"
        return f"The best stops across every travel style, combining {joined} recommendations."
