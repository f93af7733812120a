"""Shared fakes and builders for the unit tests."""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from roadtrip.models import CityCandidate, Recommendations, SourceResult
from roadtrip.services.sources import SOURCE_PROFILES
from roadtrip.services.text_generation import TextGenerationService

AIX = (43.5297, 5.4474)
LYON = (45.7640, 4.8357)

CITY_COORDS = {
    "Aix-en-Provence": AIX,
    "Lyon": LYON,
    "Valence": (44.9334, 4.8924),
    "Grenoble": (45.1885, 5.7245),
    "Montelimar": (44.5581, 4.7509),
    "Nice": (43.7102, 7.2620),
    "Orange": (44.1381, 4.8075),
    "Marseille": (43.2965, 5.3698),
    "Avignon": (43.9493, 4.8055),
    "Vienne": (45.5256, 4.8740),
}


def city(name: str, lat: float | None = None, lng: float | None = None, **kwargs: Any) -> CityCandidate:
    """City with known coordinates unless given explicitly."""
    if lat is None and lng is None and name in CITY_COORDS:
        lat, lng = CITY_COORDS[name]
    return CityCandidate(name=name, latitude=lat, longitude=lng, **kwargs)


def waypoint_json(name: str, **extra: Any) -> dict[str, Any]:
    lat, lng = CITY_COORDS[name]
    return {
        "name": name,
        "latitude": lat,
        "longitude": lng,
        "description": f"A stop in {name}",
        "activities": [f"Walk around {name}"],
        "duration": "1 day",
        "currentEvents": "None",
        **extra,
    }


def route_payload(
    names: list[str],
    origin: str = "Aix-en-Provence",
    destination: str = "Lyon",
    metrics: dict[str, Any] | None = None,
) -> str:
    """A model response the way providers tend to send it: fenced JSON."""
    body = {
        "origin": waypoint_json(origin),
        "destination": waypoint_json(destination),
        "waypoints": [waypoint_json(n) for n in names],
        "metrics": metrics or {},
    }
    return f"```json\n{json.dumps(body, indent=2)}\n```"


def source_result(source_id: str, waypoints: list[CityCandidate], alternatives=(), error=None) -> SourceResult:
    profile = SOURCE_PROFILES[source_id]
    return SourceResult(
        source_id=source_id,
        display_meta=profile.meta,
        recommendations=Recommendations(
            origin=city("Aix-en-Provence"),
            destination=city("Lyon"),
            waypoints=list(waypoints),
            alternatives=list(alternatives),
            error=error,
        ),
        metrics={},
    )


class ScriptedTextService(TextGenerationService):
    """Returns (or raises) scripted outcomes in order."""

    def __init__(self, *outcomes: Any, timeout: float = 5.0) -> None:
        self._outcomes = list(outcomes)
        self._timeout = timeout
        self.calls: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "Scripted"

    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


_STYLE = re.compile(r"TRAVEL STYLE: (\S+)")


class RoutingTextService(TextGenerationService):
    """Answers each source's route prompt from a per-source table.

    A value may be a response string, an exception instance (raised on
    every call) or a callable taking the prompt.
    """

    def __init__(self, responses: dict[str, Any], timeout: float = 5.0, on_call=None) -> None:
        self._responses = responses
        self._timeout = timeout
        self._on_call = on_call
        self.calls: list[str] = []

    @property
    def provider_name(self) -> str:
        return "Routing"

    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        match = _STYLE.search(prompt)
        source_id = match.group(1) if match else "itinerary"
        self.calls.append(source_id)
        if self._on_call is not None:
            self._on_call(source_id)
        outcome = self._responses[source_id]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(prompt)
        return outcome


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ManualClock:
    """Monotonic-style clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualDateClock:
    """Wall clock for the job store, moved by hand."""

    def __init__(self) -> None:
        self.now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
