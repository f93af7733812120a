"""Core data models for the road trip planner.

This module contains the Pydantic models shared by the route-generation
pipeline: city candidates proposed by recommendation sources, per-source
results, and the background generation job that clients poll.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class BudgetTier(str, Enum):
    """Budget tiers a traveller can pick for the whole trip."""

    BUDGET = "budget"
    MID = "mid"
    LUXURY = "luxury"


class JobStatus(str, Enum):
    """Lifecycle states of a generation job.

    A job starts in ``processing`` and moves exactly once to one of the
    terminal states.
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class Coordinates(BaseModel):
    """Geographic coordinates with validation.

    Latitude must be between -90 and 90 degrees.
    Longitude must be between -180 and 180 degrees.
    """

    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    lng: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


def normalize_city_name(name: str) -> str:
    """Identity key for a city: lowercased and trimmed."""
    return (name or "").strip().lower()


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _first_present(data: dict, *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


class CityCandidate(BaseModel):
    """A city proposed by a source as a possible stop.

    Coordinates are optional because upstream responses are not always
    complete; a candidate without valid coordinates can still be shown as
    an alternative but is never placed on a route.
    """

    name: str = Field(..., min_length=1, description="Display name of the city")
    latitude: Optional[float] = Field(None, description="Latitude in degrees")
    longitude: Optional[float] = Field(None, description="Longitude in degrees")
    description: str = Field(default="", description="Why this city fits the trip")
    activities: list[str] = Field(default_factory=list, description="Suggested activities")
    duration: Optional[str] = Field(None, description="Suggested time to spend, e.g. '1-2 days'")
    current_events: Optional[str] = Field(None, description="Festivals or events happening now")
    themes: list[str] = Field(
        default_factory=list, description="Source ids that recommended this city (merged route only)"
    )
    theme_display: Optional[str] = Field(
        None, description="Human-readable theme label, e.g. 'Adventure + Food'"
    )

    @property
    def key(self) -> str:
        return normalize_city_name(self.name)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        """Validated coordinates, or None when the candidate is unplaceable."""
        if self.latitude is None or self.longitude is None:
            return None
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            return None
        if not (-90 <= self.latitude <= 90 and -180 <= self.longitude <= 180):
            return None
        return Coordinates(lat=self.latitude, lng=self.longitude)

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    @classmethod
    def from_raw(cls, data: Any) -> Optional["CityCandidate"]:
        """Build a candidate from a loosely-structured JSON object.

        Accepts the key spellings language models tend to produce
        (``city``/``name``, ``lat``/``latitude``, nested ``coordinates``,
        ``currentEvents``). Returns None when no usable name is present.
        """
        if isinstance(data, str):
            data = {"name": data}
        if not isinstance(data, dict):
            return None

        name = _first_present(data, "name", "city", "title")
        if not isinstance(name, str) or not name.strip():
            return None

        nested = data.get("coordinates")
        if isinstance(nested, dict):
            lat = _first_present(nested, "lat", "latitude")
            lng = _first_present(nested, "lng", "lon", "longitude")
        elif isinstance(nested, (list, tuple)) and len(nested) == 2:
            lat, lng = nested
        else:
            lat = _first_present(data, "lat", "latitude")
            lng = _first_present(data, "lng", "lon", "longitude")

        activities = _first_present(data, "activities", "highlights")
        if isinstance(activities, str):
            activities = [a.strip() for a in activities.split(",")]
        elif isinstance(activities, list):
            activities = [str(a).strip() for a in activities if a is not None]
        else:
            activities = []

        duration = _first_present(data, "duration", "recommendedDuration", "estimatedTime")
        events = _first_present(data, "currentEvents", "current_events", "events")
        description = _first_present(data, "description", "why") or ""

        return cls(
            name=name.strip(),
            latitude=_to_float(lat),
            longitude=_to_float(lng),
            description=str(description).strip(),
            activities=[a for a in activities if a],
            duration=str(duration) if duration is not None else None,
            current_events=str(events).strip() if events is not None else None,
        )


class SourceMeta(BaseModel):
    """Display metadata for a recommendation source."""

    name: str
    color: str
    icon: str


class Recommendations(BaseModel):
    """A source's route: endpoints, ordered waypoints and ranked alternatives.

    A failed source keeps an empty waypoint list and sets ``error``.
    """

    origin: Optional[CityCandidate] = None
    destination: Optional[CityCandidate] = None
    waypoints: list[CityCandidate] = Field(default_factory=list)
    alternatives: list[CityCandidate] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "Recommendations":
        return cls(waypoints=[], alternatives=[], error=message)


class SourceResult(BaseModel):
    """Outcome of one source's pipeline stage within a job."""

    source_id: str = Field(..., description="Source profile identifier, e.g. 'culture'")
    display_meta: SourceMeta
    recommendations: Recommendations
    metrics: dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = Field(None, description="Summary shown above the route")

    @property
    def failed(self) -> bool:
        return self.recommendations.error is not None


class JobSpec(BaseModel):
    """Everything needed to start a generation job."""

    destination: str = Field(..., min_length=1)
    origin: Optional[str] = Field(None, description="Starting city; the configured default when omitted")
    stops: int = Field(..., ge=1, le=10)
    sources: list[str] = Field(..., min_length=1)
    budget: BudgetTier = BudgetTier.BUDGET


class JobProgress(BaseModel):
    """Live progress of a generation job."""

    total: int = Field(..., ge=0)
    completed: int = Field(default=0, ge=0)
    current_source: Optional[str] = None
    percent_complete: int = Field(default=0, ge=0, le=100)
    started_at: datetime
    estimated_remaining_ms: Optional[int] = None


class GenerationJob(BaseModel):
    """One asynchronous route-generation request's full lifecycle record."""

    id: str
    status: JobStatus = JobStatus.PROCESSING
    origin: str
    destination: str
    requested_stops: int
    selected_sources: list[str]
    budget: BudgetTier = BudgetTier.BUDGET
    progress: JobProgress
    results: list[SourceResult] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None
