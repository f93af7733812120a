"""API routes for the road trip planner.

BACKGROUND JOBS:
- POST /generate-route creates a job and returns 202 with its id right away
- The job runs in a background task; sources are queried one at a time
- GET /route-status/{job_id} is polled until the job completes or fails

The single-insertion endpoints answer follow-up questions about an existing
route without calling any provider.
"""

from typing import Any, Optional
import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field

from roadtrip.config import get_settings
from roadtrip.models import (
    AppError,
    BudgetTier,
    CityCandidate,
    ErrorCode,
    GenerationJob,
    JobNotFoundError,
    JobSpec,
    JobStatus,
    MalformedResponseError,
    SourceResult,
    UpstreamError,
)
from roadtrip.services.jobs import JobStore, create_job_store
from roadtrip.services.merge import MergeEngine
from roadtrip.services.orchestrator import SourceOrchestrator
from roadtrip.services.route_optimizer import DetourRouteOptimizerService, route_length_km
from roadtrip.services.sanitizer import parse_or_raise
from roadtrip.services.source_client import SourceQueryClient
from roadtrip.services.sources import SOURCE_PROFILES, get_profile
from roadtrip.services.text_generation import TextGenerationService, create_text_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request/Response models ───────────────────────────────────────────

class GenerateRouteRequest(BaseModel):
    """Request model for starting a route generation job."""
    destination: str = Field(..., min_length=1, max_length=100, description="Where the trip ends")
    origin: Optional[str] = Field(None, max_length=100, description="Where the trip starts")
    stops: int = Field(default=3, ge=1, le=10, description="Number of stops between origin and destination")
    agents: list[str] = Field(..., min_length=1, description="Source ids, e.g. ['adventure', 'food']")
    budget: BudgetTier = BudgetTier.BUDGET


class GenerateRouteResponse(BaseModel):
    job_id: str
    status: JobStatus


class ProgressView(BaseModel):
    total: int
    completed: int
    current_source: Optional[str] = None
    percent_complete: int
    estimated_remaining_ms: Optional[int] = None


class RouteView(BaseModel):
    origin: str
    destination: str
    total_stops: int
    budget: BudgetTier
    results: list[SourceResult]


class RouteStatusResponse(BaseModel):
    """Polling view of a job; ``route`` is only set once the job completed."""
    id: str
    status: JobStatus
    progress: ProgressView
    route: Optional[RouteView] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: GenerationJob) -> "RouteStatusResponse":
        route = None
        if job.status is JobStatus.COMPLETED:
            route = RouteView(
                origin=job.origin,
                destination=job.destination,
                total_stops=job.requested_stops,
                budget=job.budget,
                results=job.results,
            )
        return cls(
            id=job.id,
            status=job.status,
            progress=ProgressView(
                total=job.progress.total,
                completed=job.progress.completed,
                current_source=job.progress.current_source,
                percent_complete=job.progress.percent_complete,
                estimated_remaining_ms=job.progress.estimated_remaining_ms,
            ),
            route=route,
            error=job.error,
        )


class SourceInfo(BaseModel):
    id: str
    name: str
    color: str
    icon: str
    description: str


class InsertionCostRequest(BaseModel):
    """An existing route (origin first, destination last) and a city to try."""
    route: list[CityCandidate] = Field(..., min_length=2)
    city: CityCandidate


class InsertionCostResponse(BaseModel):
    success: bool
    position: int
    detour_km: float
    route_km: float


class InsertLandmarkRequest(BaseModel):
    route: list[CityCandidate] = Field(..., min_length=2)
    candidates: list[CityCandidate] = Field(..., min_length=1)


class InsertLandmarkResponse(BaseModel):
    success: bool
    route: list[CityCandidate]
    inserted: Optional[CityCandidate] = None
    position: Optional[int] = None
    detour_km: Optional[float] = None


class ItineraryRequest(BaseModel):
    """Request model for a day-by-day itinerary along a chosen route."""
    source: str = Field(..., description="Source id whose style the itinerary follows")
    cities: list[str] = Field(..., min_length=1, max_length=12)
    days: int = Field(default=3, ge=1, le=14)
    budget: BudgetTier = BudgetTier.BUDGET


class ItineraryResponse(BaseModel):
    success: bool
    itinerary: dict[str, Any]


# ── Service instances ─────────────────────────────────────────────────

_job_store: JobStore | None = None
_text_service: TextGenerationService | None = None
_source_client: SourceQueryClient | None = None
_optimizer: DetourRouteOptimizerService | None = None
_orchestrator: SourceOrchestrator | None = None


def get_job_store() -> JobStore:
    global _job_store
    if _job_store is None:
        _job_store = create_job_store(get_settings())
    return _job_store


def get_text_service() -> TextGenerationService:
    global _text_service
    if _text_service is None:
        try:
            _text_service = create_text_service(get_settings())
        except ValueError as e:
            raise AppError(
                code=ErrorCode.UPSTREAM_ERROR,
                message=str(e),
                user_message="Route generation is not configured on this server.",
                status_code=503,
            ) from e
    return _text_service


def get_source_client() -> SourceQueryClient:
    global _source_client
    if _source_client is None:
        _source_client = SourceQueryClient(get_text_service(), get_settings())
    return _source_client


def get_optimizer() -> DetourRouteOptimizerService:
    global _optimizer
    if _optimizer is None:
        _optimizer = DetourRouteOptimizerService()
    return _optimizer


def get_orchestrator() -> SourceOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        optimizer = get_optimizer()
        _orchestrator = SourceOrchestrator(
            store=get_job_store(),
            client=get_source_client(),
            optimizer=optimizer,
            merge_engine=MergeEngine(optimizer),
            settings=get_settings(),
        )
    return _orchestrator


async def shutdown_services() -> None:
    """Stop running jobs and release provider and store connections."""
    global _job_store, _text_service, _source_client, _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()
    if _job_store is not None:
        await _job_store.close()
    if _text_service is not None:
        await _text_service.close()
    _job_store = _text_service = _source_client = _orchestrator = None


def _validation_error(message: str, user_message: str | None = None) -> AppError:
    return AppError(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        user_message=user_message or message,
        status_code=400,
    )


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/generate-route", response_model=GenerateRouteResponse, status_code=202)
async def generate_route(request: GenerateRouteRequest) -> GenerateRouteResponse:
    """Start a route generation job and return its id without waiting.

    Duplicate agents are ignored; unknown agents are rejected up front.
    """
    agents = list(dict.fromkeys(a.strip().lower() for a in request.agents))
    unknown = [a for a in agents if a not in SOURCE_PROFILES]
    if unknown:
        raise _validation_error(
            f"Unknown agents: {', '.join(unknown)}",
            f"Choose from: {', '.join(SOURCE_PROFILES)}",
        )

    settings = get_settings()
    orchestrator = get_orchestrator()
    store = get_job_store()

    spec = JobSpec(
        destination=request.destination.strip(),
        origin=(request.origin or "").strip() or None,
        stops=request.stops,
        sources=agents,
        budget=request.budget,
    )
    job_id = await store.create(spec, origin=spec.origin or settings.default_origin)
    orchestrator.start(job_id)
    logger.info(f"[ROUTE] Job {job_id} started: {agents} -> {spec.destination} ({spec.stops} stops)")
    return GenerateRouteResponse(job_id=job_id, status=JobStatus.PROCESSING)


@router.get("/route-status/{job_id}", response_model=RouteStatusResponse)
async def route_status(job_id: str) -> RouteStatusResponse:
    """Poll a job's progress; the route is included once it completed."""
    try:
        job = await get_job_store().get(job_id)
    except JobNotFoundError as e:
        raise AppError(
            code=ErrorCode.JOB_NOT_FOUND,
            message=str(e),
            user_message="This route request has expired or never existed. Please start a new one.",
            status_code=404,
        ) from e
    return RouteStatusResponse.from_job(job)


@router.get("/sources", response_model=list[SourceInfo])
async def list_sources() -> list[SourceInfo]:
    return [
        SourceInfo(id=p.id, name=p.name, color=p.color, icon=p.icon, description=p.description)
        for p in SOURCE_PROFILES.values()
    ]


@router.post("/route/insertion-cost", response_model=InsertionCostResponse)
async def insertion_cost(request: InsertionCostRequest) -> InsertionCostResponse:
    """How many kilometers adding ``city`` would add, and where it would go."""
    optimizer = get_optimizer()
    try:
        insertion = optimizer.insertion_cost(request.route, request.city)
        route_km = route_length_km(request.route)
    except ValueError as e:
        raise _validation_error(str(e), "Every stop needs valid coordinates.") from e
    return InsertionCostResponse(
        success=True,
        position=insertion.position,
        detour_km=round(insertion.detour_km, 2),
        route_km=round(route_km, 2),
    )


@router.post("/route/insert-landmark", response_model=InsertLandmarkResponse)
async def insert_landmark(request: InsertLandmarkRequest) -> InsertLandmarkResponse:
    """Insert the candidate that adds the least driving into the route."""
    optimizer = get_optimizer()
    try:
        new_route, insertion = optimizer.insert_into_route(request.route, request.candidates)
    except ValueError as e:
        raise _validation_error(str(e), "Every stop needs valid coordinates.") from e

    if insertion is None:
        return InsertLandmarkResponse(success=False, route=new_route)
    return InsertLandmarkResponse(
        success=True,
        route=new_route,
        inserted=insertion.city,
        position=insertion.position,
        detour_km=round(insertion.detour_km, 2),
    )


@router.post("/itinerary", response_model=ItineraryResponse)
async def create_itinerary(request: ItineraryRequest) -> ItineraryResponse:
    """Day-by-day plan for a chosen route in one source's travel style."""
    try:
        profile = get_profile(request.source)
    except KeyError as e:
        raise _validation_error(f"Unknown source: {request.source}") from e

    client = get_source_client()
    try:
        text = await client.query_itinerary(profile, request.cities, request.days, request.budget)
        itinerary = parse_or_raise(text)
    except (UpstreamError, MalformedResponseError) as e:
        logger.warning(f"[ITINERARY] {profile.id} failed: {e}")
        raise AppError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=str(e),
            user_message="Could not generate the itinerary. Please try again.",
            status_code=502,
        ) from e

    if not isinstance(itinerary, dict):
        itinerary = {"days": itinerary}
    return ItineraryResponse(success=True, itinerary=itinerary)
