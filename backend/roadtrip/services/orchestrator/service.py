"""Source orchestrator.

Runs every selected source of a job one after the other:

    query -> sanitize -> parse -> optimize -> extract metrics

Sources run sequentially so a job never has more than one request in
flight against the shared provider rate limit. A failing source becomes a
failure marker (empty waypoints plus an error) and the job moves on; the
job itself only fails when it cannot start. After the last source, jobs
with two or more sources get a merged ``best-overall`` result at index 0.
"""

import asyncio
import logging
import time
from typing import Any, Callable

from roadtrip.config import Settings, get_settings
from roadtrip.models import (
    CityCandidate,
    GenerationJob,
    JobStatus,
    MalformedResponseError,
    Recommendations,
    SourceResult,
    normalize_city_name,
)
from roadtrip.services.jobs import JobStore
from roadtrip.services.merge import MergeEngine
from roadtrip.services.metrics import MetricExtractor
from roadtrip.services.route_optimizer import RouteOptimizerService
from roadtrip.services.sanitizer import sanitize_response
from roadtrip.services.source_client import SourceQueryClient
from roadtrip.services.sources import SOURCE_PROFILES, SourceProfile

logger = logging.getLogger(__name__)

# ETA per source until the first one has finished and real timings exist
FALLBACK_SOURCE_ESTIMATE_MS = 20_000

DEADLINE_EXCEEDED = "deadline exceeded"


class SourceOrchestrator:
    """Runs generation jobs against the configured recommendation sources."""

    def __init__(
        self,
        store: JobStore,
        client: SourceQueryClient,
        optimizer: RouteOptimizerService,
        merge_engine: MergeEngine,
        extractor: MetricExtractor | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._client = client
        self._optimizer = optimizer
        self._merge = merge_engine
        self._extractor = extractor or MetricExtractor()
        self._deadline_seconds = settings.job_deadline_seconds
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    # ── Background tasks ──────────────────────────────────────────────

    def start(self, job_id: str) -> asyncio.Task:
        """Run the job in a background task and keep a reference to it."""
        task = asyncio.create_task(self.run(job_id), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel every running job and wait for the tasks to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"[JOB] Cancelled {len(tasks)} running job(s)")

    # ── Job pipeline ──────────────────────────────────────────────────

    async def run(self, job_id: str) -> None:
        job = await self._store.get(job_id)
        try:
            profiles = self._resolve_profiles(job)
        except (KeyError, ValueError) as e:
            message = e.args[0] if e.args else str(e)
            logger.warning(f"[JOB] {job_id} rejected: {message}")
            await self._store.update(job_id, lambda j: self._fail(j, message))
            return

        try:
            await self._run_sources(job, profiles)
        except asyncio.CancelledError:
            await self._store.update(job_id, lambda j: self._fail(j, "cancelled"))
            raise
        except Exception as e:
            logger.exception(f"[JOB] {job_id} crashed: {e}")
            await self._store.update(job_id, lambda j: self._fail(j, f"Route generation failed: {e}"))

    @staticmethod
    def _resolve_profiles(job: GenerationJob) -> list[SourceProfile]:
        if job.requested_stops < 1:
            raise ValueError("stops must be at least 1")
        if not job.selected_sources:
            raise ValueError("at least one source is required")
        unknown = [s for s in job.selected_sources if s not in SOURCE_PROFILES]
        if unknown:
            raise KeyError(f"Unknown source(s): {', '.join(unknown)}")
        return [SOURCE_PROFILES[s] for s in job.selected_sources]

    @staticmethod
    def _fail(job: GenerationJob, message: str) -> None:
        if job.status.is_terminal:
            return
        job.status = JobStatus.FAILED
        job.error = message
        job.progress.current_source = None
        job.progress.estimated_remaining_ms = 0

    async def _run_sources(self, job: GenerationJob, profiles: list[SourceProfile]) -> None:
        total = len(profiles)
        started = self._clock()
        deadline = started + self._deadline_seconds if self._deadline_seconds > 0 else None
        results: list[SourceResult] = []

        def begin(j: GenerationJob) -> None:
            j.progress.estimated_remaining_ms = FALLBACK_SOURCE_ESTIMATE_MS * total

        await self._store.update(job.id, begin)
        logger.info(f"[JOB] {job.id}: {total} source(s), {job.origin} -> {job.destination}")

        for index, profile in enumerate(profiles):
            await self._store.update(job.id, lambda j, p=profile: setattr(j.progress, "current_source", p.id))

            remaining_time = deadline - self._clock() if deadline is not None else None
            if remaining_time is not None and remaining_time <= 0:
                logger.warning(f"[JOB] {job.id}: skipping {profile.id}, {DEADLINE_EXCEEDED}")
                result = self._failure(profile, DEADLINE_EXCEEDED)
            else:
                result = await self._process_contained(profile, job, remaining_time)
            results.append(result)

            completed = index + 1
            elapsed_ms = (self._clock() - started) * 1000
            eta_ms = int(elapsed_ms / completed * (total - completed))

            def record(j: GenerationJob, r: SourceResult = result, done: int = completed, eta: int = eta_ms) -> None:
                j.results.append(r)
                j.progress.completed = done
                j.progress.percent_complete = int(done * 100 / total)
                j.progress.estimated_remaining_ms = eta

            await self._store.update(job.id, record)
            status = "failed" if result.failed else f"{len(result.recommendations.waypoints)} stops"
            logger.info(f"[JOB] {job.id}: {profile.id} done ({completed}/{total}, {status})")

        merged = self._merge_results(job, results)

        def finish(j: GenerationJob) -> None:
            if merged is not None:
                j.results.insert(0, merged)
            j.status = JobStatus.COMPLETED
            j.progress.current_source = None
            j.progress.percent_complete = 100
            j.progress.estimated_remaining_ms = 0

        await self._store.update(job.id, finish)
        logger.info(f"[JOB] {job.id} completed ({sum(not r.failed for r in results)}/{total} sources ok)")

    def _merge_results(self, job: GenerationJob, results: list[SourceResult]) -> SourceResult | None:
        if len(job.selected_sources) < 2:
            return None
        if all(r.failed for r in results):
            logger.warning(f"[MERGE] {job.id}: every source failed, nothing to merge")
            return None
        try:
            return self._merge.merge(results, job.requested_stops)
        except Exception as e:
            logger.warning(f"[MERGE] {job.id}: merge failed, returning per-source results only: {e!r}")
            return None

    # ── Per-source stage ──────────────────────────────────────────────

    async def _process_contained(
        self,
        profile: SourceProfile,
        job: GenerationJob,
        timeout: float | None,
    ) -> SourceResult:
        try:
            return await asyncio.wait_for(self.process_source(profile, job), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[SOURCE] {profile.id}: {DEADLINE_EXCEEDED}")
            return self._failure(profile, DEADLINE_EXCEEDED)
        except Exception as e:
            logger.warning(f"[SOURCE] {profile.id} failed: {e!r}")
            return self._failure(profile, str(e) or type(e).__name__)

    async def process_source(self, profile: SourceProfile, job: GenerationJob) -> SourceResult:
        """Query one source and turn its answer into a ``SourceResult``.

        Raises:
            UpstreamError: The provider failed or retries ran out.
            MalformedResponseError: The answer could not be parsed into a route.
        """
        text = await self._client.query(
            profile, job.destination, job.requested_stops, job.budget, origin=job.origin
        )
        sanitized = sanitize_response(text)
        if not sanitized.ok:
            raise MalformedResponseError(f"{profile.name} returned a response that is not valid JSON")
        if not isinstance(sanitized.value, dict):
            raise MalformedResponseError(f"{profile.name} returned JSON that is not an object")

        recommendations = self.build_recommendations(
            sanitized.value, job.origin, job.destination, job.requested_stops
        )
        return SourceResult(
            source_id=profile.id,
            display_meta=profile.meta,
            recommendations=recommendations,
            metrics=self._extractor.extract(profile.id, sanitized.text),
            description=profile.description,
        )

    def build_recommendations(
        self,
        payload: dict[str, Any],
        origin_name: str,
        destination_name: str,
        stop_count: int,
    ) -> Recommendations:
        """Parse endpoints and waypoints, then pick ``stop_count`` stops."""
        origin = CityCandidate.from_raw(payload.get("origin")) or CityCandidate(name=origin_name)
        destination = CityCandidate.from_raw(payload.get("destination")) or CityCandidate(name=destination_name)

        raw_waypoints = payload.get("waypoints")
        if raw_waypoints is None:
            raw_waypoints = payload.get("cities", [])
        if not isinstance(raw_waypoints, list):
            raise MalformedResponseError("waypoints must be a list")

        seen = {
            origin.key,
            destination.key,
            normalize_city_name(origin_name),
            normalize_city_name(destination_name),
        }
        candidates: list[CityCandidate] = []
        for item in raw_waypoints:
            city = CityCandidate.from_raw(item)
            if city is None or city.key in seen:
                continue
            seen.add(city.key)
            candidates.append(city)

        if not candidates:
            raise MalformedResponseError("response contained no usable waypoints")

        if origin.has_coordinates and destination.has_coordinates:
            selection = self._optimizer.select(candidates, origin, destination, stop_count)
            selected, alternatives = selection.selected, selection.alternatives
        else:
            selected, alternatives = candidates[:stop_count], candidates[stop_count:]

        return Recommendations(
            origin=origin,
            destination=destination,
            waypoints=selected,
            alternatives=alternatives,
        )

    def _failure(self, profile: SourceProfile, message: str) -> SourceResult:
        return SourceResult(
            source_id=profile.id,
            display_meta=profile.meta,
            recommendations=Recommendations.failure(message),
            metrics=self._extractor.defaults(profile.id),
            description=profile.description,
        )
