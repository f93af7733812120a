"""Job store service implementation.

This module provides an abstract job store interface and two concrete
implementations: an in-process map (default) and a Redis-backed store for
deployments that run more than one worker.

Lifecycle rules enforced by every store:
- ``progress.completed`` never decreases and never exceeds ``progress.total``
- ``status`` only moves ``processing -> completed | failed``
- terminal jobs are evicted once they have been finished for longer than
  the retention window; eviction is checked lazily on create and get
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable

import redis.asyncio as redis

from roadtrip.config import Settings, get_settings
from roadtrip.models import GenerationJob, JobNotFoundError, JobProgress, JobSpec, JobStatus

logger = logging.getLogger(__name__)

JobMutator = Callable[[GenerationJob], None]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStore(ABC):
    """Abstract base class for job stores.

    Defines create, read, update and eviction of generation jobs. Reads
    always return a private copy; changes go through ``update``.
    """

    def __init__(self, retention_seconds: int = 300, clock: Clock = utc_now) -> None:
        self._retention = timedelta(seconds=retention_seconds)
        self._clock = clock

    @abstractmethod
    async def create(self, spec: JobSpec, origin: str) -> str:
        """Register a new ``processing`` job and return its id."""
        pass

    @abstractmethod
    async def get(self, job_id: str) -> GenerationJob:
        """Return a snapshot of the job.

        Raises:
            JobNotFoundError: If no job is stored under ``job_id``.
        """
        pass

    @abstractmethod
    async def update(self, job_id: str, mutator: JobMutator) -> GenerationJob:
        """Apply ``mutator`` to a copy of the job and store it if it is valid.

        Raises:
            JobNotFoundError: If no job is stored under ``job_id``.
            ValueError: If the change would break a lifecycle rule.
        """
        pass

    @abstractmethod
    async def evict_expired(self) -> int:
        """Drop terminal jobs past the retention window; returns how many."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Drop every job."""
        pass

    async def close(self) -> None:
        """Release the store at shutdown."""
        await self.clear()

    def _new_job(self, spec: JobSpec, origin: str) -> GenerationJob:
        now = self._clock()
        return GenerationJob(
            id=str(uuid.uuid4()),
            origin=origin,
            destination=spec.destination,
            requested_stops=spec.stops,
            selected_sources=list(spec.sources),
            budget=spec.budget,
            progress=JobProgress(total=len(spec.sources), started_at=now),
            created_at=now,
        )

    def _is_expired(self, job: GenerationJob, now: datetime) -> bool:
        if not job.status.is_terminal:
            return False
        finished = job.finished_at or job.created_at
        return now - finished > self._retention

    def _apply(self, current: GenerationJob, mutator: JobMutator) -> GenerationJob:
        updated = current.model_copy(deep=True)
        mutator(updated)

        if current.status.is_terminal and updated.status != current.status:
            raise ValueError(
                f"Job {current.id} is already {current.status.value}; cannot move to {updated.status.value}"
            )
        if updated.progress.completed < current.progress.completed:
            raise ValueError(f"Job {current.id} progress cannot go backwards")
        if updated.progress.completed > updated.progress.total:
            raise ValueError(f"Job {current.id} progress exceeds its source count")
        if len(updated.results) > len(updated.selected_sources) + 1:
            raise ValueError(f"Job {current.id} has more results than sources")

        if updated.status.is_terminal and updated.finished_at is None:
            updated.finished_at = self._clock()
        return updated


class InMemoryJobStore(JobStore):
    """Process-local job store guarded by a lock.

    The HTTP handlers and the background job tasks touch the map
    concurrently; every access goes through ``_lock`` and hands out deep
    copies, so a poller never sees a half-applied update.
    """

    def __init__(self, retention_seconds: int = 300, clock: Clock = utc_now) -> None:
        super().__init__(retention_seconds, clock)
        self._jobs: dict[str, GenerationJob] = {}
        self._lock = threading.Lock()

    async def create(self, spec: JobSpec, origin: str) -> str:
        job = self._new_job(spec, origin)
        with self._lock:
            self._evict_locked()
            self._jobs[job.id] = job
        logger.info(f"[JOB] Created {job.id} ({len(job.selected_sources)} sources -> {job.destination})")
        return job.id

    async def get(self, job_id: str) -> GenerationJob:
        with self._lock:
            self._evict_locked()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    async def update(self, job_id: str, mutator: JobMutator) -> GenerationJob:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = self._apply(current, mutator)
            self._jobs[job_id] = updated
            return copy.deepcopy(updated)

    async def evict_expired(self) -> int:
        with self._lock:
            return self._evict_locked()

    async def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _evict_locked(self) -> int:
        now = self._clock()
        expired = [job_id for job_id, job in self._jobs.items() if self._is_expired(job, now)]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"[JOB] Evicted {len(expired)} finished job(s)")
        return len(expired)


class RedisJobStore(JobStore):
    """Redis-backed job store.

    Each job is one JSON string under ``job:{id}``. The lifecycle rules are
    checked in-process, so a given job must only be written by the worker
    that runs it. Finished jobs get a Redis TTL equal to the retention
    window; unfinished jobs carry a longer safety TTL so abandoned keys
    still expire.
    """

    KEY_PREFIX = "job:"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        retention_seconds: int = 300,
        processing_ttl_seconds: int = 3600,
        clock: Clock = utc_now,
        client: redis.Redis | None = None,
    ) -> None:
        super().__init__(retention_seconds, clock)
        self._redis_url = redis_url
        self._processing_ttl = processing_ttl_seconds
        self._client = client

    @classmethod
    def build_key(cls, job_id: str) -> str:
        return f"{cls.KEY_PREFIX}{job_id}"

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def close(self) -> None:
        # Jobs stay in Redis; other workers may still be running or serving them.
        await self.disconnect()

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore

    def _ttl_for(self, job: GenerationJob) -> int:
        if job.status.is_terminal:
            return int(self._retention.total_seconds())
        return self._processing_ttl

    async def _write(self, job: GenerationJob) -> None:
        client = await self._ensure_connected()
        await client.set(self.build_key(job.id), job.model_dump_json(), ex=self._ttl_for(job))

    async def _read(self, job_id: str) -> GenerationJob:
        client = await self._ensure_connected()
        raw = await client.get(self.build_key(job_id))
        if raw is None:
            raise JobNotFoundError(job_id)
        job = GenerationJob.model_validate_json(raw)
        if self._is_expired(job, self._clock()):
            await client.delete(self.build_key(job_id))
            raise JobNotFoundError(job_id)
        return job

    async def create(self, spec: JobSpec, origin: str) -> str:
        job = self._new_job(spec, origin)
        await self._write(job)
        logger.info(f"[JOB] Created {job.id} in Redis ({len(job.selected_sources)} sources)")
        return job.id

    async def get(self, job_id: str) -> GenerationJob:
        return await self._read(job_id)

    async def update(self, job_id: str, mutator: JobMutator) -> GenerationJob:
        current = await self._read(job_id)
        updated = self._apply(current, mutator)
        await self._write(updated)
        return updated

    async def evict_expired(self) -> int:
        """Scan stored jobs and delete expired ones.

        Redis TTLs already expire finished jobs; this catches jobs whose
        retention window was shortened after they were written.
        """
        client = await self._ensure_connected()
        now = self._clock()
        evicted = 0
        cursor = 0
        while True:
            cursor, keys = await client.scan(cursor=cursor, match=f"{self.KEY_PREFIX}*", count=100)
            for key in keys:
                raw = await client.get(key)
                if raw is None:
                    continue
                if self._is_expired(GenerationJob.model_validate_json(raw), now):
                    evicted += await client.delete(key)
            if cursor == 0:
                break
        return evicted

    async def clear(self) -> None:
        """Drop every job under the key prefix, including other workers' jobs."""
        client = await self._ensure_connected()
        cursor = 0
        while True:
            cursor, keys = await client.scan(cursor=cursor, match=f"{self.KEY_PREFIX}*", count=100)
            if keys:
                await client.delete(*keys)
            if cursor == 0:
                break


def create_job_store(settings: Settings | None = None) -> JobStore:
    """Redis store when ``REDIS_URL`` is set, otherwise the in-memory map."""
    settings = settings or get_settings()
    if settings.redis_url:
        logger.info("[JOB] Using Redis job store")
        return RedisJobStore(settings.redis_url, retention_seconds=settings.job_retention_seconds)
    return InMemoryJobStore(retention_seconds=settings.job_retention_seconds)
