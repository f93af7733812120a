"""Job store: registry of background route-generation jobs."""

from .service import InMemoryJobStore, JobMutator, JobStore, RedisJobStore, create_job_store

__all__ = ["InMemoryJobStore", "JobMutator", "JobStore", "RedisJobStore", "create_job_store"]
