"""Road Trip Planner Services.

Service layer components:
- Sanitizer: repairs and parses JSON-ish model output
- Metrics: declarative regex tables that mine trip metrics from responses
- Route Optimizer: greedy detour-minimizing city selection
- Sources: the fixed travel-style profiles and their prompts
- Text Generation: Groq (primary) + Gemini and Perplexity (fallbacks)
- Source Client: per-source queries with retry and backoff
- Orchestrator: sequential per-job pipeline with progress tracking
- Merge: the combined best-overall route
- Jobs: in-memory or Redis job store
"""

from .jobs import InMemoryJobStore, JobStore, RedisJobStore, create_job_store
from .merge import MergeEngine
from .metrics import MetricExtractor
from .orchestrator import SourceOrchestrator
from .route_optimizer import (
    DetourRouteOptimizerService,
    DistanceMatrix,
    RouteOptimizerService,
    RouteSelection,
)
from .sanitizer import SanitizedResponse, sanitize_response
from .source_client import SourceQueryClient
from .sources import SOURCE_PROFILES, SourceProfile, get_profile
from .text_generation import TextGenerationService, create_text_service

__all__ = [
    # Jobs
    "InMemoryJobStore",
    "JobStore",
    "RedisJobStore",
    "create_job_store",
    # Pipeline
    "MergeEngine",
    "MetricExtractor",
    "SourceOrchestrator",
    "SanitizedResponse",
    "sanitize_response",
    "SourceQueryClient",
    # Route optimizer
    "DetourRouteOptimizerService",
    "DistanceMatrix",
    "RouteOptimizerService",
    "RouteSelection",
    # Sources and providers
    "SOURCE_PROFILES",
    "SourceProfile",
    "get_profile",
    "TextGenerationService",
    "create_text_service",
]
