"""Data models and error types."""

from .core import (
    BudgetTier,
    CityCandidate,
    Coordinates,
    GenerationJob,
    JobProgress,
    JobSpec,
    JobStatus,
    Recommendations,
    SourceMeta,
    SourceResult,
    normalize_city_name,
)
from .errors import (
    AppError,
    ErrorCode,
    JobNotFoundError,
    MalformedResponseError,
    TransientUpstreamError,
    UpstreamError,
)

__all__ = [
    "BudgetTier",
    "CityCandidate",
    "Coordinates",
    "GenerationJob",
    "JobProgress",
    "JobSpec",
    "JobStatus",
    "Recommendations",
    "SourceMeta",
    "SourceResult",
    "normalize_city_name",
    "AppError",
    "ErrorCode",
    "JobNotFoundError",
    "MalformedResponseError",
    "TransientUpstreamError",
    "UpstreamError",
]
