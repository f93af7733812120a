"""Source orchestrator: runs a job's sources and records progress."""

from .service import FALLBACK_SOURCE_ESTIMATE_MS, SourceOrchestrator

__all__ = ["FALLBACK_SOURCE_ESTIMATE_MS", "SourceOrchestrator"]
