"""Merge engine: combines per-source routes into the best-overall route."""

from .service import MergeEngine, theme_display

__all__ = ["MergeEngine", "theme_display"]
