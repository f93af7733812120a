"""Recommendation source catalogue and prompt builders."""

from .service import (
    BEST_OVERALL,
    BEST_OVERALL_ID,
    BUDGET_DESCRIPTIONS,
    SOURCE_PROFILES,
    SourceProfile,
    build_itinerary_prompt,
    build_route_prompt,
    get_profile,
    sanitize_user_input,
)

__all__ = [
    "BEST_OVERALL",
    "BEST_OVERALL_ID",
    "BUDGET_DESCRIPTIONS",
    "SOURCE_PROFILES",
    "SourceProfile",
    "build_itinerary_prompt",
    "build_route_prompt",
    "get_profile",
    "sanitize_user_input",
]
