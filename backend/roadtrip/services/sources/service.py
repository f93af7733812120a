"""Recommendation source profiles and their prompts.

The set of sources is fixed: each travel style has its own display
metadata, focus description and metric keys. The merged route uses the
synthetic ``best-overall`` profile for display only; it is never queried.
"""

import re
from dataclasses import dataclass

from roadtrip.models import BudgetTier, SourceMeta

BEST_OVERALL_ID = "best-overall"


@dataclass(frozen=True)
class SourceProfile:
    """A named travel-style recommendation source."""

    id: str
    name: str
    color: str
    icon: str
    focus: str
    description: str
    metric_keys: str

    @property
    def meta(self) -> SourceMeta:
        return SourceMeta(name=self.name, color=self.color, icon=self.icon)

    @property
    def short_name(self) -> str:
        """Name without the trailing 'Route', used in merged theme labels."""
        return self.name.removesuffix(" Route")


SOURCE_PROFILES: dict[str, SourceProfile] = {
    "adventure": SourceProfile(
        id="adventure",
        name="Adventure Route",
        color="#34C759",
        icon="🏔️",
        focus="outdoor activities, hiking, nature, scenic landscapes",
        description=(
            "Discover amazing cities perfect for adventure enthusiasts with outdoor "
            "activities, hiking trails, and thrilling experiences."
        ),
        metric_keys=(
            '"difficulty_level": "Easy|Moderate|Challenging|Extreme", '
            '"outdoor_hours": "2-4 hours", "adrenaline_rating": 1-10, '
            '"adventure_activities": ["activity", "..."]'
        ),
    ),
    "culture": SourceProfile(
        id="culture",
        name="Culture Route",
        color="#FF9500",
        icon="🏛️",
        focus="historical sites, museums, architecture, cultural heritage",
        description=(
            "Explore cities rich in history, art, and cultural heritage with museums, "
            "historic sites, and architectural wonders."
        ),
        metric_keys=(
            '"art": percent, "history": percent, "architecture": percent (summing to 100), '
            '"museums_count": number, "historical_period": "era", '
            '"heritage_sites": ["site", "..."]'
        ),
    ),
    "food": SourceProfile(
        id="food",
        name="Food Route",
        color="#FF3B30",
        icon="🍽️",
        focus="culinary experiences, local cuisine, food markets, wineries",
        description=(
            "Savor the finest culinary experiences with local specialties, renowned "
            "restaurants, and food markets."
        ),
        metric_keys=(
            '"street_food": percent, "casual_dining": percent, "fine_dining": percent '
            '(summing to 100), "price_level": "Budget|Moderate|Upscale", '
            '"local_specialties": ["dish", "..."]'
        ),
    ),
    "hidden-gems": SourceProfile(
        id="hidden-gems",
        name="Hidden Gems Route",
        color="#9333ea",
        icon="💎",
        focus="off-the-beaten-path locations, local secrets, unique experiences",
        description=(
            "Uncover lesser-known treasures and authentic local experiences away from "
            "the typical tourist crowds."
        ),
        metric_keys=(
            '"authenticity_score": 1-10, "crowd_level": "Low|Medium|High", '
            '"secret_spots": ["spot", "..."]'
        ),
    ),
}

BEST_OVERALL = SourceProfile(
    id=BEST_OVERALL_ID,
    name="Best Overall Route",
    color="#007AFF",
    icon="⭐",
    focus="balanced mix of popular attractions and unique experiences",
    description="The strongest cities across every travel style, in one route.",
    metric_keys="",
)

BUDGET_DESCRIPTIONS = {
    BudgetTier.BUDGET: "affordable, budget-friendly destinations",
    BudgetTier.MID: "moderate pricing, good value destinations",
    BudgetTier.LUXURY: "premium destinations with high-end offerings",
}


def get_profile(source_id: str) -> SourceProfile:
    """Look up a profile, raising ``KeyError`` for unknown ids."""
    if source_id == BEST_OVERALL_ID:
        return BEST_OVERALL
    try:
        return SOURCE_PROFILES[source_id]
    except KeyError:
        raise KeyError(f"Unknown source: {source_id}") from None


def sanitize_user_input(text: str, max_length: int = 200) -> str:
    """Strip control characters and limit length before text enters a prompt."""
    cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return cleaned[:max_length].strip()


def build_route_prompt(
    profile: SourceProfile,
    origin: str,
    destination: str,
    stop_count: int,
    budget: BudgetTier,
) -> str:
    """Prompt asking for twice as many candidate stops as the trip needs.

    The surplus gives the route optimizer room to choose the stops that keep
    the drive short; the rest become alternatives.
    """
    origin = sanitize_user_input(origin, max_length=100)
    destination = sanitize_user_input(destination, max_length=100)
    candidates = stop_count * 2

    return (
        f"You are a {profile.id} travel expert planning a road trip from {origin} "
        f"to {destination}.\n\n"
        f"TRAVEL STYLE: {profile.id}\nFocus on: {profile.focus}\n"
        f"BUDGET: {budget.value} ({BUDGET_DESCRIPTIONS[budget]})\n\n"
        f"TASK: Suggest {candidates} candidate cities to stop at between {origin} and "
        f"{destination}. The traveller will visit {stop_count} of them, so propose "
        f"{candidates} distinct options spread along the way.\n\n"
        f"REQUIREMENTS:\n"
        f"1. Real cities or towns reachable by car\n"
        f"2. Do not repeat {origin} or {destination} as a stop\n"
        f"3. Accurate latitude and longitude in decimal degrees for every city\n"
        f"4. Every stop must match the {profile.id} style\n\n"
        f"Return ONLY this JSON object:\n"
        f'{{"origin": {{"name": "{origin}", "latitude": 0.0, "longitude": 0.0}}, '
        f'"destination": {{"name": "{destination}", "latitude": 0.0, "longitude": 0.0}}, '
        f'"waypoints": [{{"name": "City", "latitude": 0.0, "longitude": 0.0, '
        f'"description": "Why this city fits", "activities": ["activity", "..."], '
        f'"duration": "1-2 days", "currentEvents": "Festival or None"}}], '
        f'"metrics": {{{profile.metric_keys}}}}}\n\n'
        f"Return EXACTLY {candidates} waypoints."
    )


def build_itinerary_prompt(
    profile: SourceProfile,
    cities: list[str],
    days: int,
    budget: BudgetTier,
) -> str:
    """Prompt for a day-by-day itinerary along an already chosen route."""
    stops = " → ".join(sanitize_user_input(c, max_length=100) for c in cities)
    return (
        f"You are the {profile.name} curator, specialised in {profile.focus}.\n\n"
        f"Create a {days}-day road trip itinerary for this route: {stops}.\n"
        f"BUDGET: {budget.value} ({BUDGET_DESCRIPTIONS[budget]})\n\n"
        f"Return ONLY this JSON object:\n"
        f'{{"days": [{{"day": 1, "city": "City", "title": "Short title", '
        f'"activities": [{{"time": "09:00", "name": "Activity", "description": "...", '
        f'"estimated_cost": "~15 EUR"}}], "tips": ["tip"]}}]}}\n\n'
        f"Return exactly {days} days and keep recommendations specific to {profile.focus}."
    )
