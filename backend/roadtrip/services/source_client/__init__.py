"""Source query client: prompts a source and retries transient failures."""

from .service import SourceQueryClient, itinerary_token_budget, route_token_budget

__all__ = ["SourceQueryClient", "itinerary_token_budget", "route_token_budget"]
