"""Source query client.

Builds the prompt for one recommendation source and sends it to the text
generation provider. Timeouts and transient provider errors are retried
with exponential backoff; anything else fails immediately.

Retry schedule for route generation (``max_retries=2``, ``base_delay=1s``):
attempt 0, wait 1s, attempt 1, wait 2s, attempt 2, then ``UpstreamError``.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from roadtrip.config import Settings, get_settings
from roadtrip.models import BudgetTier, TransientUpstreamError, UpstreamError
from roadtrip.services.sources import SourceProfile, build_itinerary_prompt, build_route_prompt
from roadtrip.services.text_generation import TextGenerationService

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

RETRYABLE_ERRORS = (asyncio.TimeoutError, httpx.TimeoutException, TransientUpstreamError)

ROUTE_TOKENS_BASE = 1200
ROUTE_TOKENS_PER_STOP = 350
ROUTE_TOKENS_CEILING = 4000

ITINERARY_TOKENS_BASE = 2500
ITINERARY_TOKENS_PER_DAY = 500
ITINERARY_TOKENS_CEILING = 8000


def route_token_budget(stop_count: int) -> int:
    return min(ROUTE_TOKENS_BASE + ROUTE_TOKENS_PER_STOP * stop_count, ROUTE_TOKENS_CEILING)


def itinerary_token_budget(days: int) -> int:
    return min(ITINERARY_TOKENS_BASE + ITINERARY_TOKENS_PER_DAY * days, ITINERARY_TOKENS_CEILING)


class SourceQueryClient:
    """Queries recommendation sources through a text generation provider."""

    def __init__(
        self,
        text_service: TextGenerationService,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._text = text_service
        self._sleep = sleep
        self._default_origin = settings.default_origin
        self.max_retries = settings.route_max_retries
        self.base_delay = settings.route_retry_base_delay
        self.itinerary_max_retries = settings.itinerary_max_retries
        self.itinerary_delay = settings.itinerary_retry_delay

    async def query(
        self,
        profile: SourceProfile,
        destination: str,
        stop_count: int,
        budget: BudgetTier,
        origin: str | None = None,
    ) -> str:
        """Ask one source for candidate stops; returns the raw response text.

        Raises:
            UpstreamError: On a permanent failure or once retries run out.
        """
        origin = origin or self._default_origin
        prompt = build_route_prompt(profile, origin, destination, stop_count, budget)
        return await self._call_with_retries(
            label=f"{profile.id} route",
            prompt=prompt,
            max_tokens=route_token_budget(stop_count),
            temperature=0.4,
            max_retries=self.max_retries,
            delay_for=lambda attempt: self.base_delay * 2 ** attempt,
        )

    async def query_itinerary(
        self,
        profile: SourceProfile,
        cities: list[str],
        days: int,
        budget: BudgetTier,
    ) -> str:
        """Ask one source for a day-by-day itinerary along a chosen route."""
        prompt = build_itinerary_prompt(profile, cities, days, budget)
        return await self._call_with_retries(
            label=f"{profile.id} itinerary",
            prompt=prompt,
            max_tokens=itinerary_token_budget(days),
            temperature=0.5,
            max_retries=self.itinerary_max_retries,
            delay_for=lambda attempt: self.itinerary_delay,
        )

    async def _call_with_retries(
        self,
        label: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        max_retries: int,
        delay_for: Callable[[int], float],
    ) -> str:
        attempt = 0
        while True:
            try:
                text = await self._text.generate(prompt, max_tokens=max_tokens, temperature=temperature)
                if attempt:
                    logger.info(f"[SOURCE] {label} succeeded on attempt {attempt + 1}")
                return text
            except RETRYABLE_ERRORS as e:
                if attempt >= max_retries:
                    logger.warning(f"[SOURCE] {label} failed after {attempt + 1} attempts: {e!r}")
                    raise UpstreamError(f"{label} failed after {attempt + 1} attempts: {e}") from e
                delay = delay_for(attempt)
                logger.info(f"[SOURCE] {label} attempt {attempt + 1} failed ({e!r}), retrying in {delay}s")
                await self._sleep(delay)
                attempt += 1
            except UpstreamError:
                raise
            except Exception as e:
                logger.warning(f"[SOURCE] {label} failed permanently: {e!r}")
                raise UpstreamError(f"{label} failed: {e}") from e
