"""Text generation providers: Groq (primary), Gemini and Perplexity (fallbacks).

Provider-agnostic base class with three concrete implementations. Every
provider exposes the same contract, ``generate(prompt, max_tokens,
temperature) -> text``, and reports failures in one of three ways:

- ``asyncio.TimeoutError``: the call exceeded its timeout (retryable)
- ``TransientUpstreamError``: rate limited or temporarily unavailable (retryable)
- ``UpstreamError``: anything else, e.g. bad key or malformed request (permanent)
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from roadtrip.config import Settings, get_settings
from roadtrip.models import TransientUpstreamError, UpstreamError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

SYSTEM_PROMPT = (
    "You are an expert European road trip planner with deep knowledge of cities, "
    "towns and regions. You recommend real places that are reachable by car, give "
    "accurate latitude/longitude for every city, and keep routes geographically "
    "sensible with no wild zigzags. "
    "Respond ONLY with valid JSON. No explanations, no markdown, no extra text."
)


def _classify_status(provider: str, status: int | None, exc: Exception) -> Exception:
    if status in RETRYABLE_STATUS_CODES:
        return TransientUpstreamError(f"{provider} unavailable ({status}): {exc}", status_code=status)
    return UpstreamError(f"{provider} request failed ({status}): {exc}")


class TextGenerationService(ABC):
    """Base class for text generation providers.

    Subclasses only implement ``_generate()`` for their specific API client
    and translate client errors into the taxonomy above.
    """

    _timeout: float

    @abstractmethod
    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Send prompt to the provider and return raw text."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for logging."""
        ...

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 2000,
        temperature: float = 0.4,
        timeout: float | None = None,
    ) -> str:
        t = timeout or self._timeout
        try:
            text = await asyncio.wait_for(self._generate(prompt, max_tokens, temperature), timeout=t)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.provider_name}] Timeout after {t}s")
            raise
        except (TransientUpstreamError, UpstreamError) as e:
            logger.warning(f"[{self.provider_name}] Error: {e}")
            raise
        return (text or "").strip()

    async def close(self) -> None:
        pass


# ═══════════════════════════════════════════════════════════════════════
# Provider: Groq  (primary, fast LPU inference)
# ═══════════════════════════════════════════════════════════════════════

class GroqTextService(TextGenerationService):
    """Groq LPU with Llama 3.1 8B Instant."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        import groq

        self._api_key = api_key
        if not self._api_key:
            raise ValueError("GROQ_API_KEY not provided")
        self._groq = groq
        self._client = groq.AsyncGroq(api_key=self._api_key)
        self._model_name = model_name or "llama-3.1-8b-instant"
        self._timeout = timeout_seconds
        logger.info(f"[AI] Groq ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Groq"

    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self._model_name,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except self._groq.APITimeoutError as e:
            raise asyncio.TimeoutError(str(e)) from e
        except self._groq.APIConnectionError as e:
            raise TransientUpstreamError(f"Groq connection error: {e}") from e
        except self._groq.APIStatusError as e:
            raise _classify_status("Groq", e.status_code, e) from e
        return resp.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()


# ═══════════════════════════════════════════════════════════════════════
# Provider: Gemini  (fallback)
# ═══════════════════════════════════════════════════════════════════════

class GeminiTextService(TextGenerationService):
    """Google Gemini with Gemma 3 4B."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        from google import genai
        from google.genai import errors, types

        self._api_key = api_key
        if not self._api_key:
            raise ValueError("GEMINI_API_KEY not provided")
        self._client = genai.Client(api_key=self._api_key)
        self._errors = errors
        self._types = types
        self._model_name = model_name or "gemma-3-4b-it"
        self._timeout = timeout_seconds
        logger.info(f"[AI] Gemini ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Gemini"

    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        # Gemma models reject system instructions, so the system prompt is prepended
        full_prompt = f"{SYSTEM_PROMPT}\n\n{prompt}"
        try:
            resp = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=full_prompt,
                config=self._types.GenerateContentConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
            )
        except self._errors.APIError as e:
            raise _classify_status("Gemini", e.code, e) from e
        return resp.text or ""


# ═══════════════════════════════════════════════════════════════════════
# Provider: Perplexity  (OpenAI-compatible REST endpoint over httpx)
# ═══════════════════════════════════════════════════════════════════════

class PerplexityTextService(TextGenerationService):
    """Perplexity Sonar via its chat-completions REST API."""

    API_URL = "https://api.perplexity.ai/chat/completions"

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float = 45.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        if not self._api_key:
            raise ValueError("PERPLEXITY_API_KEY not provided")
        self._model_name = model_name or "sonar"
        self._timeout = timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
        )
        logger.info(f"[AI] Perplexity ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Perplexity"

    async def _generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self._model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            response = await self._client.post(self.API_URL, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise asyncio.TimeoutError(str(e)) from e
        except httpx.HTTPStatusError as e:
            raise _classify_status("Perplexity", e.response.status_code, e) from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"Perplexity connection error: {e}") from e

        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"Unexpected Perplexity response shape: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


# ═══════════════════════════════════════════════════════════════════════
# Factory: Groq → Gemini → Perplexity
# ═══════════════════════════════════════════════════════════════════════

def create_text_service(settings: Settings | None = None) -> TextGenerationService:
    """Create the best available provider.  Groq first, then Gemini, then Perplexity."""
    settings = settings or get_settings()
    timeout = settings.llm_timeout_seconds

    if settings.groq_api_key:
        try:
            return GroqTextService(settings.groq_api_key, settings.groq_model, timeout)
        except Exception as e:
            logger.info(f"[AI] Groq init failed: {e}")

    if settings.gemini_api_key:
        try:
            return GeminiTextService(settings.gemini_api_key, settings.gemini_model, timeout)
        except Exception as e:
            logger.info(f"[AI] Gemini init failed: {e}")

    if settings.perplexity_api_key:
        return PerplexityTextService(settings.perplexity_api_key, settings.perplexity_model, timeout)

    raise ValueError(
        "No text generation provider available. "
        "Set GROQ_API_KEY, GEMINI_API_KEY or PERPLEXITY_API_KEY in .env"
    )
