"""Unit tests for the text generation providers."""

import asyncio
import json

import httpx
import pytest

from roadtrip.config import Settings
from roadtrip.models import TransientUpstreamError, UpstreamError
from roadtrip.services.text_generation import (
    PerplexityTextService,
    TextGenerationService,
    create_text_service,
)


def perplexity(handler) -> PerplexityTextService:
    return PerplexityTextService(
        api_key="test-key",
        timeout_seconds=5.0,
        transport=httpx.MockTransport(handler),
    )


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class SlowTextService(TextGenerationService):
    def __init__(self, delay: float) -> None:
        self._timeout = 0.01
        self._delay = delay

    @property
    def provider_name(self) -> str:
        return "Slow"

    async def _generate(self, prompt, max_tokens, temperature) -> str:
        await asyncio.sleep(self._delay)
        return "  late answer \n"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_timeout_raises(self) -> None:
        with pytest.raises(asyncio.TimeoutError):
            await SlowTextService(delay=1.0).generate("prompt")

    @pytest.mark.asyncio
    async def test_explicit_timeout_and_stripping(self) -> None:
        assert await SlowTextService(delay=0).generate("prompt", timeout=1.0) == "late answer"


class TestPerplexityTextService:
    @pytest.mark.asyncio
    async def test_request_and_response(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion('{"waypoints": []}'))

        service = perplexity(handler)
        text = await service.generate("Plan a trip", max_tokens=1500, temperature=0.3)
        await service.close()

        assert text == '{"waypoints": []}'
        assert seen["url"] == PerplexityTextService.API_URL
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "sonar"
        assert seen["body"]["max_tokens"] == 1500
        assert seen["body"]["messages"][0]["role"] == "system"
        assert seen["body"]["messages"][1]["content"] == "Plan a trip"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 502, 503, 504])
    async def test_transient_statuses(self, status) -> None:
        service = perplexity(lambda request: httpx.Response(status, json={"error": "busy"}))
        with pytest.raises(TransientUpstreamError) as exc_info:
            await service.generate("prompt")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_permanent_statuses(self, status) -> None:
        service = perplexity(lambda request: httpx.Response(status, json={"error": "nope"}))
        with pytest.raises(UpstreamError):
            await service.generate("prompt")

    @pytest.mark.asyncio
    async def test_http_timeout_becomes_timeout_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(asyncio.TimeoutError):
            await perplexity(handler).generate("prompt")

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientUpstreamError):
            await perplexity(handler).generate("prompt")

    @pytest.mark.asyncio
    async def test_unexpected_body(self) -> None:
        service = perplexity(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(UpstreamError):
            await service.generate("prompt")

    def test_requires_api_key(self) -> None:
        with pytest.raises(ValueError):
            PerplexityTextService(api_key=None)


class TestCreateTextService:
    def test_no_keys(self) -> None:
        with pytest.raises(ValueError):
            create_text_service(
                Settings(_env_file=None, groq_api_key=None, gemini_api_key=None, perplexity_api_key=None)
            )

    def test_perplexity_only(self) -> None:
        settings = Settings(
            _env_file=None,
            groq_api_key=None,
            gemini_api_key=None,
            perplexity_api_key="key",
            perplexity_model="sonar-pro",
        )
        service = create_text_service(settings)
        assert isinstance(service, PerplexityTextService)
        assert service.provider_name == "Perplexity"
