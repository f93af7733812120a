"""Text generation: Groq (primary), Gemini and Perplexity (fallbacks)."""

from .service import (
    GeminiTextService,
    GroqTextService,
    PerplexityTextService,
    TextGenerationService,
    create_text_service,
)

__all__ = [
    "GeminiTextService",
    "GroqTextService",
    "PerplexityTextService",
    "TextGenerationService",
    "create_text_service",
]
