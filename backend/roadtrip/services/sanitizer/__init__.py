"""Response sanitizer: repairs and parses JSON-ish model output."""

from .service import (
    SanitizedResponse,
    parse_or_raise,
    remove_trailing_commas,
    sanitize_response,
    strip_code_fences,
    strip_comments,
)

__all__ = [
    "SanitizedResponse",
    "parse_or_raise",
    "remove_trailing_commas",
    "sanitize_response",
    "strip_code_fences",
    "strip_comments",
]
