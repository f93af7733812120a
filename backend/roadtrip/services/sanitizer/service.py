"""Response sanitizer for text that is supposed to be JSON.

Language models wrap JSON in markdown fences, leave trailing commas, add
``//`` comments or surround the payload with prose. This module cleans those
artifacts and parses the result. It never invents content: when the text
cannot be repaired, the caller gets an ``Unparseable`` result with the
cleaned text and decides what to do.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from roadtrip.models import MalformedResponseError

logger = logging.getLogger(__name__)

MAX_COMMA_PASSES = 5

_LEADING_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```\s*$")


@dataclass(frozen=True)
class SanitizedResponse:
    """Tagged result: ``ok`` with a parsed ``value``, or the cleaned ``text`` only."""

    ok: bool
    text: str
    value: Any = None

    @classmethod
    def parsed(cls, value: Any, text: str) -> "SanitizedResponse":
        return cls(ok=True, text=text, value=value)

    @classmethod
    def unparseable(cls, text: str) -> "SanitizedResponse":
        return cls(ok=False, text=text)


def strip_code_fences(text: str) -> str:
    text = _LEADING_FENCE.sub("", text.strip())
    return _TRAILING_FENCE.sub("", text).strip()


def _drop_trailing_commas(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False

    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j == n or text[j] not in "]}":
                out.append(ch)
        else:
            out.append(ch)
        i += 1

    return "".join(out)


def remove_trailing_commas(text: str, max_passes: int = MAX_COMMA_PASSES) -> str:
    """Drop commas directly before ``]`` or ``}`` until nothing changes.

    Commas inside string literals are left alone.
    """
    for _ in range(max_passes):
        cleaned = _drop_trailing_commas(text)
        if cleaned == text:
            break
        text = cleaned
    return text


def strip_comments(text: str) -> str:
    """Remove ``//`` line comments and ``/* */`` block comments.

    String literals are copied untouched so URLs like ``https://...`` survive.
    """
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False

    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def _clean(text: str) -> str:
    # Comments go first so a comment after the last element cannot hide a trailing comma.
    return remove_trailing_commas(strip_comments(text)).strip()


def _try_parse(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def sanitize_response(raw: str | None) -> SanitizedResponse:
    """Clean and parse a raw model response.

    Steps: trim, strip code fences, remove comments and trailing commas,
    parse. On failure, retry once on the substring between the first ``{``
    and the last ``}``.
    """
    if not raw or not raw.strip():
        return SanitizedResponse.unparseable("")

    text = _clean(strip_code_fences(raw))
    ok, value = _try_parse(text)
    if ok:
        return SanitizedResponse.parsed(value, text)

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidate = _clean(text[start:end + 1])
        ok, value = _try_parse(candidate)
        if ok:
            return SanitizedResponse.parsed(value, candidate)

    logger.info(f"[SANITIZE] Could not parse response ({len(text)} chars)")
    return SanitizedResponse.unparseable(text)


def parse_or_raise(raw: str | None) -> Any:
    """Like ``sanitize_response`` but raises ``MalformedResponseError`` on failure."""
    result = sanitize_response(raw)
    if not result.ok:
        preview = result.text[:120].replace("\n", " ")
        raise MalformedResponseError(f"Response is not valid JSON: {preview!r}")
    return result.value
