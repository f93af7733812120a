"""Metric extraction from free-text source responses.

Each source has a declarative table of extraction rules (pattern, target
field, default). Extraction is best-effort: a pattern that does not match,
or a capture that does not parse as the declared type, yields the field's
default. Distribution fields (three percentages describing one trip) are
matched independently and then rescaled to sum to 100.

No I/O happens here; the same text and table always give the same metrics.
"""

import re
from dataclasses import dataclass
from typing import Any, Sequence, Union

VALUE_KINDS = ("int", "level", "range", "text")

_RANGE = re.compile(r"(\d+)\s*(?:-|–|to)\s*(\d+)\s*([A-Za-z]+)?")
_INT = re.compile(r"-?\d+")


def _number(label: str) -> str:
    return rf"\b{label}\b[\"']?\s*[:=-]?\s*\"?(\d{{1,3}})"


def _word(label: str) -> str:
    return rf"\b{label}\b[\"']?\s*[:=-]?\s*\"?([A-Za-z]+)"


def _phrase(label: str) -> str:
    return rf"\b{label}\b[\"']?\s*[:=-]?\s*\"?([^\"\n}}]+)"


def _list(label: str) -> str:
    return rf"\b{label}\b[\"']?\s*[:=-]?\s*(?:\[([^\]]*)\]|([^\n]+))"


@dataclass(frozen=True)
class ValueRule:
    """A single-value field."""

    field: str
    pattern: str
    default: Any
    kind: str = "int"
    choices: tuple[str, ...] = ()
    minimum: int | None = None
    maximum: int | None = None

    def __post_init__(self) -> None:
        if self.kind not in VALUE_KINDS:
            raise ValueError(f"Unknown value kind: {self.kind}")


@dataclass(frozen=True)
class DistributionRule:
    """Percentage fields that together describe a 100% split."""

    fields: tuple[str, ...]
    patterns: tuple[str, ...]
    defaults: tuple[int, ...]

    def __post_init__(self) -> None:
        if not (len(self.fields) == len(self.patterns) == len(self.defaults)):
            raise ValueError("fields, patterns and defaults must have the same length")


@dataclass(frozen=True)
class ListRule:
    """A comma-separated list field."""

    field: str
    pattern: str
    default: tuple[str, ...] = ()


Rule = Union[ValueRule, DistributionRule, ListRule]


def _search(pattern: str, text: str) -> str | None:
    match = re.search(pattern, text, re.IGNORECASE)
    if not match:
        return None
    groups = [g for g in match.groups() if g is not None]
    if not groups:
        return None
    return groups[0].strip()


def _parse_value(rule: ValueRule, captured: str) -> Any:
    """Parse a captured string as the rule's kind, or return None."""
    if rule.kind == "int":
        found = _INT.search(captured)
        if not found:
            return None
        value = int(found.group())
        if rule.minimum is not None and value < rule.minimum:
            return None
        if rule.maximum is not None and value > rule.maximum:
            return None
        return value

    if rule.kind == "level":
        lowered = captured.strip().lower()
        for choice in rule.choices:
            if choice.lower() == lowered:
                return choice
        return None

    if rule.kind == "range":
        found = _RANGE.search(captured)
        if not found:
            return None
        low, high, unit = int(found.group(1)), int(found.group(2)), found.group(3)
        if low > high:
            return None
        return f"{low}-{high} {unit.lower()}" if unit else f"{low}-{high}"

    text = captured.strip().strip("\"'")
    return text or None


def normalize_distribution(values: Sequence[float]) -> list[int]:
    """Rescale non-negative values proportionally so they sum to ~100.

    Each share is rounded independently, so the sum may drift by one.
    """
    total = sum(values)
    if total <= 0:
        raise ValueError("Cannot normalize a distribution with no positive values")
    return [int(round(v * 100 / total)) for v in values]


def _split_list(captured: str) -> list[str]:
    items = (item.strip().strip("\"'").strip() for item in captured.split(","))
    return [item for item in items if item]


def extract_metrics(rules: Sequence[Rule], text: str) -> dict[str, Any]:
    """Apply an extraction table to ``text`` and return a flat metrics dict."""
    text = text or ""
    metrics: dict[str, Any] = {}

    for rule in rules:
        if isinstance(rule, ValueRule):
            captured = _search(rule.pattern, text)
            value = _parse_value(rule, captured) if captured is not None else None
            metrics[rule.field] = rule.default if value is None else value

        elif isinstance(rule, DistributionRule):
            raw: list[int] = []
            for pattern, default in zip(rule.patterns, rule.defaults):
                captured = _search(pattern, text)
                found = _INT.search(captured) if captured is not None else None
                raw.append(int(found.group()) if found else default)
            if sum(raw) <= 0:
                raw = list(rule.defaults)
            metrics.update(zip(rule.fields, normalize_distribution(raw)))

        elif isinstance(rule, ListRule):
            captured = _search(rule.pattern, text)
            items = _split_list(captured) if captured is not None else []
            metrics[rule.field] = items or list(rule.default)

    return metrics


ADVENTURE_RULES: list[Rule] = [
    ValueRule(
        "difficulty_level",
        _word(r"difficulty(?:[ _-]?level)?"),
        "Moderate",
        kind="level",
        choices=("Easy", "Moderate", "Challenging", "Extreme"),
    ),
    ValueRule("outdoor_hours", _phrase(r"outdoor[ _-]?hours"), "2-4 hours", kind="range"),
    ValueRule(
        "adrenaline_rating",
        _number(r"adrenaline(?:[ _-]?(?:rating|level))?"),
        6,
        minimum=1,
        maximum=10,
    ),
    ListRule(
        "adventure_activities",
        _list(r"adventure[ _-]?activities"),
        ("Hiking", "Scenic drives", "Outdoor exploration"),
    ),
]

CULTURE_RULES: list[Rule] = [
    DistributionRule(
        fields=("art", "history", "architecture"),
        patterns=(_number("art"), _number("history"), _number("architecture")),
        defaults=(30, 40, 30),
    ),
    ValueRule("museums_count", _number(r"museums?(?:[ _-]?count)?"), 5, minimum=0, maximum=500),
    ValueRule("historical_period", _phrase(r"historical[ _-]?period"), "Various eras", kind="text"),
    ListRule(
        "heritage_sites",
        _list(r"heritage[ _-]?sites"),
        ("Historic old town", "Local museums"),
    ),
]

FOOD_RULES: list[Rule] = [
    DistributionRule(
        fields=("street_food", "casual_dining", "fine_dining"),
        patterns=(
            _number(r"street[ _-]?food"),
            _number(r"casual[ _-]?dining"),
            _number(r"fine[ _-]?dining"),
        ),
        defaults=(30, 50, 20),
    ),
    ValueRule(
        "price_level",
        _word(r"price[ _-]?level"),
        "Moderate",
        kind="level",
        choices=("Budget", "Moderate", "Upscale"),
    ),
    ListRule(
        "local_specialties",
        _list(r"local[ _-]?specialties"),
        ("Regional cuisine", "Local markets"),
    ),
]

HIDDEN_GEMS_RULES: list[Rule] = [
    ValueRule(
        "authenticity_score",
        _number(r"authenticity(?:[ _-]?score)?"),
        8,
        minimum=1,
        maximum=10,
    ),
    ValueRule(
        "crowd_level",
        _word(r"crowd[ _-]?level"),
        "Low",
        kind="level",
        choices=("Low", "Medium", "High"),
    ),
    ListRule(
        "secret_spots",
        _list(r"secret[ _-]?spots"),
        ("Local neighborhoods", "Off-the-beaten-path viewpoints"),
    ),
]

EXTRACTION_TABLES: dict[str, list[Rule]] = {
    "adventure": ADVENTURE_RULES,
    "culture": CULTURE_RULES,
    "food": FOOD_RULES,
    "hidden-gems": HIDDEN_GEMS_RULES,
}


class MetricExtractor:
    """Looks up a source's extraction table and applies it."""

    def __init__(self, tables: dict[str, list[Rule]] | None = None) -> None:
        self._tables = tables if tables is not None else EXTRACTION_TABLES

    def rules_for(self, source_id: str) -> list[Rule]:
        return self._tables.get(source_id, [])

    def extract(self, source_id: str, text: str) -> dict[str, Any]:
        return extract_metrics(self.rules_for(source_id), text)

    def defaults(self, source_id: str) -> dict[str, Any]:
        """Metrics for a source whose response never arrived."""
        return extract_metrics(self.rules_for(source_id), "")
