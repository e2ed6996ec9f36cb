# agrolab/interpretation/rules.py
from __future__ import annotations

"""
Measurement interpretation rules.

This module is PURE LOGIC.
- No Django imports
- No I/O
- Works on ComparisonRule rows or on plain Rule objects alike: anything
  exposing kind / min_value / max_value / interpretation / soil_category /
  priority

Evaluation order is explicit: rules are sorted by (priority, position)
before matching, and the first matching rule wins.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


# ===============================================================
# Vocabulary (values mirror the model TextChoices)
# ===============================================================

BETWEEN = "BETWEEN"
GREATER_THAN = "GREATER_THAN"
LESS_THAN = "LESS_THAN"

SOIL = "SOIL"
WATER = "WATER"
FERTILIZER = "FERTILIZER"

UPLAND = "UPLAND"
WETLAND = "WETLAND"
BOTH = "BOTH"

# Fertilizer samples are graded adulterated / unadulterated. When no rule
# is satisfied the first rule's verdict is flipped.
CANONICAL_OPPOSITES: Dict[str, str] = {
    "unadulterated": "adulterated",
    "adulterated": "unadulterated",
    "ভেজালমুক্ত": "ভেজাল",
    "ভেজাল": "ভেজালমুক্ত",
}


@dataclass(frozen=True)
class Rule:
    kind: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    interpretation: Optional[str] = None
    soil_category: Optional[str] = None
    priority: int = 0


def _norm(value: Any) -> str:
    return str(value or "").strip().upper()


def _category(rule: Any) -> Optional[str]:
    return _norm(getattr(rule, "soil_category", None)) or None


# ===============================================================
# Rule primitives
# ===============================================================

def ordered_rules(rules: Optional[Iterable[Any]]) -> List[Any]:
    """
    Sort by priority; ties keep their incoming position.
    """
    indexed = list(enumerate(rules or []))
    indexed.sort(key=lambda pair: (getattr(pair[1], "priority", 0) or 0, pair[0]))
    return [rule for _, rule in indexed]


def rule_matches(rule: Any, value: Optional[float]) -> bool:
    """
    Membership test for a single rule.

    A malformed rule (missing bound, unknown kind) never matches.
    BETWEEN is inclusive on both ends, GREATER_THAN / LESS_THAN are strict.
    """
    if value is None or not math.isfinite(value):
        return False

    kind = _norm(getattr(rule, "kind", None))
    low = getattr(rule, "min_value", None)
    high = getattr(rule, "max_value", None)

    if kind == BETWEEN:
        return low is not None and high is not None and low <= value <= high
    if kind == GREATER_THAN:
        return low is not None and value > low
    if kind == LESS_THAN:
        return high is not None and value < high
    return False


def applicable_rules(
    rules: Optional[Iterable[Any]],
    sample_kind: str,
    category: Optional[str] = None,
) -> List[Any]:
    """
    Rules that may take part in matching, in evaluation order.

    SOIL: uncategorised rules always apply; categorised rules apply when they
    equal the queried category, or when the query is BOTH.
    WATER / FERTILIZER: only uncategorised rules apply.
    """
    kind = _norm(sample_kind)
    wanted = _norm(category) or None

    out: List[Any] = []
    for rule in ordered_rules(rules):
        rule_cat = _category(rule)
        if kind == SOIL:
            if rule_cat is None or wanted == BOTH or rule_cat == wanted:
                out.append(rule)
        elif rule_cat is None:
            out.append(rule)
    return out


def opposite_interpretation(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return CANONICAL_OPPOSITES.get(text, text)


def _first_match(rules: List[Any], value: float) -> Optional[str]:
    for rule in rules:
        text = getattr(rule, "interpretation", None)
        if text and rule_matches(rule, value):
            return text
    return None


# ===============================================================
# Public API
# ===============================================================

def interpret(
    value: Optional[float],
    rules: Optional[Iterable[Any]],
    sample_kind: str,
    category: Optional[str] = None,
) -> Optional[str]:
    """
    Return the interpretation for a measured value, or None.

    WATER / SOIL: interpretation of the first applicable rule that matches.
    FERTILIZER: same, but when nothing matches the first applicable rule's
    interpretation is returned flipped (see CANONICAL_OPPOSITES); a
    non-canonical text is returned unchanged.
    """
    if value is None:
        return None

    candidates = applicable_rules(rules, sample_kind, category)
    if not candidates:
        return None

    hit = _first_match(candidates, value)
    if hit is not None or _norm(sample_kind) != FERTILIZER:
        return hit

    return opposite_interpretation(getattr(candidates[0], "interpretation", None))


def soil_interpretations(value: Optional[float], rules: Optional[Iterable[Any]]) -> Dict[str, Optional[str]]:
    """
    Upland / wetland interpretations for a soil measurement.

    Rules tagged BOTH form their own bucket and a BOTH verdict overrides
    the per-category ones. Uncategorised rules join the UPLAND and WETLAND
    buckets in priority order, next to the rules scoped to that category.
    """
    buckets: Dict[str, List[Any]] = {BOTH: [], UPLAND: [], WETLAND: []}
    for rule in ordered_rules(rules):
        cat = _category(rule)
        if cat is None:
            buckets[UPLAND].append(rule)
            buckets[WETLAND].append(rule)
        elif cat in buckets:
            buckets[cat].append(rule)

    both = interpret(value, buckets[BOTH], SOIL, BOTH) if buckets[BOTH] else None
    if both is not None:
        return {UPLAND: both, WETLAND: both}

    return {
        UPLAND: interpret(value, buckets[UPLAND], SOIL, UPLAND) if buckets[UPLAND] else None,
        WETLAND: interpret(value, buckets[WETLAND], SOIL, WETLAND) if buckets[WETLAND] else None,
    }


def interpret_measurement(
    value: float,
    rules: Optional[Iterable[Any]],
    sample_kind: str,
) -> Dict[str, Optional[str]]:
    """
    Field values for a TestResult row.

    SOIL fills upland/wetland and leaves the generic interpretation empty;
    WATER / FERTILIZER fill the generic interpretation only.
    """
    if _norm(sample_kind) == SOIL:
        soil = soil_interpretations(value, rules)
        return {
            "interpretation": None,
            "upland_interpretation": soil[UPLAND],
            "wetland_interpretation": soil[WETLAND],
        }

    return {
        "interpretation": interpret(value, rules, sample_kind),
        "upland_interpretation": None,
        "wetland_interpretation": None,
    }


__all__ = [
    "BETWEEN",
    "GREATER_THAN",
    "LESS_THAN",
    "SOIL",
    "WATER",
    "FERTILIZER",
    "UPLAND",
    "WETLAND",
    "BOTH",
    "CANONICAL_OPPOSITES",
    "Rule",
    "ordered_rules",
    "rule_matches",
    "applicable_rules",
    "opposite_interpretation",
    "interpret",
    "soil_interpretations",
    "interpret_measurement",
]
