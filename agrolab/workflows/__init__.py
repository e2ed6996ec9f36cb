# agrolab/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set


# ===============================================================
# Canonical workflow definitions
# ===============================================================

SAMPLE_STATES: Set[str] = {
    "PENDING",
    "IN_LAB",
    "TESTING",
    "TEST_COMPLETED",
    "REPORT_READY",
    "ISSUED",
}

# Forward only, except REPORT_READY -> TEST_COMPLETED when a finished
# sample is re-measured before its report is issued.
SAMPLE_TRANSITIONS: Dict[str, Set[str]] = {
    "PENDING": {"IN_LAB", "TESTING", "TEST_COMPLETED"},
    "IN_LAB": {"TESTING", "TEST_COMPLETED"},
    "TESTING": {"TEST_COMPLETED"},
    "TEST_COMPLETED": {"REPORT_READY"},
    "REPORT_READY": {"TEST_COMPLETED", "ISSUED"},
    "ISSUED": set(),
}

ORDER_STATES: Set[str] = {
    "PENDING",
    "IN_PROGRESS",
    "TESTING_COMPLETED",
    "REPORT_GENERATED",
    "COMPLETED",
    "CANCELLED",
}

ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    "PENDING": {"IN_PROGRESS", "REPORT_GENERATED", "CANCELLED"},
    "IN_PROGRESS": {"TESTING_COMPLETED", "REPORT_GENERATED", "CANCELLED"},
    "TESTING_COMPLETED": {"REPORT_GENERATED", "CANCELLED"},
    "REPORT_GENERATED": {"COMPLETED"},
    "COMPLETED": {"REPORT_GENERATED"},
    "CANCELLED": set(),
}

REPORT_STATES: Set[str] = {
    "DRAFT",
    "PENDING_REVIEW",
    "APPROVED",
    "ISSUED",
    "REJECTED",
}

REPORT_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"PENDING_REVIEW", "APPROVED", "REJECTED"},
    "PENDING_REVIEW": {"APPROVED", "REJECTED"},
    "APPROVED": {"ISSUED"},
    "ISSUED": set(),
    "REJECTED": {"DRAFT"},
}

# Targets a user may request through the API. Everything else is set by
# the result recorder and the completion orchestrator; in particular a
# sample reaches TEST_COMPLETED only once every ordered result is recorded.
MANUAL_TARGETS: Dict[str, Set[str]] = {
    "SAMPLE": {"IN_LAB", "TESTING"},
    "ORDER": {"IN_PROGRESS", "CANCELLED"},
    "REPORT": {"DRAFT", "PENDING_REVIEW", "APPROVED", "REJECTED", "ISSUED"},
}


def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


def _transitions_for_kind(kind: str) -> Dict[str, Set[str]]:
    k = normalize_state(kind)
    if k == "SAMPLE":
        return SAMPLE_TRANSITIONS
    if k == "ORDER":
        return ORDER_TRANSITIONS
    if k == "REPORT":
        return REPORT_TRANSITIONS
    return {}


def _states_for_kind(kind: str) -> Set[str]:
    k = normalize_state(kind)
    if k == "SAMPLE":
        return SAMPLE_STATES
    if k == "ORDER":
        return ORDER_STATES
    if k == "REPORT":
        return REPORT_STATES
    return set()


# ===============================================================
# Public workflow API
# ===============================================================

def validate_transition(
    kind: str,
    current: Optional[str] = None,
    target: Optional[str] = None,
    old: Optional[str] = None,
    new: Optional[str] = None,
) -> None:
    """
    Raises ValueError if the transition is invalid for the canonical workflow.

    Supports both parameter styles:
      validate_transition(kind, current, target)
      validate_transition(kind=..., old=..., new=...)
    """
    k = normalize_state(kind)

    cur = normalize_state((current if current is not None else old) or "")
    tgt = normalize_state((target if target is not None else new) or "")

    states = _states_for_kind(k)
    trans = _transitions_for_kind(k)

    if not states or not trans:
        raise ValueError(f"Unknown workflow kind: {kind}")

    label = k.lower()
    if cur not in states:
        raise ValueError(f"Unknown {label} state: {cur}")
    if tgt not in states:
        raise ValueError(f"Unknown {label} state: {tgt}")

    if tgt not in trans.get(cur, set()):
        raise ValueError(f"Invalid {label} transition: {cur} -> {tgt}")


def is_manual_target(kind: str, target: str) -> bool:
    return normalize_state(target) in MANUAL_TARGETS.get(normalize_state(kind), set())


def allowed_next_states(kind: str, current: str) -> List[str]:
    """
    Canonical next states, including system-only targets.
    """
    trans = _transitions_for_kind(kind)
    if not trans:
        return []
    return sorted(trans.get(normalize_state(current), set()))


def allowed_manual_states(kind: str, current: str) -> List[str]:
    return [s for s in allowed_next_states(kind, current) if is_manual_target(kind, s)]


def allowed_transitions(kind: str) -> Dict[str, List[str]]:
    trans = _transitions_for_kind(kind)
    return {state: sorted(nxt) for state, nxt in trans.items()}


def workflow_definition(kind: Optional[str] = None) -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    def _one(k: str) -> Dict[str, Any]:
        kk = normalize_state(k)
        if kk not in {"SAMPLE", "ORDER", "REPORT"}:
            raise ValueError(f"Unsupported workflow kind: {k}")
        return {
            "kind": kk.lower(),
            "states": sorted(_states_for_kind(kk)),
            "transitions": allowed_transitions(kk),
            "manual_targets": sorted(MANUAL_TARGETS[kk]),
        }

    if kind is None:
        return {k: _one(k) for k in ("sample", "order", "report")}
    return _one(kind)


__all__ = [
    "SAMPLE_STATES",
    "SAMPLE_TRANSITIONS",
    "ORDER_STATES",
    "ORDER_TRANSITIONS",
    "REPORT_STATES",
    "REPORT_TRANSITIONS",
    "MANUAL_TARGETS",
    "normalize_state",
    "validate_transition",
    "is_manual_target",
    "allowed_next_states",
    "allowed_manual_states",
    "allowed_transitions",
    "workflow_definition",
]
