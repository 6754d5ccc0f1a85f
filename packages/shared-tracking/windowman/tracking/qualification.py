"""Qualified-lead threshold.

A lead qualifies only when the job is larger than five windows AND the
homeowner intends to buy within 90 days. The check is pure; dedup and
upload suppression happen inside ``Tracker.wm_qualified_lead``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from windowman.tracking.schema import QualificationFacts, Timeline, WindowScope

QUALIFYING_SCOPES = frozenset(
    {
        WindowScope.SIX_TO_FIFTEEN.value,
        WindowScope.SIXTEEN_PLUS.value,
        WindowScope.WHOLE_HOUSE.value,
    }
)

URGENT_TIMELINES = frozenset({Timeline.THIRTY_DAYS.value, Timeline.NINETY_DAYS.value})


def _bucket(value: WindowScope | Timeline | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, (WindowScope, Timeline)):
        return value.value
    return str(value)


def qualifies(
    window_scope: WindowScope | str | None,
    timeline: Timeline | str | None,
) -> bool:
    """True iff scope is one of the three largest buckets and timeline is
    one of the two most urgent."""
    return _bucket(window_scope) in QUALIFYING_SCOPES and _bucket(timeline) in URGENT_TIMELINES


def qualifies_for_qualified_lead(facts: QualificationFacts | Mapping[str, Any]) -> bool:
    """Evaluate the threshold from a facts object or a form payload.

    Mappings may use ``window_scope``/``windowScope`` and ``timeline``.

    Examples:
        >>> qualifies_for_qualified_lead({"windowScope": "1_5", "timeline": "30days"})
        False
        >>> qualifies_for_qualified_lead({"windowScope": "6_15", "timeline": "30days"})
        True
    """
    if isinstance(facts, QualificationFacts):
        return qualifies(facts.window_scope, facts.timeline)
    scope = facts.get("window_scope") or facts.get("windowScope")
    return qualifies(scope, facts.get("timeline"))
