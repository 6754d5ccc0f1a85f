"""
Lead scoring engine - intent tier + data completeness → 0-100 priority.

Formula:
    final_score = base_score * tool_multiplier + data_bonus + behavior_bonus
    clamped to [0, 100]

The score drives sales routing (who gets called first), CRM tagging and
value-based bidding. Everything here is pure.

Usage:
    from windowman.tracking.scoring import score_lead, get_routing_action

    result = score_lead(5, "ai_quote_scanner", ["email", "phone"])
    routing = get_routing_action(result.final_score)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd

from windowman.tracking.intent import get_intent_tier

# Base score by intent tier
BASE_SCORES: dict[int, int] = {
    1: 10,  # Curious
    2: 25,  # Problem aware
    3: 45,  # Comparing
    4: 70,  # Serious
    5: 90,  # Buying now
}

# Some tools produce better buyers within the same intent tier
TOOL_MULTIPLIERS: dict[str, float] = {
    "ebook_download": 0.8,
    "risk_check": 0.9,
    "reality_check": 0.9,
    "fair_price_calc": 1.0,
    "fair_price_quiz": 1.0,
    "true_cost_calculator": 1.0,
    "floating_cta": 1.0,
    "quote_checker": 1.1,
    "quote_builder": 1.1,
    "estimate_form": 1.1,
    "beat_your_quote": 1.2,
    "ai_quote_scanner": 1.3,
    "booking_form": 1.4,
    "voice_agent": 1.5,
}
DEFAULT_TOOL_MULTIPLIER = 1.0

# Data completeness bonus per field present
DATA_BONUSES: dict[str, int] = {
    "email": 5,
    "phone": 15,
    "address": 10,
    "project_details": 10,
}
MAX_DATA_BONUS = 40

MIN_SCORE = 0
MAX_SCORE = 100


class RoutingPriority(str, Enum):
    NURTURE = "nurture"
    DELAYED = "delayed"
    STANDARD = "standard"
    URGENT = "urgent"
    IMMEDIATE = "immediate"


@dataclass(frozen=True)
class RoutingAction:
    """What sales should do with a lead."""

    action: str
    priority: RoutingPriority
    timeframe: str


# (minimum score, routing action), highest band first
ROUTING_BANDS: tuple[tuple[float, RoutingAction], ...] = (
    (96, RoutingAction("Immediate call + priority queue", RoutingPriority.IMMEDIATE, "Now")),
    (81, RoutingAction("Call within 1 hour", RoutingPriority.URGENT, "1 hour")),
    (61, RoutingAction("Call within 24 hours", RoutingPriority.STANDARD, "24 hours")),
    (31, RoutingAction("SMS follow-up + delayed call", RoutingPriority.DELAYED, "3-5 days")),
)
NURTURE_ACTION = RoutingAction("Email nurture only", RoutingPriority.NURTURE, "Nurture sequence")


@dataclass
class LeadScoringInput:
    """Inputs to the scoring formula."""

    intent_tier: int
    lead_source: str
    has_email: bool = False
    has_phone: bool = False
    has_address: bool = False
    has_project_details: bool = False
    has_name: bool = False
    behavior_bonus: float = 0

    @classmethod
    def from_fields(
        cls,
        intent_tier: int,
        lead_source: str,
        fields_present: Iterable[str] = (),
        behavior_bonus: float = 0,
    ) -> LeadScoringInput:
        """Build an input from the names of the contact fields present.

        Recognized names: ``email``, ``phone``, ``address``,
        ``project_details`` and ``name``. Others are ignored.
        """
        present = {f.strip().lower() for f in fields_present}
        return cls(
            intent_tier=intent_tier,
            lead_source=lead_source,
            has_email="email" in present,
            has_phone="phone" in present,
            has_address="address" in present,
            has_project_details="project_details" in present,
            has_name="name" in present,
            behavior_bonus=behavior_bonus,
        )


@dataclass
class LeadScore:
    """Derived score with its components."""

    base_score: int
    tool_multiplier: float
    data_bonus: int
    behavior_bonus: float
    final_score: float
    breakdown: dict[str, Any] = field(default_factory=dict)


def get_base_score(intent_tier: int) -> int:
    """Base score for an intent tier.

    Raises:
        ValueError: If the tier is not between 1 and 5.
    """
    try:
        return BASE_SCORES[int(intent_tier)]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid intent tier: {intent_tier!r} (expected 1-5)") from e


def get_tool_multiplier(lead_source: str) -> float:
    """Multiplier for a lead source; unknown sources get 1.0."""
    return TOOL_MULTIPLIERS.get(lead_source, DEFAULT_TOOL_MULTIPLIER)


def calculate_data_bonus(scoring_input: LeadScoringInput) -> int:
    """Sum per-field bonuses, capped at MAX_DATA_BONUS."""
    bonus = 0
    if scoring_input.has_email:
        bonus += DATA_BONUSES["email"]
    if scoring_input.has_phone:
        bonus += DATA_BONUSES["phone"]
    if scoring_input.has_address:
        bonus += DATA_BONUSES["address"]
    if scoring_input.has_project_details:
        bonus += DATA_BONUSES["project_details"]
    return min(bonus, MAX_DATA_BONUS)


def calculate_lead_score(scoring_input: LeadScoringInput) -> LeadScore:
    """Score a lead.

    Args:
        scoring_input: Intent tier, lead source and data completeness.

    Returns:
        LeadScore with final_score clamped to [0, 100]. The score is not
        rounded, so routing bands see the exact value.

    Raises:
        ValueError: If the intent tier is invalid.
    """
    base_score = get_base_score(scoring_input.intent_tier)
    tool_multiplier = get_tool_multiplier(scoring_input.lead_source)
    data_bonus = calculate_data_bonus(scoring_input)
    behavior_bonus = scoring_input.behavior_bonus or 0

    raw_score = base_score * tool_multiplier + data_bonus + behavior_bonus
    final_score = max(MIN_SCORE, min(MAX_SCORE, raw_score))

    return LeadScore(
        base_score=base_score,
        tool_multiplier=tool_multiplier,
        data_bonus=data_bonus,
        behavior_bonus=behavior_bonus,
        final_score=final_score,
        breakdown={
            "intent_tier": scoring_input.intent_tier,
            "lead_source": scoring_input.lead_source,
            "base_score": base_score,
            "tool_multiplier": tool_multiplier,
            "data_bonus": data_bonus,
            "behavior_bonus": behavior_bonus,
            "raw_score": raw_score,
        },
    )


def score_lead(
    intent_tier: int,
    lead_source: str,
    fields_present: Iterable[str] = (),
    behavior_bonus: float = 0,
) -> LeadScore:
    """Convenience wrapper around :func:`calculate_lead_score`."""
    return calculate_lead_score(
        LeadScoringInput.from_fields(intent_tier, lead_source, fields_present, behavior_bonus)
    )


def get_routing_action(score: float) -> RoutingAction:
    """Map a score to one of five routing bands.

    0-30 nurture, 31-60 delayed, 61-80 standard, 81-95 urgent,
    96-100 immediate.
    """
    for minimum, action in ROUTING_BANDS:
        if score >= minimum:
            return action
    return NURTURE_ACTION


def get_crm_tags(scoring_input: LeadScoringInput, final_score: float) -> list[str]:
    """CRM tags derived from intent, source, score and data completeness."""
    tags: list[str] = []

    # Intent
    if scoring_input.intent_tier == 5:
        tags.append("HOT")
    if scoring_input.intent_tier >= 4:
        tags.append("WARM")
    if scoring_input.intent_tier <= 2:
        tags.append("COLD")

    # Interaction
    if scoring_input.lead_source == "voice_agent":
        tags.append("VOICE_PRIORITY")
    if scoring_input.lead_source == "ai_quote_scanner":
        tags.append("SCANNER_LEAD")
    if scoring_input.lead_source == "booking_form":
        tags.append("BOOKING_CONFIRMED")

    # Score
    if final_score >= 90:
        tags.append("SALES_NOW")
    if final_score >= 75:
        tags.append("SALES_READY")
    if final_score >= 60:
        tags.append("SALES_QUALIFIED")

    # Data completeness
    if scoring_input.has_phone and scoring_input.has_email and scoring_input.has_address:
        tags.append("COMPLETE_DATA")
    if scoring_input.has_project_details:
        tags.append("PROJECT_DETAILS")

    return tags


def _flag(row: dict[str, Any], key: str) -> bool:
    value = row.get(key)
    if value is None:
        return False
    if not isinstance(value, (list, dict)) and pd.isna(value):
        return False
    return bool(value)


def score_leads(data: pd.DataFrame | list[dict[str, Any]]) -> pd.DataFrame:
    """Score a batch of leads.

    Each row needs ``lead_source`` and may carry ``intent_tier`` (derived
    from the lead source when missing), the ``has_*`` flags and
    ``behavior_bonus``.

    Args:
        data: Leads as a DataFrame or list of dicts.

    Returns:
        Copy of the input with ``base_score``, ``tool_multiplier``,
        ``data_bonus``, ``final_score``, ``routing_priority`` and
        ``crm_tags`` columns added.
    """
    df = data.copy() if isinstance(data, pd.DataFrame) else pd.DataFrame(data)
    results = []

    for _, row in df.iterrows():
        row_dict = row.to_dict()
        lead_source = str(row_dict.get("lead_source") or "")

        tier = row_dict.get("intent_tier")
        if tier is None or pd.isna(tier):
            tier = get_intent_tier(lead_source)

        bonus = row_dict.get("behavior_bonus")
        if bonus is None or pd.isna(bonus):
            bonus = 0

        scoring_input = LeadScoringInput(
            intent_tier=int(tier),
            lead_source=lead_source,
            has_email=_flag(row_dict, "has_email"),
            has_phone=_flag(row_dict, "has_phone"),
            has_address=_flag(row_dict, "has_address"),
            has_project_details=_flag(row_dict, "has_project_details"),
            has_name=_flag(row_dict, "has_name"),
            behavior_bonus=float(bonus),
        )
        score = calculate_lead_score(scoring_input)
        results.append(
            {
                "base_score": score.base_score,
                "tool_multiplier": score.tool_multiplier,
                "data_bonus": score.data_bonus,
                "final_score": score.final_score,
                "routing_priority": get_routing_action(score.final_score).priority.value,
                "crm_tags": get_crm_tags(scoring_input, score.final_score),
            }
        )

    scored = pd.DataFrame(
        results,
        index=df.index,
        columns=["base_score", "tool_multiplier", "data_bonus", "final_score", "routing_priority", "crm_tags"],
    )
    return pd.concat([df, scored], axis=1)
