"""Lead source → intent tier mapping.

Intent tiers classify buyer readiness:
    1 = Curious / education
    2 = Problem aware
    3 = Comparing / shopping
    4 = Serious, near decision
    5 = Buying now
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FunnelStage(str, Enum):
    COLD = "cold"
    MID = "mid"
    HIGH = "high"


class InteractionType(str, Enum):
    DOWNLOAD = "download"
    FORM = "form"
    UPLOAD = "upload"
    BOOKING = "booking"
    VOICE = "voice"


@dataclass(frozen=True)
class ToolIntent:
    """Intent classification of one lead source."""

    lead_source: str
    tool_name: str
    intent_tier: int
    funnel_stage: FunnelStage
    interaction_type: InteractionType


def _tool(
    lead_source: str,
    tool_name: str,
    tier: int,
    stage: FunnelStage,
    interaction: InteractionType,
) -> tuple[str, ToolIntent]:
    return lead_source, ToolIntent(lead_source, tool_name, tier, stage, interaction)


INTENT_TIER_MAP: dict[str, ToolIntent] = dict(
    [
        _tool("ebook_download", "Ebook / Guide", 1, FunnelStage.COLD, InteractionType.DOWNLOAD),
        _tool("risk_check", "Risk Check", 2, FunnelStage.COLD, InteractionType.FORM),
        _tool("reality_check", "Reality Check", 2, FunnelStage.COLD, InteractionType.FORM),
        _tool("fair_price_calc", "Fair Price Calculator", 3, FunnelStage.MID, InteractionType.FORM),
        _tool("fair_price_quiz", "Fair Price Quiz", 3, FunnelStage.MID, InteractionType.FORM),
        _tool("true_cost_calculator", "True Cost Calculator", 3, FunnelStage.MID, InteractionType.FORM),
        _tool("floating_cta", "Floating CTA", 3, FunnelStage.MID, InteractionType.FORM),
        _tool("quote_checker", "Quote Checker", 4, FunnelStage.HIGH, InteractionType.FORM),
        _tool("estimate_form", "Estimate Form", 4, FunnelStage.HIGH, InteractionType.FORM),
        _tool("quote_builder", "Quote Builder", 4, FunnelStage.HIGH, InteractionType.FORM),
        _tool("beat_your_quote", "Beat Your Quote", 4, FunnelStage.HIGH, InteractionType.UPLOAD),
        _tool("ai_quote_scanner", "AI Quote Scanner", 5, FunnelStage.HIGH, InteractionType.UPLOAD),
        _tool("booking_form", "Consultation Booking", 5, FunnelStage.HIGH, InteractionType.BOOKING),
        _tool("voice_agent", "Voice Agent", 5, FunnelStage.HIGH, InteractionType.VOICE),
    ]
)


def get_tool_intent(lead_source: str) -> ToolIntent | None:
    return INTENT_TIER_MAP.get(lead_source)


def get_intent_tier(lead_source: str, default: int = 1) -> int:
    """Intent tier of a lead source; unknown sources get ``default``."""
    mapping = INTENT_TIER_MAP.get(lead_source)
    return mapping.intent_tier if mapping else default
