"""Legacy bridge - re-emit conversions under their pre-migration names.

Consumers that still listen for the old event names keep working while
they migrate. Bridge records are RT (audience only), never carry value,
and are tagged ``legacy_bridge: True`` so they can be found and removed
once every consumer has moved to the ``wm_*`` names.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from windowman.tracking.config import TrackingConfig
from windowman.tracking.envelope import build_rt_envelope
from windowman.tracking.schema import OptEvent

LEGACY_BRIDGE: dict[OptEvent, str] = {
    OptEvent.LEAD: "lead_submission_success",
    OptEvent.SCANNER_UPLOAD: "quote_upload_success",
    OptEvent.APPOINTMENT_BOOKED: "booking_confirmed",
    OptEvent.QUALIFIED_LEAD: "phone_lead_captured",
}

# Context fields carried over to the bridge record
BRIDGED_CONTEXT_KEYS = ("source_tool", "page_path")


def legacy_name(event: OptEvent) -> str | None:
    """Pre-migration name of a conversion kind, or None if it has none."""
    return LEGACY_BRIDGE.get(event)


def build_bridge_envelope(
    event: OptEvent,
    config: TrackingConfig,
    context: Mapping[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Build the compatibility record for a conversion.

    Returns:
        The RT record, or None when the kind is not bridged.
    """
    name = legacy_name(event)
    if name is None:
        return None

    bridged: dict[str, Any] = {"legacy_bridge": True}
    for key in BRIDGED_CONTEXT_KEYS:
        if context and context.get(key):
            bridged[key] = context[key]

    return build_rt_envelope(name, config, context=bridged)
