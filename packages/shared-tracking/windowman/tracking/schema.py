"""
Tracking schema - event vocabulary and wire-shape building blocks.

Every record pushed to an event sink belongs to exactly one category:
- opt: monetized conversion, the only records allowed to carry value/currency
- rt: retargeting/audience signal, forwarded to ad platforms without value
- internal: local diagnostics, never forwarded

The five OPT kinds form a closed enum. Each member carries its hardcoded
value and its ad-platform event name, so no caller can supply a value and
no sixth monetized event can exist without editing this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from windowman.tracking.config import CURRENCY


class EventCategory(str, Enum):
    """Routing category stamped into ``meta.category``."""

    OPT = "opt"  # Monetized conversion
    RT = "rt"  # Retargeting / audience
    INTERNAL = "internal"  # Local only


class OptEvent(str, Enum):
    """The five monetized conversion kinds."""

    LEAD = "wm_lead"
    QUALIFIED_LEAD = "wm_qualified_lead"
    SCANNER_UPLOAD = "wm_scanner_upload"
    APPOINTMENT_BOOKED = "wm_appointment_booked"
    SOLD = "wm_sold"

    @property
    def base_value(self) -> int:
        """Hardcoded USD value for this conversion kind."""
        return OPT_VALUES[self]

    @property
    def meta_event_name(self) -> str:
        """Event name used by the Meta Conversions API."""
        return META_EVENT_NAMES[self]


OPT_VALUES: dict[OptEvent, int] = {
    OptEvent.LEAD: 10,
    OptEvent.QUALIFIED_LEAD: 100,
    OptEvent.SCANNER_UPLOAD: 500,
    OptEvent.APPOINTMENT_BOOKED: 1000,
    OptEvent.SOLD: 5000,
}

META_EVENT_NAMES: dict[OptEvent, str] = {
    OptEvent.LEAD: "Lead",
    OptEvent.QUALIFIED_LEAD: "QualifiedLead",
    OptEvent.SCANNER_UPLOAD: "ScannerUpload",
    OptEvent.APPOINTMENT_BOOKED: "Schedule",
    OptEvent.SOLD: "Purchase",
}


class WindowScope(str, Enum):
    """Job size bucket, smallest to largest."""

    ONE_TO_FIVE = "1_5"
    SIX_TO_FIFTEEN = "6_15"
    SIXTEEN_PLUS = "16_plus"
    WHOLE_HOUSE = "whole_house"


class Timeline(str, Enum):
    """Urgency bucket, most to least urgent."""

    THIRTY_DAYS = "30days"
    NINETY_DAYS = "90days"
    SIX_MONTHS = "6months"
    RESEARCH = "research"


# Keys a caller context may never set on a record.
RESERVED_KEYS = frozenset({"event", "event_id", "meta", "value", "currency"})


@dataclass
class UserIdentity:
    """
    Identity of the subject being attributed.

    ``lead_id`` is required for every conversion event and doubles as the
    primary dedup key. All PII fields are optional and are hashed before
    they leave the pipeline. ``fbp``/``fbc`` are ad-platform browser and
    click cookies, forwarded as-is.

    Example:
        identity = UserIdentity(
            lead_id="L1",
            email="jane@example.com",
            phone="(555) 123-4567",
        )
    """

    lead_id: str
    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None

    # Cross-session identifiers
    fbp: str | None = None
    fbc: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserIdentity:
        """Create a UserIdentity from a form payload.

        Accepts both snake_case and the camelCase keys used by the web
        client (``leadId``, ``firstName``, ``zipCode``...).

        Raises:
            ValueError: If no lead id is present.
        """
        lead_id = data.get("lead_id") or data.get("leadId")
        if not lead_id:
            raise ValueError("Missing required field: lead_id")

        def pick(snake: str, camel: str) -> str | None:
            return data.get(snake) or data.get(camel)

        return cls(
            lead_id=str(lead_id),
            email=data.get("email"),
            phone=data.get("phone"),
            first_name=pick("first_name", "firstName"),
            last_name=pick("last_name", "lastName"),
            city=data.get("city"),
            state=data.get("state"),
            zip_code=pick("zip_code", "zipCode"),
            fbp=data.get("fbp"),
            fbc=data.get("fbc"),
        )


@dataclass(frozen=True)
class QualificationFacts:
    """Caller-supplied qualification signals for a lead."""

    window_scope: WindowScope | str | None = None
    timeline: Timeline | str | None = None


@dataclass(frozen=True)
class EventMeta:
    """
    The ``meta`` block carried by every record.

    Use the ``opt``, ``rt`` and ``internal`` constructors. Only ``opt``
    accepts a value; construction fails if value/currency and category
    disagree.
    """

    send: bool
    category: EventCategory
    tracking_version: str
    value: float | None = None
    currency: str | None = None
    meta_event_name: str | None = None

    def __post_init__(self) -> None:
        is_opt = self.category == EventCategory.OPT
        has_value = self.value is not None
        has_currency = self.currency is not None
        if is_opt != has_value or is_opt != has_currency:
            raise ValueError(
                f"value/currency must be set if and only if category is opt "
                f"(category={self.category.value}, value={self.value}, currency={self.currency})"
            )
        if self.category == EventCategory.INTERNAL and self.send:
            raise ValueError("internal events cannot be sent to ad platforms")

    @classmethod
    def opt(cls, event: OptEvent, value: float, tracking_version: str) -> EventMeta:
        return cls(
            send=True,
            category=EventCategory.OPT,
            tracking_version=tracking_version,
            value=value,
            currency=CURRENCY,
            meta_event_name=event.meta_event_name,
        )

    @classmethod
    def rt(cls, tracking_version: str) -> EventMeta:
        return cls(send=True, category=EventCategory.RT, tracking_version=tracking_version)

    @classmethod
    def internal(cls, tracking_version: str) -> EventMeta:
        return cls(send=False, category=EventCategory.INTERNAL, tracking_version=tracking_version)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape, omitting unset optional keys."""
        data: dict[str, Any] = {
            "send": self.send,
            "category": self.category.value,
        }
        if self.category == EventCategory.OPT:
            data["meta_event_name"] = self.meta_event_name
            data["value"] = self.value
            data["currency"] = self.currency
        data["wm_tracking_version"] = self.tracking_version
        return data
