"""
Event Match Quality (EMQ) validator.

Audits a pushed record against what ad platforms need to match it to a
person and what the OPT/RT/INTERNAL contract requires:

1. event_id present
2. email digest present and well formed (``em`` or ``sha256_email_address``)
3. phone digest well formed when present
4. ``user_data.external_id`` present and equal to ``lead_id``
5. value/currency: OPT records carry the expected value in USD; every
   other category carries neither

Meant for debug tooling and tests; the pipeline itself never calls it on
the hot path.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from windowman.tracking.config import CURRENCY
from windowman.tracking.identity import SHA256_PATTERN
from windowman.tracking.schema import EventCategory, OptEvent


class EMQLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class EMQCheck:
    """Result of one check."""

    passed: bool
    value: str | None = None
    reason: str | None = None


@dataclass
class EMQValidationResult:
    """Result of validating one record."""

    event_id: EMQCheck
    email_hash: EMQCheck
    phone_hash: EMQCheck
    external_id: EMQCheck
    value_and_currency: EMQCheck
    matches_lead_id: bool
    expected_value: float | None
    actual_value: float | None
    overall_score: EMQLevel

    @property
    def checks(self) -> list[EMQCheck]:
        return [
            self.event_id,
            self.email_hash,
            self.phone_hash,
            self.external_id,
            self.value_and_currency,
        ]

    @property
    def passed_count(self) -> int:
        return sum(1 for check in self.checks if check.passed)

    @property
    def total_checks(self) -> int:
        return len(self.checks)


def _is_digest(value: Any) -> bool:
    return isinstance(value, str) and bool(SHA256_PATTERN.match(value))


def _preview(value: str) -> str:
    if len(value) <= 16:
        return value
    return f"{value[:8]}...{value[-8:]}"


def expected_value(record: dict[str, Any]) -> float | None:
    """Value an OPT record must carry, or None for non-OPT records.

    Sale records carry the base value plus the non-negative sale amount.
    """
    try:
        event = OptEvent(record.get("event"))
    except ValueError:
        return None
    if event == OptEvent.SOLD:
        sale_amount = record.get("sale_amount") or 0
        return event.base_value + max(0, sale_amount)
    return event.base_value


def _check_value_and_currency(record: dict[str, Any], expected: float | None) -> EMQCheck:
    meta = record.get("meta") or {}
    category = meta.get("category")
    value = record.get("value")
    currency = record.get("currency")
    meta_value = meta.get("value")
    meta_currency = meta.get("currency")

    if category == EventCategory.OPT.value:
        if value is None or currency is None:
            return EMQCheck(False, reason="OPT event missing value/currency")
        if currency != CURRENCY or meta_currency != CURRENCY:
            return EMQCheck(False, value=str(currency), reason=f"Currency must be {CURRENCY}")
        if meta_value != value:
            return EMQCheck(False, value=str(value), reason="meta.value does not match value")
        if expected is not None and value != expected:
            return EMQCheck(False, value=str(value), reason=f"Expected value {expected}, got {value}")
        return EMQCheck(True, value=f"{value} {currency}")

    if category is None:
        return EMQCheck(False, reason="Missing meta.category")

    leaked = [
        key
        for key, present in (
            ("value", value is not None),
            ("currency", currency is not None),
            ("meta.value", meta_value is not None),
            ("meta.currency", meta_currency is not None),
        )
        if present
    ]
    if leaked:
        return EMQCheck(False, reason=f"{category} event must not carry {', '.join(leaked)}")
    return EMQCheck(True, reason=f"No value on {category} event")


def validate_emq_event(record: dict[str, Any], phone_required: bool = False) -> EMQValidationResult:
    """Validate one record.

    Args:
        record: A record as pushed to the sink.
        phone_required: Treat a missing phone digest as a failure.

    Returns:
        Per-check results and an overall HIGH/MEDIUM/LOW rating.
    """
    user_data = record.get("user_data") or {}

    # 1. Event ID
    event_id = record.get("event_id")
    event_id_check = EMQCheck(
        passed=bool(event_id),
        value=_preview(event_id) if event_id else None,
        reason=None if event_id else "Missing event_id",
    )

    # 2. Email digest
    email_hash = user_data.get("em") or user_data.get("sha256_email_address")
    if not email_hash:
        email_check = EMQCheck(False, reason="Missing email hash (em/sha256_email_address)")
    elif not _is_digest(email_hash):
        email_check = EMQCheck(False, value=_preview(email_hash), reason="Invalid SHA-256 format")
    else:
        email_check = EMQCheck(True, value=_preview(email_hash))

    # 3. Phone digest
    phone_hash = user_data.get("ph") or user_data.get("sha256_phone_number")
    if not phone_hash:
        phone_check = EMQCheck(
            passed=not phone_required,
            reason="Missing phone hash" if phone_required else "No phone provided (optional)",
        )
    elif not _is_digest(phone_hash):
        phone_check = EMQCheck(False, value=_preview(phone_hash), reason="Invalid SHA-256 format")
    else:
        phone_check = EMQCheck(True, value=_preview(phone_hash))

    # 4. External ID
    external_id = user_data.get("external_id")
    lead_id = record.get("lead_id")
    matches_lead_id = bool(external_id and lead_id and external_id == lead_id)
    if not external_id:
        external_check = EMQCheck(False, reason="Missing external_id")
    elif lead_id and not matches_lead_id:
        external_check = EMQCheck(False, value=external_id, reason="external_id does not match lead_id")
    else:
        external_check = EMQCheck(True, value=external_id)

    # 5. Value / currency contract
    expected = expected_value(record)
    value_check = _check_value_and_currency(record, expected)

    passed = sum(
        1
        for check in (event_id_check, email_check, phone_check, external_check, value_check)
        if check.passed
    )
    if passed == 5:
        overall = EMQLevel.HIGH
    elif passed >= 3:
        overall = EMQLevel.MEDIUM
    else:
        overall = EMQLevel.LOW

    return EMQValidationResult(
        event_id=event_id_check,
        email_hash=email_check,
        phone_hash=phone_check,
        external_id=external_check,
        value_and_currency=value_check,
        matches_lead_id=matches_lead_id,
        expected_value=expected,
        actual_value=record.get("value"),
        overall_score=overall,
    )
