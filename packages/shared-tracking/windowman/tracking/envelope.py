"""
Event envelope builder - the common wire shape of every record.

Record layout:
    {
        "event": <name>,
        "event_id": <id>,
        "meta": {send, category, [meta_event_name, value, currency], wm_tracking_version},
        "value"/"currency": OPT records only,
        "source_system", "external_id", "lead_id", "user_data": when known,
        **context
    }

Caller context is merged last but can never set ``event``, ``event_id``,
``meta``, ``value`` or ``currency``; those keys are dropped. Conversion
records also drop ``user_data``, ``lead_id`` and ``external_id`` so the
hashed bundle and the lead id cannot be replaced.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from windowman.tracking.config import CURRENCY, TrackingConfig
from windowman.tracking.identity import HashedIdentity
from windowman.tracking.schema import RESERVED_KEYS, EventMeta, OptEvent

logger = logging.getLogger(__name__)

# Identity fields set by the pipeline on conversion records
OPT_RESERVED_KEYS = RESERVED_KEYS | {"user_data", "lead_id", "external_id"}


def generate_event_id() -> str:
    """Random event id for non-deterministic (RT / internal) records."""
    return str(uuid.uuid4())


def sanitize_context(
    context: Mapping[str, Any] | None,
    reserved: frozenset[str] = RESERVED_KEYS,
) -> dict[str, Any]:
    """Copy a caller context without reserved keys."""
    if not context:
        return {}
    dropped = reserved.intersection(context)
    if dropped:
        logger.debug(f"Dropping reserved context keys: {sorted(dropped)}")
    return {k: v for k, v in context.items() if k not in reserved}


def build_opt_envelope(
    event: OptEvent,
    event_id: str,
    lead_id: str,
    value: float,
    config: TrackingConfig,
    user_data: HashedIdentity | None = None,
    context: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble a monetized conversion record.

    Args:
        event: Conversion kind.
        event_id: Deterministic id derived from the dedup key.
        lead_id: Caller's lead id, exposed as ``lead_id`` and ``external_id``.
        value: Final USD value computed by the emitter.
        config: Pipeline configuration.
        user_data: Hashed identity bundle; omitted when None.
        context: Extra fields merged into the record.

    Returns:
        The record to push.
    """
    meta = EventMeta.opt(event, value, config.tracking_version)

    record: dict[str, Any] = {
        "event": event.value,
        "event_id": event_id,
        "meta": meta.to_dict(),
        "value": value,
        "currency": CURRENCY,
        "source_system": config.source_system,
        "external_id": lead_id,
        "lead_id": lead_id,
    }
    if user_data is not None:
        record["user_data"] = user_data.to_dict()
    record.update(sanitize_context(context, OPT_RESERVED_KEYS))
    return record


def build_rt_envelope(
    event_name: str,
    config: TrackingConfig,
    context: Mapping[str, Any] | None = None,
    event_id: str | None = None,
) -> dict[str, Any]:
    """Assemble a retargeting record. Never carries value or currency."""
    record: dict[str, Any] = {
        "event": event_name,
        "event_id": event_id or generate_event_id(),
        "meta": EventMeta.rt(config.tracking_version).to_dict(),
        "source_system": config.source_system,
    }
    record.update(sanitize_context(context))
    return record


def build_internal_envelope(
    event_name: str,
    config: TrackingConfig,
    data: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble a local-only diagnostics record (``meta.send`` is False)."""
    record: dict[str, Any] = {
        "event": event_name,
        "event_id": generate_event_id(),
        "meta": EventMeta.internal(config.tracking_version).to_dict(),
    }
    record.update(sanitize_context(data))
    return record
