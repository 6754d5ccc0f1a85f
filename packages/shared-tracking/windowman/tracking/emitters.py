"""
Conversion emitters - the only code allowed to attach value/currency.

OPT events (hardcoded values, callers cannot override):
    wm_lead                 $10             event_id lead:{lead_id}
    wm_qualified_lead       $100            event_id ql:{lead_id}
    wm_scanner_upload       $500            event_id upload:{attempt_id}
    wm_appointment_booked   $1000           event_id appt:{lead_id}:{key}
    wm_sold                 $5000 + amount  event_id sold:{lead_id}:{key}

Each conversion is pushed at most once per event id; a repeat with the
same key is a no-op (and fires no legacy bridge record).

RT events are forwarded for audience building and never carry value.
INTERNAL events are stamped ``meta.send = False`` at the source.

Every record includes ``meta``; downstream conversion tags must require
an event name starting with ``wm_`` and ``meta.category == "opt"``.

Usage:
    from windowman.tracking import Tracker, UserIdentity

    tracker = Tracker()
    await tracker.wm_lead(UserIdentity(lead_id="L1", email="a@b.com"))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from windowman.tracking.bridge import build_bridge_envelope
from windowman.tracking.config import TrackingConfig
from windowman.tracking.envelope import (
    build_internal_envelope,
    build_opt_envelope,
    build_rt_envelope,
)
from windowman.tracking.guard import DedupGuard, GuardDecision
from windowman.tracking.identity import HashedIdentity, hash_identity_async
from windowman.tracking.schema import OptEvent, UserIdentity
from windowman.tracking.sink import DataLayerSink, EventSink, HttpSink
from windowman.tracking.storage import FileStore

logger = logging.getLogger(__name__)


def _now_ms() -> str:
    return str(time.time_ns() // 1_000_000)


def _coerce_identity(identity: UserIdentity | Mapping[str, Any]) -> UserIdentity:
    if isinstance(identity, UserIdentity):
        return identity
    return UserIdentity.from_dict(dict(identity))


class Tracker:
    """Conversion attribution event pipeline.

    Composes the identity normalizer, dedup guard, envelope builder,
    legacy bridge and an event sink. Conversion emitters are coroutines
    because identity hashing runs off the event loop; the primary record
    of an invocation is always pushed before its bridge record.

    Failures never reach the caller: hashing errors drop ``user_data``,
    guard storage errors read as "not fired", and sink errors turn the
    push into a logged no-op.

    Example:
        >>> tracker = Tracker()
        >>> fired = await tracker.wm_qualified_lead({"leadId": "L1"})
        >>> tracker.sink.find("wm_qualified_lead")[0]["event_id"]
        'ql:L1'
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        guard: DedupGuard | None = None,
        config: TrackingConfig | None = None,
        clock: Callable[[], str] = _now_ms,
    ):
        """Initialize the tracker.

        Args:
            sink: Destination for records. Defaults to a DataLayerSink.
            guard: Dedup guard. Defaults to one backed by an in-memory store.
            config: Pipeline configuration. Defaults to TrackingConfig().
            clock: Fallback suffix source for appointment/sale event ids
                when the caller gives no stable key.
        """
        self.sink = sink if sink is not None else DataLayerSink()
        self.guard = guard if guard is not None else DedupGuard()
        self.config = config or TrackingConfig()
        self._clock = clock

    @classmethod
    def from_config(cls, config: TrackingConfig | None = None) -> Tracker:
        """Build a tracker wired from configuration.

        Uses a FileStore when ``guard_path`` is set and an HttpSink when
        ``collector_url`` is set.
        """
        config = config or TrackingConfig.from_env()
        store = FileStore(config.guard_path) if config.guard_path else None
        sink: EventSink = HttpSink(config.collector_url) if config.collector_url else DataLayerSink()
        return cls(sink=sink, guard=DedupGuard(store), config=config)

    # -------------------------------------------------------------------------
    # Shared push path
    # -------------------------------------------------------------------------

    def _push(self, record: dict[str, Any]) -> bool:
        try:
            self.sink.push(record)
        except Exception:
            logger.exception(f"Failed to push {record.get('event')} to {type(self.sink).__name__}")
            return False
        return True

    async def _user_data(self, event: OptEvent, identity: UserIdentity) -> HashedIdentity | None:
        try:
            return await hash_identity_async(identity)
        except Exception as e:
            if self.config.debug:
                logger.warning(f"PII hashing failed for {event.value}: {e}")
            return None

    async def _emit_opt(
        self,
        event: OptEvent,
        event_id: str,
        identity: UserIdentity,
        value: float,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        if not isinstance(event, OptEvent):
            raise TypeError(f"Only OptEvent kinds may carry value, got {event!r}")

        if not self.guard.claim_conversion(event_id):
            if self.config.debug:
                logger.info(f"{event.value} already fired for event_id={event_id}")
            return False

        user_data = await self._user_data(event, identity)
        record = build_opt_envelope(
            event,
            event_id,
            identity.lead_id,
            value,
            self.config,
            user_data=user_data,
            context=context,
        )
        self._push(record)

        if self.config.debug:
            logger.debug(f"{event.value} (opt) event_id={event_id} value={value} lead_id={identity.lead_id}")
        return True

    def _fire_legacy_bridge(self, event: OptEvent, context: Mapping[str, Any] | None) -> None:
        record = build_bridge_envelope(event, self.config, context)
        if record is not None:
            self._push(record)

    # -------------------------------------------------------------------------
    # OPT emitters
    # -------------------------------------------------------------------------

    async def wm_lead(
        self,
        identity: UserIdentity | Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> str:
        """$10: first-party contact capture with a confirmed lead id.

        Returns:
            The event id, ``lead:{lead_id}``.
        """
        identity = _coerce_identity(identity)
        event_id = f"lead:{identity.lead_id}"

        if await self._emit_opt(OptEvent.LEAD, event_id, identity, OptEvent.LEAD.base_value, context):
            self._fire_legacy_bridge(OptEvent.LEAD, context)
        return event_id

    async def wm_qualified_lead(
        self,
        identity: UserIdentity | Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """$100: lead crossed the qualification threshold.

        Suppressed when it already fired for this lead in this session, or
        when a scanner upload already fired for the lead (upload is the
        stronger signal).

        Returns:
            True if fired, False if suppressed.
        """
        identity = _coerce_identity(identity)

        decision = self.guard.claim_qualified_lead(identity.lead_id)
        if decision != GuardDecision.FIRE:
            if self.config.debug:
                logger.info(f"wm_qualified_lead {decision.value} for {identity.lead_id}")
            return False

        event_id = f"ql:{identity.lead_id}"
        fired = await self._emit_opt(
            OptEvent.QUALIFIED_LEAD, event_id, identity, OptEvent.QUALIFIED_LEAD.base_value, context
        )
        if fired:
            self._fire_legacy_bridge(OptEvent.QUALIFIED_LEAD, context)
        return fired

    async def wm_scanner_upload(
        self,
        identity: UserIdentity | Mapping[str, Any],
        attempt_id: str,
        context: Mapping[str, Any] | None = None,
    ) -> str | None:
        """$500: user uploaded a document for analysis.

        Deduplicated per attempt id. Also records the upload for the lead
        so a later qualified-lead conversion is suppressed.

        Returns:
            ``upload:{attempt_id}`` if fired, None if deduplicated.
        """
        identity = _coerce_identity(identity)

        if not self.guard.claim_scan_attempt(attempt_id):
            if self.config.debug:
                logger.info(f"wm_scanner_upload deduplicated for {attempt_id}")
            return None

        event_id = f"upload:{attempt_id}"
        self.guard.mark_upload_fired(identity.lead_id)

        fired = await self._emit_opt(
            OptEvent.SCANNER_UPLOAD,
            event_id,
            identity,
            OptEvent.SCANNER_UPLOAD.base_value,
            {"scan_attempt_id": attempt_id, **(context or {})},
        )
        if not fired:
            return None
        self._fire_legacy_bridge(OptEvent.SCANNER_UPLOAD, context)
        return event_id

    async def wm_appointment_booked(
        self,
        identity: UserIdentity | Mapping[str, Any],
        appointment_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        """$1000: consultation or booking confirmed.

        Args:
            identity: Lead identity.
            appointment_key: Stable key (appointment id, calendar slot, CRM
                row id) so a re-booking is not double counted. Falls back
                to the current time in milliseconds.
            context: Extra record fields.

        Returns:
            The event id, ``appt:{lead_id}:{key}``.
        """
        identity = _coerce_identity(identity)
        suffix = appointment_key or self._clock()
        event_id = f"appt:{identity.lead_id}:{suffix}"

        fired = await self._emit_opt(
            OptEvent.APPOINTMENT_BOOKED,
            event_id,
            identity,
            OptEvent.APPOINTMENT_BOOKED.base_value,
            context,
        )
        if fired:
            self._fire_legacy_bridge(OptEvent.APPOINTMENT_BOOKED, context)
        return event_id

    async def wm_sold(
        self,
        identity: UserIdentity | Mapping[str, Any],
        sale_amount: float,
        deal_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        """$5000 + sale amount: deal closed.

        Negative amounts add nothing to the value; the raw amount is still
        recorded as ``sale_amount``. No legacy bridge.

        Returns:
            The event id, ``sold:{lead_id}:{key}``.
        """
        identity = _coerce_identity(identity)
        suffix = deal_key or self._clock()
        event_id = f"sold:{identity.lead_id}:{suffix}"
        total_value = OptEvent.SOLD.base_value + max(0, sale_amount)

        await self._emit_opt(
            OptEvent.SOLD,
            event_id,
            identity,
            total_value,
            {"sale_amount": sale_amount, **(context or {})},
        )
        return event_id

    # -------------------------------------------------------------------------
    # RT / INTERNAL emitters
    # -------------------------------------------------------------------------

    def wm_retarget(self, event_name: str, context: Mapping[str, Any] | None = None) -> str:
        """Fire an audience-building event. Never carries value or currency.

        Returns:
            The random event id.
        """
        record = build_rt_envelope(event_name, self.config, context=context)
        self._push(record)
        return record["event_id"]

    def wm_internal(self, event_name: str, data: Mapping[str, Any] | None = None) -> str:
        """Fire a local diagnostics event that ad platforms must never receive.

        Returns:
            The random event id.
        """
        record = build_internal_envelope(event_name, self.config, data=data)
        self._push(record)
        return record["event_id"]

    # -------------------------------------------------------------------------
    # Resets
    # -------------------------------------------------------------------------

    def reset_scanner_upload_guard(self) -> None:
        self.guard.reset_attempt_guard()

    def reset_session_guards(self, lead_id: str) -> None:
        self.guard.reset_lead(lead_id)
