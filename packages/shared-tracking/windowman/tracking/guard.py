"""Deduplication guards for conversion events.

Three event kinds have three different notions of "the same event":

- Scanner upload: keyed by the caller's attempt id. Only the most recent
  attempt id is remembered for the lifetime of the guard object.
- Qualified lead: keyed by lead id, once per session (store lifetime).
- Cross-guard suppression: once an upload fired for a lead, the weaker
  qualified-lead signal is never billed for that lead.
- Conversion id: every monetized record is pushed at most once per
  deterministic event id, whatever emitter produced it.

Guard state is best effort. An unreadable store reads as "not yet fired";
failed writes and resets are logged and swallowed.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum

from windowman.tracking.exceptions import StorageUnavailableError
from windowman.tracking.storage import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

UPLOAD_FIRED_PREFIX = "wm_upload_fired:"
QUALIFIED_FIRED_PREFIX = "wm_ql_fired:"
OPT_FIRED_PREFIX = "wm_opt_fired:"
FIRED = "1"


class GuardDecision(str, Enum):
    """Outcome of a dedup check."""

    FIRE = "fire"
    DUPLICATE = "duplicate"  # Same key already fired
    SUPERSEDED = "superseded"  # A stronger signal already fired for the lead


class DedupGuard:
    """At-most-once gate for conversion events.

    Check-and-mark runs under a lock so two concurrent callers cannot both
    observe "not fired" for the same key.

    Example:
        >>> guard = DedupGuard(InMemoryStore())
        >>> guard.claim_scan_attempt("scan-1")
        True
        >>> guard.claim_scan_attempt("scan-1")
        False
    """

    def __init__(self, store: KeyValueStore | None = None):
        """Initialize the guard.

        Args:
            store: Session store for per-lead flags. Defaults to a fresh
                InMemoryStore.
        """
        self.store = store if store is not None else InMemoryStore()
        self._last_attempt_id: str | None = None
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    def _is_set(self, key: str) -> bool:
        try:
            return self.store.get(key) == FIRED
        except StorageUnavailableError as e:
            logger.debug(f"Guard state unreadable, assuming not fired: {e}")
            return False

    def _mark(self, key: str) -> None:
        try:
            self.store.set(key, FIRED)
        except StorageUnavailableError as e:
            logger.debug(f"Guard state unwritable, flag {key} not persisted: {e}")

    def _clear(self, key: str) -> None:
        try:
            self.store.delete(key)
        except StorageUnavailableError as e:
            logger.debug(f"Guard state unwritable, flag {key} not cleared: {e}")

    # -------------------------------------------------------------------------
    # Scanner upload (per-process attempt guard)
    # -------------------------------------------------------------------------

    @property
    def last_attempt_id(self) -> str | None:
        """Most recent attempt id that fired."""
        return self._last_attempt_id

    def claim_scan_attempt(self, attempt_id: str) -> bool:
        """Claim an upload attempt.

        Returns:
            True if the attempt may fire, False if it is the attempt that
            fired most recently.
        """
        with self._lock:
            if self._last_attempt_id == attempt_id:
                return False
            self._last_attempt_id = attempt_id
            return True

    def mark_upload_fired(self, lead_id: str) -> None:
        """Record that an upload conversion fired for a lead."""
        self._mark(f"{UPLOAD_FIRED_PREFIX}{lead_id}")

    def has_upload_fired(self, lead_id: str) -> bool:
        return self._is_set(f"{UPLOAD_FIRED_PREFIX}{lead_id}")

    # -------------------------------------------------------------------------
    # Qualified lead (per-lead session guard + upload supersedes)
    # -------------------------------------------------------------------------

    def has_qualified_fired(self, lead_id: str) -> bool:
        return self._is_set(f"{QUALIFIED_FIRED_PREFIX}{lead_id}")

    def claim_qualified_lead(self, lead_id: str) -> GuardDecision:
        """Claim the qualified-lead conversion for a lead.

        The flag is marked before the caller emits, so a retry racing the
        first emission is still suppressed.
        """
        with self._lock:
            if self.has_qualified_fired(lead_id):
                return GuardDecision.DUPLICATE
            if self.has_upload_fired(lead_id):
                return GuardDecision.SUPERSEDED
            self._mark(f"{QUALIFIED_FIRED_PREFIX}{lead_id}")
            return GuardDecision.FIRE

    # -------------------------------------------------------------------------
    # Conversion id (every OPT record)
    # -------------------------------------------------------------------------

    def has_conversion_fired(self, event_id: str) -> bool:
        return self._is_set(f"{OPT_FIRED_PREFIX}{event_id}")

    def claim_conversion(self, event_id: str) -> bool:
        """Claim the monetized record with a given event id.

        Returns:
            True if the record may be pushed, False if it already was.
        """
        with self._lock:
            if self.has_conversion_fired(event_id):
                return False
            self._mark(f"{OPT_FIRED_PREFIX}{event_id}")
            return True

    # -------------------------------------------------------------------------
    # Resets
    # -------------------------------------------------------------------------

    def reset_attempt_guard(self) -> None:
        """Forget the most recent upload attempt id so it may fire again."""
        with self._lock:
            if self._last_attempt_id is not None:
                self._clear(f"{OPT_FIRED_PREFIX}upload:{self._last_attempt_id}")
            self._last_attempt_id = None

    def reset_lead(self, lead_id: str) -> None:
        """Clear every session flag recorded for a lead.

        Covers the per-lead conversion ids (``lead:``, ``ql:``). Appointment
        and sale ids carry caller keys and stay claimed.
        """
        with self._lock:
            self._clear(f"{UPLOAD_FIRED_PREFIX}{lead_id}")
            self._clear(f"{QUALIFIED_FIRED_PREFIX}{lead_id}")
            self._clear(f"{OPT_FIRED_PREFIX}lead:{lead_id}")
            self._clear(f"{OPT_FIRED_PREFIX}ql:{lead_id}")
