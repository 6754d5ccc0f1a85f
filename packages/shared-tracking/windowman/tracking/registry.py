"""Debug registry exposing the pipeline's functions by name.

Unlike a process-wide singleton, a registry is constructed explicitly at
startup and handed to whatever inspection tool needs it:

    tracker = Tracker.from_config()
    registry = TrackingRegistry.for_tracker(tracker)
    debug_panel = DebugPanel(registry)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from windowman.tracking.emitters import Tracker
from windowman.tracking.emq import validate_emq_event
from windowman.tracking.identity import hash_identity, normalize_phone, sha256_hex
from windowman.tracking.qualification import qualifies_for_qualified_lead
from windowman.tracking.scoring import (
    calculate_lead_score,
    get_crm_tags,
    get_routing_action,
    score_lead,
)

logger = logging.getLogger(__name__)


class TrackingRegistry:
    """Named collection of tracking functions for ad-hoc inspection.

    Example:
        >>> registry = TrackingRegistry.for_tracker(Tracker())
        >>> registry.get("qualifies_for_qualified_lead")({"windowScope": "6_15", "timeline": "30days"})
        True
    """

    def __init__(self) -> None:
        self._functions: dict[str, Callable[..., Any]] = {}

    @classmethod
    def for_tracker(cls, tracker: Tracker) -> TrackingRegistry:
        """Build a registry exposing a tracker's emitters and the pure helpers."""
        registry = cls()

        # Emitters bound to this tracker
        for name in (
            "wm_lead",
            "wm_qualified_lead",
            "wm_scanner_upload",
            "wm_appointment_booked",
            "wm_sold",
            "wm_retarget",
            "wm_internal",
            "reset_scanner_upload_guard",
            "reset_session_guards",
        ):
            registry.register(name, getattr(tracker, name))

        # Pure helpers
        registry.register("qualifies_for_qualified_lead", qualifies_for_qualified_lead)
        registry.register("calculate_lead_score", calculate_lead_score)
        registry.register("score_lead", score_lead)
        registry.register("get_routing_action", get_routing_action)
        registry.register("get_crm_tags", get_crm_tags)
        registry.register("validate_emq_event", validate_emq_event)
        registry.register("hash_identity", hash_identity)
        registry.register("sha256_hex", sha256_hex)
        registry.register("normalize_phone", normalize_phone)

        return registry

    def register(self, name: str, function: Callable[..., Any]) -> None:
        """Register a function under a name, replacing any previous entry."""
        self._functions[name] = function
        logger.debug(f"Registered tracking function: {name}")

    def unregister(self, name: str) -> None:
        if name in self._functions:
            del self._functions[name]

    def get(self, name: str) -> Callable[..., Any] | None:
        """Look up a function by name, or None if not registered."""
        return self._functions.get(name)

    def list_available(self) -> list[str]:
        return sorted(self._functions)

    def is_registered(self, name: str) -> bool:
        return name in self._functions

    def describe(self) -> dict[str, str]:
        """Map each name to the first line of its docstring."""
        descriptions = {}
        for name in self.list_available():
            doc = (self._functions[name].__doc__ or "").strip()
            descriptions[name] = doc.splitlines()[0] if doc else ""
        return descriptions
