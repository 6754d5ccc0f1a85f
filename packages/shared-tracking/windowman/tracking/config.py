"""Configuration for the tracking pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass

# Currency attached to every OPT event. Not configurable.
CURRENCY = "USD"

DEFAULT_TRACKING_VERSION = "1.0.0"
DEFAULT_SOURCE_SYSTEM = "website"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class TrackingConfig:
    """Runtime settings shared by every emitter.

    Attributes:
        tracking_version: Version tag stamped into ``meta.wm_tracking_version``.
        source_system: Value of the ``source_system`` field on OPT, RT and
            legacy bridge records.
        debug: Enables development-mode logging (hashing failures, dedup
            suppressions, per-event summaries).
        guard_path: Optional path of a JSON file used to persist dedup
            guard state. In-memory state is used when unset.
        collector_url: Optional HTTP endpoint that receives event records.
    """

    tracking_version: str = DEFAULT_TRACKING_VERSION
    source_system: str = DEFAULT_SOURCE_SYSTEM
    debug: bool = False
    guard_path: str | None = None
    collector_url: str | None = None

    @classmethod
    def from_env(cls) -> TrackingConfig:
        """Create configuration from environment variables.

        Reads WM_TRACKING_VERSION, WM_TRACKING_SOURCE_SYSTEM,
        WM_TRACKING_DEBUG, WM_TRACKING_GUARD_PATH and
        WM_TRACKING_COLLECTOR_URL. All are optional.

        Returns:
            TrackingConfig instance.
        """
        debug_flag = os.getenv("WM_TRACKING_DEBUG", "")

        return cls(
            tracking_version=os.getenv("WM_TRACKING_VERSION", DEFAULT_TRACKING_VERSION),
            source_system=os.getenv("WM_TRACKING_SOURCE_SYSTEM", DEFAULT_SOURCE_SYSTEM),
            debug=debug_flag.strip().lower() in _TRUTHY,
            guard_path=os.getenv("WM_TRACKING_GUARD_PATH") or None,
            collector_url=os.getenv("WM_TRACKING_COLLECTOR_URL") or None,
        )
