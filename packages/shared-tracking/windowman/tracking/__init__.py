"""
Window Man Tracking - conversion attribution event pipeline.

Provides:
- Identity normalization and SHA-256 hashing of PII
- Deduplicated, monetized conversion events (OPT) with hardcoded values
- Retargeting (RT) and internal events that never carry value
- Legacy bridge events for consumers still on pre-migration names
- Qualified-lead threshold and lead scoring

The key contract: ``value``/``currency`` appear on a record if and only if
``meta.category == "opt"``, and only the five conversion emitters can
produce such a record.

Usage:
    from windowman.tracking import Tracker, UserIdentity

    tracker = Tracker()
    await tracker.wm_lead(UserIdentity(lead_id="L1", email="a@b.com"))

    if qualifies_for_qualified_lead({"windowScope": "6_15", "timeline": "30days"}):
        await tracker.wm_qualified_lead({"leadId": "L1"})
"""

from windowman.tracking.config import CURRENCY, TrackingConfig
from windowman.tracking.emitters import Tracker
from windowman.tracking.emq import EMQValidationResult, validate_emq_event
from windowman.tracking.exceptions import (
    IdentityHashingError,
    SinkError,
    StorageUnavailableError,
    TrackingError,
)
from windowman.tracking.guard import DedupGuard, GuardDecision
from windowman.tracking.identity import (
    HashedIdentity,
    hash_identity,
    normalize_phone,
    sha256_hex,
)
from windowman.tracking.qualification import qualifies, qualifies_for_qualified_lead
from windowman.tracking.registry import TrackingRegistry
from windowman.tracking.schema import (
    EventCategory,
    EventMeta,
    OptEvent,
    QualificationFacts,
    Timeline,
    UserIdentity,
    WindowScope,
)
from windowman.tracking.scoring import (
    LeadScore,
    LeadScoringInput,
    RoutingAction,
    calculate_lead_score,
    get_routing_action,
    score_lead,
    score_leads,
)
from windowman.tracking.sink import DataLayerSink, EventSink, HttpSink, LoggingSink
from windowman.tracking.storage import FileStore, InMemoryStore, KeyValueStore

__all__ = [
    # Config
    "CURRENCY",
    "TrackingConfig",
    # Schema
    "EventCategory",
    "EventMeta",
    "OptEvent",
    "QualificationFacts",
    "Timeline",
    "UserIdentity",
    "WindowScope",
    # Identity
    "HashedIdentity",
    "hash_identity",
    "normalize_phone",
    "sha256_hex",
    # Dedup
    "DedupGuard",
    "GuardDecision",
    "KeyValueStore",
    "InMemoryStore",
    "FileStore",
    # Sinks
    "EventSink",
    "DataLayerSink",
    "LoggingSink",
    "HttpSink",
    # Emitters
    "Tracker",
    "TrackingRegistry",
    # Qualification
    "qualifies",
    "qualifies_for_qualified_lead",
    # Scoring
    "LeadScore",
    "LeadScoringInput",
    "RoutingAction",
    "calculate_lead_score",
    "get_routing_action",
    "score_lead",
    "score_leads",
    # Validation
    "EMQValidationResult",
    "validate_emq_event",
    # Exceptions
    "TrackingError",
    "IdentityHashingError",
    "StorageUnavailableError",
    "SinkError",
]
