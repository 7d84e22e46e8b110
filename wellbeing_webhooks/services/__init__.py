"""
Core services for the application.

This package contains the ingestion pipeline (signature verification, event
classification, payload normalization, aggregate storage) and the read-side
helpers built on top of the persisted store.
"""

from .aggregate_store import AggregateStore
from .classifier import classify, classify_event_type
from .event_journal import EventJournal
from .ingestion import IngestionHandler, IngestionOutcome, IngestionState
from .normalizer import normalize
from .settings_store import SettingsStore, WebhookSettings
from .signature import SignatureVerifier, compute_signature
from .statistics import WebhookStats, generate_stats

__all__ = [
    "AggregateStore",
    "EventJournal",
    "IngestionHandler",
    "IngestionOutcome",
    "IngestionState",
    "SettingsStore",
    "SignatureVerifier",
    "WebhookSettings",
    "WebhookStats",
    "classify",
    "classify_event_type",
    "compute_signature",
    "generate_stats",
    "normalize",
]
