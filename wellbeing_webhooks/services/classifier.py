"""
Event classification.

The X-Event-Type header is authoritative. Older deliveries and manual tests
sometimes omit it, in which case the payload's own ``eventType`` field and then
the payload shape decide.
"""

from typing import Any

import structlog

from wellbeing_webhooks.domain.events import unwrap_payload
from wellbeing_webhooks.domain.models import INTEGRATION_EVENT_TYPES, EventKind

logger = structlog.get_logger(__name__)


def classify_event_type(event_type: str | None) -> EventKind:
    """Map a provider event-type name to its kind; anything unrecognized is UNKNOWN."""
    if not event_type:
        return EventKind.UNKNOWN
    return INTEGRATION_EVENT_TYPES.get(event_type.strip(), EventKind.UNKNOWN)


def classify_payload_shape(payload: dict[str, Any]) -> EventKind:
    """Best-effort detection from the fields present in the payload."""

    def present(key: str) -> bool:
        return payload.get(key) is not None

    if present("type") and present("score"):
        return EventKind.SCORE
    if present("category") and present("type") and present("value"):
        return EventKind.BIOMARKER
    if present("name") and present("dataType"):
        return EventKind.ARCHETYPE
    if present("logType") and present("dataLogs"):
        return EventKind.DATA_LOG
    return EventKind.UNKNOWN


def classify(header_event_type: str | None, payload: dict[str, Any]) -> tuple[EventKind, str]:
    """
    Resolve the kind and the event-type name used for bookkeeping.

    Returns:
        (kind, event_type_name): the name falls back to the detected kind's value
        when neither the header nor the payload names the event.
    """
    body_event_type = payload.get("eventType")
    named = header_event_type or (body_event_type if isinstance(body_event_type, str) else None)

    if named:
        kind = classify_event_type(named)
        if kind is EventKind.UNKNOWN:
            logger.warning("unknown_event_type", event_type=named)
        return kind, named

    kind = classify_payload_shape(unwrap_payload(payload))
    if kind is EventKind.UNKNOWN:
        logger.warning("unclassifiable_payload", payload_keys=sorted(payload)[:20])
    return kind, kind.value
