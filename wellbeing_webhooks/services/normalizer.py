"""
Payload normalization: provider JSON → SubjectUpdate.

Each known event kind is decoded through its own schema and reshaped into the
entries the aggregate stores. Unknown kinds keep their raw payload under the
unclassified bucket, keyed by event-type name.
"""

from typing import Any

import structlog
from pydantic import ValidationError

from wellbeing_webhooks.domain.errors import PayloadValidationError
from wellbeing_webhooks.domain.events import (
    PAYLOAD_SCHEMAS,
    ArchetypePayload,
    BiomarkerPayload,
    DataLogPayload,
    ProviderPayload,
    ScorePayload,
    unwrap_payload,
)
from wellbeing_webhooks.domain.models import DeviceInfo, EventKind, SubjectUpdate
from wellbeing_webhooks.domain.result import Result

logger = structlog.get_logger(__name__)


def _compact(**fields: Any) -> dict[str, Any]:
    """Drop absent fields so stored entries never carry nulls."""
    return {key: value for key, value in fields.items() if value is not None}


def _resolve_external_id(header_external_id: str | None, payload: dict[str, Any]) -> str | None:
    # Header wins: it is what the provider signs for
    if header_external_id and header_external_id.strip():
        return header_external_id.strip()
    body_id = payload.get("externalId")
    if isinstance(body_id, str) and body_id.strip():
        return body_id.strip()
    return None


def _score_update(p: ScorePayload, base: dict[str, Any]) -> SubjectUpdate:
    score_type = p.type or "unknown"
    update = SubjectUpdate(
        **base,
        scores={
            score_type: _compact(
                value=p.effective_value,
                state=p.state,
                scoreDateTime=p.score_date_time,
                dataSources=p.data_sources,
                version=p.version,
                updatedAt=p.created_at_utc,
            )
        },
        updated_at=p.created_at_utc,
    )
    if p.factors is not None:
        update.factors[score_type] = [
            factor.model_dump(mode="json", exclude_none=True) for factor in p.factors
        ]
    return update


def _biomarker_update(p: BiomarkerPayload, base: dict[str, Any]) -> SubjectUpdate:
    key = f"{p.category or 'unknown'}_{p.type or 'unknown'}"
    return SubjectUpdate(
        **base,
        biomarkers={
            key: _compact(
                category=p.category,
                type=p.type,
                value=p.value,
                unit=p.unit,
                valueType=p.value_type,
                periodicity=p.periodicity,
                aggregation=p.aggregation,
                startDateTime=p.start_date_time,
                endDateTime=p.end_date_time,
                version=p.version,
                updatedAt=p.created_at_utc,
            )
        },
        updated_at=p.created_at_utc,
    )


def _data_log_update(p: DataLogPayload, base: dict[str, Any]) -> SubjectUpdate:
    key = f"{p.log_type or 'unknown'}_{p.data_type or 'unknown'}"
    logs = p.data_logs or []
    batch = _compact(
        receivedAt=p.received_at_utc,
        logs=[entry.model_dump(mode="json", by_alias=True, exclude_none=True) for entry in logs],
    )

    device = None
    if logs and (logs[0].device_type or logs[0].source):
        device = DeviceInfo(
            type=logs[0].device_type,
            source=logs[0].source,
            last_seen=p.received_at_utc,
        )

    return SubjectUpdate(
        **base,
        data_logs={key: [batch]},
        device=device,
        updated_at=p.received_at_utc or p.created_at_utc,
    )


def _archetype_update(p: ArchetypePayload, base: dict[str, Any]) -> SubjectUpdate:
    name = p.name or "unknown"
    return SubjectUpdate(
        **base,
        archetypes={
            name: _compact(
                value=p.value,
                dataType=p.data_type,
                ordinality=p.ordinality,
                periodicity=p.periodicity,
                startDateTime=p.start_date_time,
                endDateTime=p.end_date_time,
                version=p.version,
                updatedAt=p.created_at_utc,
            )
        },
        updated_at=p.created_at_utc,
    )


def normalize(
    kind: EventKind,
    event_type: str,
    body: Any,
    header_external_id: str | None = None,
) -> Result[SubjectUpdate, PayloadValidationError]:
    """
    Decode one webhook body into a partial aggregate update.

    Args:
        kind: Classified event kind
        event_type: Event-type name used to key the unclassified bucket
        body: Parsed JSON body (anything json.loads can return)
        header_external_id: Value of the X-External-Id header, if any

    Returns:
        Result[SubjectUpdate, PayloadValidationError]: the update, or why the payload was rejected.
    """
    if not isinstance(body, dict):
        return Result.err(PayloadValidationError("Webhook body must be a JSON object"))

    payload = unwrap_payload(body)
    external_id = _resolve_external_id(header_external_id, payload)
    if external_id is None:
        return Result.err(
            PayloadValidationError("X-External-Id header is missing and payload has no externalId")
        )

    schema = PAYLOAD_SCHEMAS.get(kind)
    if schema is None:
        # Includes the legacy event-based bodies (batch.scores, score.updated,
        # archetype.calculated, profile.created): kept verbatim, never decoded
        created = payload.get("createdAtUtc")
        return Result.ok(
            SubjectUpdate(
                kind=kind,
                event_type=event_type,
                external_id=external_id,
                unclassified={event_type: payload},
                updated_at=created if isinstance(created, str) else None,
            )
        )

    try:
        decoded: ProviderPayload = schema.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            "payload_schema_violation",
            kind=kind.value,
            external_id=external_id,
            errors=e.error_count(),
        )
        first_error = e.errors()[0]
        location = ".".join(str(part) for part in first_error["loc"])
        return Result.err(
            PayloadValidationError(f"Invalid {kind.value} payload at {location}: {first_error['msg']}")
        )

    base = {
        "kind": kind,
        "event_type": event_type,
        "external_id": external_id,
        "profile_id": decoded.profile_id,
        "account_id": decoded.account_id,
    }

    if isinstance(decoded, ScorePayload):
        return Result.ok(_score_update(decoded, base))
    if isinstance(decoded, BiomarkerPayload):
        return Result.ok(_biomarker_update(decoded, base))
    if isinstance(decoded, DataLogPayload):
        return Result.ok(_data_log_update(decoded, base))
    if isinstance(decoded, ArchetypePayload):
        return Result.ok(_archetype_update(decoded, base))

    raise TypeError(f"No normalizer for payload schema {type(decoded).__name__}")
