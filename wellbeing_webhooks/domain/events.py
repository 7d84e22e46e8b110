"""
Provider payload schemas, one per event kind.

The provider's payloads are append-only evolving schemas: every field is
optional and unknown fields are ignored, so a new provider attribute never
breaks ingestion. Only a field of the wrong JSON type is a validation error.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from wellbeing_webhooks.domain.models import EventKind

Scalar = int | float | str


class ProviderPayload(BaseModel):
    """Fields common to every integration event."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str | None = None
    profile_id: str | None = None
    account_id: str | None = None
    external_id: str | None = None
    created_at_utc: str | None = None
    version: int | float | None = None


class Factor(BaseModel):
    """Contributing factor of a score; provider extras (id, unit, state...) are kept."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    value: Scalar | None = None
    goal: Scalar | None = None


class DataLogEntry(BaseModel):
    """Raw sensor reading inside a data-log batch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    value: Scalar | None = None
    unit: str | None = None
    source: str | None = None
    device_type: str | None = None
    start_date_time: str | None = None
    end_date_time: str | None = None


class ScorePayload(ProviderPayload):
    type: str | None = None
    state: str | None = None
    score: float | None = None
    value: float | None = None
    factors: list[Factor] | None = None
    data_sources: list[str] | None = None
    score_date_time: str | None = None

    @property
    def effective_value(self) -> float | None:
        return self.score if self.score is not None else self.value


class BiomarkerPayload(ProviderPayload):
    category: str | None = None
    type: str | None = None
    periodicity: str | None = None
    aggregation: str | None = None
    value: Scalar | None = None
    unit: str | None = None
    value_type: str | None = None
    start_date_time: str | None = None
    end_date_time: str | None = None


class DataLogPayload(ProviderPayload):
    log_type: str | None = None
    data_type: str | None = None
    received_at_utc: str | None = None
    data_logs: list[DataLogEntry] | None = None


class ArchetypePayload(ProviderPayload):
    name: str | None = None
    value: Scalar | None = None
    data_type: str | None = None
    ordinality: int | None = None
    periodicity: str | None = None
    start_date_time: str | None = None
    end_date_time: str | None = None


PAYLOAD_SCHEMAS: dict[EventKind, type[ProviderPayload]] = {
    EventKind.SCORE: ScorePayload,
    EventKind.BIOMARKER: BiomarkerPayload,
    EventKind.DATA_LOG: DataLogPayload,
    EventKind.ARCHETYPE: ArchetypePayload,
}


def unwrap_payload(body: dict[str, Any]) -> dict[str, Any]:
    """Integration events sometimes nest the actual payload under ``data``."""
    nested = body.get("data")
    if isinstance(nested, dict):
        return nested
    return body
