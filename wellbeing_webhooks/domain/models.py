"""
Domain models for webhook ingestion.

These models represent the persisted aggregate and the captured event records.
Field names are snake_case in Python and camelCase on disk, matching the JSON
the dashboard and the reporting tools already read.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventKind(str, Enum):
    """Closed set of event kinds the provider pushes, plus a catch-all."""

    SCORE = "score"
    BIOMARKER = "biomarker"
    DATA_LOG = "datalog"
    ARCHETYPE = "archetype"
    UNKNOWN = "unknown"


# Header values sent by the provider in X-Event-Type
INTEGRATION_EVENT_TYPES: dict[str, EventKind] = {
    "ScoreCreatedIntegrationEvent": EventKind.SCORE,
    "BiomarkerCreatedIntegrationEvent": EventKind.BIOMARKER,
    "DataLogReceivedIntegrationEvent": EventKind.DATA_LOG,
    "ArchetypeCreatedIntegrationEvent": EventKind.ARCHETYPE,
}

# Mapping keys of SubjectAggregate that hold per-category entries
CATEGORY_FIELDS: tuple[str, ...] = (
    "scores",
    "factors",
    "biomarkers",
    "data_logs",
    "archetypes",
    "unclassified",
)


class CamelModel(BaseModel):
    """Base for models persisted or exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeviceInfo(CamelModel):
    """
    Device that produced the subject's most recent data logs.

    In an update only the fields the first log carries are set; merging fills
    them into the stored device, which starts out as unknown/unknown.
    """

    type: str | None = None
    source: str | None = None
    last_seen: str | None = None


class SubjectUpdate(CamelModel):
    """
    Partial aggregate produced from one normalized event.

    Every category holds only the keys this event touches; merging it into an
    aggregate never removes anything.
    """

    kind: EventKind
    event_type: str
    external_id: str
    profile_id: str | None = None
    account_id: str | None = None

    scores: dict[str, dict[str, Any]] = Field(default_factory=dict)
    factors: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    biomarkers: dict[str, dict[str, Any]] = Field(default_factory=dict)
    data_logs: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    archetypes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    unclassified: dict[str, Any] = Field(default_factory=dict)
    device: DeviceInfo | None = None

    updated_at: str | None = Field(
        default=None, description="Provider timestamp of the event (createdAtUtc/receivedAtUtc)"
    )


class SubjectAggregate(CamelModel):
    """Merged record for one subject, keyed in the store by external id."""

    # Keep fields written by other tools (e.g. demographics) across rewrites
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    external_id: str
    profile_id: str | None = None
    account_id: str | None = None

    scores: dict[str, dict[str, Any]] = Field(default_factory=dict)
    factors: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    biomarkers: dict[str, dict[str, Any]] = Field(default_factory=dict)
    data_logs: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    archetypes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    unclassified: dict[str, Any] = Field(default_factory=dict)
    device: DeviceInfo | None = None

    last_updated: str | None = None

    @classmethod
    def empty(cls, update: SubjectUpdate) -> "SubjectAggregate":
        return cls(
            external_id=update.external_id,
            profile_id=update.profile_id or f"sahha-{update.external_id}",
            account_id=update.account_id,
        )

    def merged_with(self, update: SubjectUpdate) -> "SubjectAggregate":
        """
        Shallow, last-write-wins union of an update into this record.

        Data-log batches are appended, but only when an identical batch is not
        already present, so replaying an event leaves the record unchanged.
        """
        data_logs = {key: list(batches) for key, batches in self.data_logs.items()}
        for key, batches in update.data_logs.items():
            existing = data_logs.setdefault(key, [])
            for batch in batches:
                if batch not in existing:
                    existing.append(batch)

        return self.model_copy(
            update={
                "profile_id": self.profile_id or update.profile_id,
                "account_id": self.account_id or update.account_id,
                "scores": {**self.scores, **update.scores},
                "factors": {**self.factors, **update.factors},
                "biomarkers": {**self.biomarkers, **update.biomarkers},
                "data_logs": data_logs,
                "archetypes": {**self.archetypes, **update.archetypes},
                "unclassified": {**self.unclassified, **update.unclassified},
                "device": self._merged_device(update.device),
                "last_updated": update.updated_at or self.last_updated,
            }
        )

    def _merged_device(self, incoming: DeviceInfo | None) -> DeviceInfo | None:
        if incoming is None:
            return self.device
        current = self.device or DeviceInfo(type="unknown", source="unknown")
        return current.model_copy(update=incoming.model_dump(exclude_none=True))

    def counts(self) -> dict[str, int]:
        """Number of entries per category, echoed back to the webhook caller."""
        return {
            "scores": len(self.scores),
            "factors": len(self.factors),
            "biomarkers": len(self.biomarkers),
            "dataLogs": sum(len(batches) for batches in self.data_logs.values()),
            "archetypes": len(self.archetypes),
            "unclassified": len(self.unclassified),
        }


class WebhookEventRecord(CamelModel):
    """Snapshot of one delivery, kept only for later analysis."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    headers: dict[str, str | None] = Field(default_factory=dict)
    event_type: str | None = None
    external_id: str | None = None
    kind: EventKind | None = None
    payload_structure: dict[str, Any] | None = None
    raw_payload_sample: str = ""
    parse_error: str | None = None
