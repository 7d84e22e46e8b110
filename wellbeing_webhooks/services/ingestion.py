"""
Webhook ingestion pipeline.

One delivery moves through an explicit state machine:

    RECEIVING_BODY → VERIFYING → CLASSIFYING → NORMALIZING → MERGING → RESPONDING

and ends in SUCCESS (200), REJECTED (4xx) or FAILURE (5xx). The handler always
produces an outcome; it never raises to its caller and never retries. The
provider retries non-2xx deliveries on its own schedule.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from wellbeing_webhooks.config import WebhookConfig
from wellbeing_webhooks.domain.errors import PayloadValidationError, WebhookError
from wellbeing_webhooks.domain.models import EventKind, SubjectAggregate, WebhookEventRecord
from wellbeing_webhooks.services.aggregate_store import AggregateStore
from wellbeing_webhooks.services.classifier import classify
from wellbeing_webhooks.services.event_journal import RAW_SAMPLE_CHARS, EventJournal, describe_payload
from wellbeing_webhooks.services.normalizer import normalize
from wellbeing_webhooks.services.settings_store import SettingsStore
from wellbeing_webhooks.services.signature import SignatureVerifier

logger = structlog.get_logger(__name__)


class IngestionState(str, Enum):
    RECEIVING_BODY = "receiving_body"
    VERIFYING = "verifying"
    CLASSIFYING = "classifying"
    NORMALIZING = "normalizing"
    MERGING = "merging"
    RESPONDING = "responding"
    # Terminal
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILURE = "failure"


@dataclass
class IngestionOutcome:
    """What the HTTP layer sends back for one delivery."""

    status_code: int
    body: dict[str, Any]
    state: IngestionState
    trail: list[IngestionState] = field(default_factory=list)
    aggregate: SubjectAggregate | None = None

    @property
    def ok(self) -> bool:
        return self.state is IngestionState.SUCCESS


class IngestionHandler:
    """
    Orchestrates verify → classify → normalize → merge for each delivery.

    The shared secret is resolved per request: a secret saved through the
    admin settings wins over the one from the environment.
    """

    def __init__(
        self,
        store: AggregateStore,
        webhook_config: WebhookConfig,
        journal: EventJournal | None = None,
        settings_store: SettingsStore | None = None,
    ) -> None:
        self.store = store
        self.config = webhook_config
        self.journal = journal
        self.settings_store = settings_store
        self.logger = logger.bind(component="ingestion_handler")

    async def _resolve_secret(self) -> str | None:
        if self.settings_store is not None:
            settings = await self.settings_store.load()
            if settings.webhook_secret:
                return settings.webhook_secret
        return self.config.secret

    async def handle(self, body: bytes, headers: Mapping[str, str]) -> IngestionOutcome:
        """Process one delivery end to end."""
        trail = [IngestionState.RECEIVING_BODY]
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(self.config.signature_header.lower())
        header_external_id = lowered.get(self.config.external_id_header.lower())
        header_event_type = lowered.get(self.config.event_type_header.lower())

        log = self.logger.bind(event_type=header_event_type, external_id=header_external_id)
        log.info("webhook_received", payload_length=len(body), has_signature=bool(signature))

        record = WebhookEventRecord(
            headers={
                "X-Signature": "present" if signature else "missing",
                "X-External-Id": header_external_id,
                "X-Event-Type": header_event_type,
                "Content-Type": lowered.get("content-type"),
                "Content-Length": lowered.get("content-length"),
            },
            event_type=header_event_type,
            external_id=header_external_id,
            raw_payload_sample=body.decode("utf-8", errors="replace")[:RAW_SAMPLE_CHARS],
        )

        try:
            trail.append(IngestionState.VERIFYING)
            bypass = (
                self.config.allow_signature_bypass
                and lowered.get(self.config.bypass_header.lower()) == "test"
            )
            if bypass:
                log.warning("signature_verification_bypassed")
            else:
                SignatureVerifier(await self._resolve_secret()).verify(signature, body)

            trail.append(IngestionState.CLASSIFYING)
            try:
                payload = json.loads(body)
            except ValueError as e:
                record.parse_error = str(e)
                await self._capture(record)
                raise PayloadValidationError(f"Malformed JSON body: {e}") from e

            record.payload_structure = describe_payload(payload)
            kind, event_type = (
                classify(header_event_type, payload)
                if isinstance(payload, dict)
                else (EventKind.UNKNOWN, header_event_type or EventKind.UNKNOWN.value)
            )
            record.kind = kind
            record.event_type = event_type

            trail.append(IngestionState.NORMALIZING)
            normalized = normalize(kind, event_type, payload, header_external_id)
            if normalized.is_err():
                await self._capture(record)
                raise normalized.unwrap_err()
            update = normalized.unwrap()
            record.external_id = update.external_id

            trail.append(IngestionState.MERGING)
            aggregate = await self.store.merge(update.external_id, update)

            trail.append(IngestionState.RESPONDING)
            await self._capture(record)
            if self.journal is not None:
                await self.journal.track(
                    event_type,
                    score_type=next(iter(update.scores), None),
                    biomarker_category=next(
                        (entry.get("category") for entry in update.biomarkers.values()), None
                    ),
                )
                await self.journal.log_activity(
                    {"event": event_type, "externalId": update.external_id, "success": True}
                )

            log.info(
                "webhook_processed",
                kind=kind.value,
                resolved_external_id=update.external_id,
                counts=aggregate.counts(),
            )
            trail.append(IngestionState.SUCCESS)
            return IngestionOutcome(
                status_code=200,
                body={
                    "success": True,
                    "message": "Webhook processed successfully",
                    "eventType": event_type,
                    "kind": kind.value,
                    "externalId": update.external_id,
                    "counts": aggregate.counts(),
                },
                state=IngestionState.SUCCESS,
                trail=trail,
                aggregate=aggregate,
            )

        except WebhookError as e:
            terminal = IngestionState.REJECTED if e.status_code < 500 else IngestionState.FAILURE
            log.warning(
                "webhook_not_processed",
                state=trail[-1].value,
                outcome=terminal.value,
                status_code=e.status_code,
                error=e.details,
            )
            return await self._error_outcome(e, terminal, trail)

        except Exception as e:
            log.exception("unexpected_webhook_error", state=trail[-1].value, error=str(e))
            return await self._error_outcome(WebhookError(str(e)), IngestionState.FAILURE, trail)

    async def _capture(self, record: WebhookEventRecord) -> None:
        if self.journal is not None:
            await self.journal.capture(record)

    async def _error_outcome(
        self, error: WebhookError, terminal: IngestionState, trail: list[IngestionState]
    ) -> IngestionOutcome:
        if self.journal is not None:
            await self.journal.log_activity(
                {"event": "error", "error": error.details, "success": False}
            )
        trail.append(terminal)
        return IngestionOutcome(
            status_code=error.status_code,
            body={"success": False, "error": error.reason, "details": error.details},
            state=terminal,
            trail=trail,
        )
