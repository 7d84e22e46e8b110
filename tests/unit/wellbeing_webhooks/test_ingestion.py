"""
Tests for the ingestion pipeline.

These drive IngestionHandler end to end against a temp data directory, the
same way the HTTP route does, and check both the response and what landed on
disk.
"""

import json

import pytest
from payloads import SECRET, biomarker_payload, data_log_payload, score_payload, signed_request

from wellbeing_webhooks.config import WebhookConfig
from wellbeing_webhooks.services.aggregate_store import AggregateStore
from wellbeing_webhooks.services.event_journal import EventJournal
from wellbeing_webhooks.services.ingestion import IngestionHandler, IngestionState
from wellbeing_webhooks.services.settings_store import SettingsStore


def stored(store: AggregateStore) -> dict:
    return json.loads(store.path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_first_score_creates_subject(handler: IngestionHandler, store: AggregateStore) -> None:
    body, headers = signed_request({"type": "sleep", "score": 0.8, "state": "high"})

    outcome = await handler.handle(body, headers)

    assert outcome.status_code == 200
    assert outcome.ok
    assert outcome.body["success"] is True
    assert outcome.body["kind"] == "score"
    assert outcome.body["externalId"] == "abc"
    assert outcome.body["counts"]["scores"] == 1
    assert stored(store)["abc"]["scores"]["sleep"] == {"value": 0.8, "state": "high"}


@pytest.mark.asyncio
async def test_score_then_biomarker_populate_one_subject(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    await handler.handle(*signed_request(score_payload()))
    outcome = await handler.handle(
        *signed_request(biomarker_payload(), event_type="BiomarkerCreatedIntegrationEvent")
    )

    assert outcome.status_code == 200
    record = stored(store)["abc"]
    assert record["scores"]["sleep"]["value"] == 0.8
    assert record["biomarkers"]["activity_steps"]["value"] == "8000"
    assert outcome.body["counts"]["scores"] == 1
    assert outcome.body["counts"]["biomarkers"] == 1


@pytest.mark.asyncio
async def test_data_log_records_device(handler: IngestionHandler, store: AggregateStore) -> None:
    outcome = await handler.handle(
        *signed_request(data_log_payload(), event_type="DataLogReceivedIntegrationEvent")
    )

    assert outcome.status_code == 200
    record = stored(store)["abc"]
    assert record["device"]["type"] == "iPhone"
    assert outcome.body["counts"]["dataLogs"] == 1


@pytest.mark.asyncio
async def test_malformed_json_is_rejected_without_touching_store(
    handler: IngestionHandler, store: AggregateStore, journal: EventJournal
) -> None:
    await handler.handle(*signed_request(score_payload()))
    before = store.path.read_bytes()

    outcome = await handler.handle(*signed_request(b"{not json"))

    assert outcome.status_code == 400
    assert outcome.state is IngestionState.REJECTED
    assert outcome.body["success"] is False
    assert store.path.read_bytes() == before
    assert journal.recent_events()[-1]["parseError"]


@pytest.mark.asyncio
async def test_unknown_event_type_is_accepted_as_unclassified(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    outcome = await handler.handle(*signed_request({"foo": 1}, event_type="FooEvent"))

    assert outcome.status_code == 200
    assert outcome.body["kind"] == "unknown"
    assert stored(store)["abc"]["unclassified"] == {"FooEvent": {"foo": 1}}


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected(handler: IngestionHandler, store: AggregateStore) -> None:
    body, headers = signed_request(score_payload(), secret="wrong")

    outcome = await handler.handle(body, headers)

    assert outcome.status_code == 401
    assert outcome.state is IngestionState.REJECTED
    assert outcome.trail[-2] is IngestionState.VERIFYING
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(handler: IngestionHandler) -> None:
    body, headers = signed_request(score_payload())
    del headers["X-Signature"]

    outcome = await handler.handle(body, headers)

    assert outcome.status_code == 401


@pytest.mark.asyncio
async def test_replay_is_idempotent(handler: IngestionHandler, store: AggregateStore) -> None:
    request = signed_request(data_log_payload(), event_type="DataLogReceivedIntegrationEvent")
    first = await handler.handle(*request)
    snapshot = store.path.read_bytes()

    second = await handler.handle(*request)

    assert first.status_code == second.status_code == 200
    assert store.path.read_bytes() == snapshot
    assert second.body["counts"] == first.body["counts"]


@pytest.mark.asyncio
async def test_missing_external_id_is_rejected(handler: IngestionHandler, store: AggregateStore) -> None:
    payload = score_payload()
    del payload["externalId"]

    outcome = await handler.handle(*signed_request(payload, external_id=None))

    assert outcome.status_code == 400
    assert "externalId" in outcome.body["details"]
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_schema_violation_is_rejected(handler: IngestionHandler) -> None:
    outcome = await handler.handle(*signed_request(score_payload(score="not-a-number")))

    assert outcome.status_code == 400
    assert outcome.trail[-2] is IngestionState.NORMALIZING


@pytest.mark.asyncio
async def test_success_trail_walks_every_state(handler: IngestionHandler) -> None:
    outcome = await handler.handle(*signed_request(score_payload()))

    assert outcome.trail == [
        IngestionState.RECEIVING_BODY,
        IngestionState.VERIFYING,
        IngestionState.CLASSIFYING,
        IngestionState.NORMALIZING,
        IngestionState.MERGING,
        IngestionState.RESPONDING,
        IngestionState.SUCCESS,
    ]


@pytest.mark.asyncio
async def test_headers_are_case_insensitive(handler: IngestionHandler, store: AggregateStore) -> None:
    body, headers = signed_request(score_payload())
    lowered = {key.lower(): value for key, value in headers.items()}

    outcome = await handler.handle(body, lowered)

    assert outcome.status_code == 200


@pytest.mark.asyncio
async def test_open_mode_accepts_unsigned(store: AggregateStore) -> None:
    handler = IngestionHandler(store, WebhookConfig(secret=None))
    body, headers = signed_request(score_payload())
    del headers["X-Signature"]

    outcome = await handler.handle(body, headers)

    assert outcome.status_code == 200


@pytest.mark.asyncio
async def test_bypass_header_honored_only_when_enabled(store: AggregateStore) -> None:
    body, headers = signed_request(score_payload(), secret="wrong")
    headers["X-Bypass-Signature"] = "test"

    strict = IngestionHandler(store, WebhookConfig(secret=SECRET))
    assert (await strict.handle(body, headers)).status_code == 401

    lenient = IngestionHandler(store, WebhookConfig(secret=SECRET, allow_signature_bypass=True))
    assert (await lenient.handle(body, headers)).status_code == 200


@pytest.mark.asyncio
async def test_saved_settings_secret_takes_precedence(
    handler: IngestionHandler, settings_store: SettingsStore
) -> None:
    await settings_store.save(webhook_url="https://example.test/hook", webhook_secret="rotated")

    old = await handler.handle(*signed_request(score_payload()))
    new = await handler.handle(*signed_request(score_payload(), secret="rotated"))

    assert old.status_code == 401
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_storage_failure_maps_to_500(
    handler: IngestionHandler, monkeypatch: pytest.MonkeyPatch
) -> None:
    def disk_full(path, document) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(
        "wellbeing_webhooks.services.aggregate_store.write_json_atomic", disk_full
    )

    outcome = await handler.handle(*signed_request(score_payload()))

    assert outcome.status_code == 500
    assert outcome.state is IngestionState.FAILURE


@pytest.mark.asyncio
async def test_journal_tracks_processed_events(
    handler: IngestionHandler, journal: EventJournal
) -> None:
    await handler.handle(*signed_request(score_payload()))
    await handler.handle(
        *signed_request(biomarker_payload(), event_type="BiomarkerCreatedIntegrationEvent")
    )

    stats = journal.event_stats()
    assert stats["totalEvents"] == 2
    assert stats["eventTypes"]["ScoreCreatedIntegrationEvent"] == 1
    assert stats["scoreTypes"] == {"sleep": 1}
    assert stats["biomarkerCategories"] == {"activity": 1}
    assert len(journal.recent_events()) == 2
    assert handler.store.path.parent.joinpath("webhook-activity.log").exists()


@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected_not_failed(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    body, headers = signed_request(score_payload())
    headers["X-Signature"] = "café"

    outcome = await handler.handle(body, headers)

    assert outcome.status_code == 401
    assert outcome.state is IngestionState.REJECTED
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_partial_device_update_keeps_known_fields(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    await handler.handle(
        *signed_request(data_log_payload(), event_type="DataLogReceivedIntegrationEvent")
    )
    later = data_log_payload(
        receivedAtUtc="2024-05-02T08:00:00Z",
        dataLogs=[{"value": 45, "unit": "minute", "source": "com.google.fit"}],
    )

    await handler.handle(*signed_request(later, event_type="DataLogReceivedIntegrationEvent"))

    device = stored(store)["abc"]["device"]
    assert device == {
        "type": "iPhone",
        "source": "com.google.fit",
        "lastSeen": "2024-05-02T08:00:00Z",
    }


@pytest.mark.asyncio
async def test_first_device_fills_unknown_for_missing_fields(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    payload = data_log_payload(dataLogs=[{"value": 45, "source": "com.google.fit"}])

    await handler.handle(*signed_request(payload, event_type="DataLogReceivedIntegrationEvent"))

    device = stored(store)["abc"]["device"]
    assert device["type"] == "unknown"
    assert device["source"] == "com.google.fit"


@pytest.mark.asyncio
async def test_raw_sample_is_cut_on_characters(
    handler: IngestionHandler, journal: EventJournal
) -> None:
    # Two-byte characters: a byte cut at 500 would split one in half
    payload = {"type": "sleep", "score": 0.8, "note": "é" * 600}
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

    await handler.handle(*signed_request(body))

    sample = journal.recent_events()[-1]["rawPayloadSample"]
    assert len(sample) == 500
    assert "�" not in sample


@pytest.mark.asyncio
async def test_legacy_event_based_body_is_kept_unclassified(
    handler: IngestionHandler, store: AggregateStore
) -> None:
    payload = {
        "event": "score.updated",
        "timestamp": "2024-05-01T10:00:00Z",
        "data": {"externalId": "abc", "scores": {"sleep": {"value": 0.9}}},
    }

    outcome = await handler.handle(*signed_request(payload, event_type=None))

    assert outcome.status_code == 200
    assert outcome.body["kind"] == "unknown"
    record = stored(store)["abc"]
    assert record["scores"] == {}
    assert record["unclassified"] == {
        "unknown": {"externalId": "abc", "scores": {"sleep": {"value": 0.9}}}
    }
