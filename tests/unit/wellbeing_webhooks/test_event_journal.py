"""Tests for the best-effort event journal."""

import json

import pytest

from wellbeing_webhooks.config import StorageConfig
from wellbeing_webhooks.domain.models import EventKind, WebhookEventRecord
from wellbeing_webhooks.services.event_journal import EventJournal, describe_payload


def test_describe_payload_summarizes_structure() -> None:
    summary = describe_payload({"type": "sleep", "score": 0, "dataLogs": []})

    assert summary["hasType"] is True
    assert summary["hasScore"] is True
    assert summary["hasDataLogs"] is False
    assert summary["keys"] == ["type", "score", "dataLogs"]
    assert describe_payload([1, 2]) == {"jsonType": "list"}


@pytest.mark.asyncio
async def test_capture_keeps_only_recent_events(tmp_path) -> None:
    journal = EventJournal(StorageConfig(data_dir=tmp_path, event_history_limit=3))

    for i in range(5):
        await journal.capture(
            WebhookEventRecord(event_type=f"Event{i}", external_id="abc", kind=EventKind.UNKNOWN)
        )

    events = journal.recent_events()
    assert [e["eventType"] for e in events] == ["Event2", "Event3", "Event4"]


@pytest.mark.asyncio
async def test_track_counts_by_type(journal: EventJournal) -> None:
    await journal.track("ScoreCreatedIntegrationEvent", score_type="sleep")
    await journal.track("ScoreCreatedIntegrationEvent", score_type="activity")
    stats = await journal.track("BiomarkerCreatedIntegrationEvent", biomarker_category="sleep")

    assert stats["totalEvents"] == 3
    assert stats["eventTypes"] == {
        "ScoreCreatedIntegrationEvent": 2,
        "BiomarkerCreatedIntegrationEvent": 1,
    }
    assert stats["scoreTypes"] == {"sleep": 1, "activity": 1}
    assert stats["biomarkerCategories"] == {"sleep": 1}
    assert stats["lastUpdated"]
    assert journal.event_stats() == stats


@pytest.mark.asyncio
async def test_activity_log_lines(journal: EventJournal, storage: StorageConfig) -> None:
    await journal.log_activity({"event": "ScoreCreatedIntegrationEvent", "success": True})
    await journal.log_activity({"event": "error", "success": False})

    lines = storage.activity_log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    timestamp, entry = lines[0].split(" | ", 1)
    assert timestamp
    assert json.loads(entry) == {"event": "ScoreCreatedIntegrationEvent", "success": True}


@pytest.mark.asyncio
async def test_corrupt_files_are_replaced_not_fatal(
    journal: EventJournal, storage: StorageConfig
) -> None:
    storage.event_stats_path.write_text("garbage", encoding="utf-8")
    storage.event_analysis_path.write_text("{}", encoding="utf-8")

    stats = await journal.track("FooEvent")
    await journal.capture(WebhookEventRecord(event_type="FooEvent"))

    assert stats["totalEvents"] == 1
    assert len(journal.recent_events()) == 1


def test_readers_default_when_nothing_written(journal: EventJournal) -> None:
    assert journal.recent_events() == []
    assert journal.event_stats()["totalEvents"] == 0
