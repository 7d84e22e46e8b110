"""
Side-channel bookkeeping of webhook deliveries for later analysis.

Three files, all best-effort: a failure here is logged and never fails the
webhook request.
- event analysis: the most recent captured event records (bounded)
- event stats: counters per event type, score type and biomarker category
- activity log: one ``<timestamp> | <json>`` line per processed delivery
"""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import structlog

from wellbeing_webhooks.config import StorageConfig
from wellbeing_webhooks.domain.models import WebhookEventRecord
from wellbeing_webhooks.services.aggregate_store import read_json_document, write_json_atomic

logger = structlog.get_logger(__name__)

# Captured raw bodies are truncated to this many characters
RAW_SAMPLE_CHARS = 500


def empty_event_stats() -> dict[str, Any]:
    return {
        "totalEvents": 0,
        "eventTypes": {},
        "scoreTypes": {},
        "biomarkerCategories": {},
        "lastUpdated": None,
    }


def describe_payload(payload: Any) -> dict[str, Any]:
    """Structure summary of a parsed body, without copying its values."""
    if not isinstance(payload, dict):
        return {"jsonType": type(payload).__name__}
    return {
        "hasData": bool(payload.get("data")),
        "hasType": bool(payload.get("type")),
        "hasScore": payload.get("score") is not None,
        "hasCategory": bool(payload.get("category")),
        "hasDataLogs": bool(payload.get("dataLogs")),
        "keys": list(payload)[:20],
    }


class EventJournal:
    """Appends delivery records and counters next to the aggregate store."""

    def __init__(self, storage: StorageConfig) -> None:
        self.storage = storage
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="event_journal")

    async def capture(self, record: WebhookEventRecord) -> None:
        """Keep the record among the last ``event_history_limit`` captured events."""
        async with self._lock:
            try:
                await asyncio.to_thread(self._capture_sync, record)
            except (OSError, ValueError) as e:
                self.logger.warning("event_capture_failed", error=str(e))

    def _capture_sync(self, record: WebhookEventRecord) -> None:
        path = self.storage.event_analysis_path
        events = read_json_document(path).unwrap_or([]) if path.exists() else []
        if not isinstance(events, list):
            events = []
        events.append(record.to_json_dict())
        write_json_atomic(path, events[-self.storage.event_history_limit :])

    async def track(
        self,
        event_type: str,
        score_type: str | None = None,
        biomarker_category: str | None = None,
    ) -> dict[str, Any]:
        """Bump the per-type counters; returns the updated stats document."""
        async with self._lock:
            try:
                return await asyncio.to_thread(
                    self._track_sync, event_type, score_type, biomarker_category
                )
            except (OSError, ValueError) as e:
                self.logger.warning("event_tracking_failed", error=str(e))
                return empty_event_stats()

    def _track_sync(
        self, event_type: str, score_type: str | None, biomarker_category: str | None
    ) -> dict[str, Any]:
        path = self.storage.event_stats_path
        stats = read_json_document(path).unwrap_or(None) if path.exists() else None
        if not isinstance(stats, dict):
            stats = empty_event_stats()

        stats["totalEvents"] = stats.get("totalEvents", 0) + 1
        for bucket, key in (
            ("eventTypes", event_type),
            ("scoreTypes", score_type),
            ("biomarkerCategories", biomarker_category),
        ):
            if key:
                counts = stats.setdefault(bucket, {})
                counts[key] = counts.get(key, 0) + 1
        stats["lastUpdated"] = datetime.now(UTC).isoformat()

        write_json_atomic(path, stats)

        if stats["totalEvents"] % 10 == 0:
            top_type = max(stats["eventTypes"].items(), key=lambda item: item[1], default=None)
            self.logger.info(
                "event_statistics_summary",
                total=stats["totalEvents"],
                types=len(stats["eventTypes"]),
                score_types=len(stats["scoreTypes"]),
                top_event_type=top_type,
            )
        return stats

    async def log_activity(self, entry: dict[str, Any]) -> None:
        """Append one line to the activity log."""
        timestamp = datetime.now(UTC).isoformat()
        line = f"{timestamp} | {json.dumps(entry, default=str)}\n"
        try:
            await asyncio.to_thread(self._append_line, line)
        except OSError as e:
            self.logger.warning("activity_log_failed", error=str(e))

    def _append_line(self, line: str) -> None:
        path = self.storage.activity_log_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(line)

    def recent_events(self) -> list[dict[str, Any]]:
        path = self.storage.event_analysis_path
        events = read_json_document(path).unwrap_or([]) if path.exists() else []
        return events if isinstance(events, list) else []

    def event_stats(self) -> dict[str, Any]:
        path = self.storage.event_stats_path
        stats = read_json_document(path).unwrap_or(None) if path.exists() else None
        return stats if isinstance(stats, dict) else empty_event_stats()
