"""Tests for the store-wide statistics document."""

from datetime import UTC, datetime

import pytest

from wellbeing_webhooks.services.statistics import distribution_bucket, generate_stats

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=UTC)

STORE = {
    "abc": {
        "externalId": "abc",
        "lastUpdated": "2024-05-02T06:00:00Z",
        "scores": {
            "sleep": {"value": 0.85},
            "activity": {"value": 0.5},
            "mental_wellbeing": {"value": 0.3},
        },
        "factors": {
            "sleep": [{"name": "sleep_duration"}, {"name": "sleep_regularity"}],
        },
        "biomarkers": {
            "activity_steps": {"category": "activity", "type": "steps", "value": 8000},
            "vitals_heart_rate": {"category": "vitals", "type": "heart_rate", "value": 60},
        },
        "dataLogs": {
            "sleep_sleep_stage_deep": [
                {"receivedAt": "2024-05-01T08:00:00Z", "logs": [{"source": "watch"}, {}]}
            ]
        },
        "archetypes": {"activity_level": {"value": "highly_active"}},
    },
    "def": {
        "externalId": "def",
        "lastUpdated": "2024-04-01T00:00:00Z",
        "scores": {"sleep": {"value": 0.45}},
    },
    "ghi": {"externalId": "ghi"},
}


@pytest.mark.parametrize(
    "value,bucket",
    [(0.95, "excellent"), (0.8, "excellent"), (0.6, "high"), (0.4, "medium"), (0.2, "low"), (0.1, "minimal")],
)
def test_distribution_bucket(value: float, bucket: str) -> None:
    assert distribution_bucket(value) == bucket


def test_empty_store() -> None:
    stats = generate_stats({}, now=NOW)
    assert stats.summary.total_profiles == 0
    assert stats.profiles.top_profiles == []


def test_summary_and_scores() -> None:
    stats = generate_stats(STORE, now=NOW)

    assert stats.summary.total_profiles == 3
    assert stats.summary.active_profiles == 1
    # 4 of 15 possible score slots filled
    assert stats.summary.data_completeness == 27
    assert stats.scores.coverage["sleep"] == 2
    assert stats.scores.coverage["mentalWellbeing"] == 1
    assert stats.scores.averages["sleep"] == 0.65
    assert stats.scores.averages["readiness"] is None
    assert stats.scores.distribution["sleep"].excellent == 1
    assert stats.scores.distribution["sleep"].medium == 1


def test_profile_buckets_and_ranking() -> None:
    stats = generate_stats(STORE, now=NOW)

    assert stats.profiles.with_partial_data == 1
    assert stats.profiles.with_minimal_data == 1
    assert stats.profiles.with_no_scores == 1
    assert [p.external_id for p in stats.profiles.top_profiles] == ["abc", "def"]


def test_other_categories() -> None:
    stats = generate_stats(STORE, now=NOW)

    assert stats.biomarkers.total_types == 2
    assert stats.biomarkers.categories["activity"] == 1
    assert stats.biomarkers.categories["vitals"] == 1
    assert stats.data_logs.total_entries == 2
    assert stats.data_logs.sources == {"watch": 1}
    assert stats.factors.top_factors["sleep"] == ["sleep_duration", "sleep_regularity"]
    assert stats.archetypes.distribution == {"activity_level": 1}


def test_serializes_with_camel_case_keys() -> None:
    document = generate_stats(STORE, now=NOW).model_dump(mode="json", by_alias=True)

    assert "totalProfiles" in document["summary"]
    assert "dataLogs" in document
    assert "topProfiles" in document["profiles"]
