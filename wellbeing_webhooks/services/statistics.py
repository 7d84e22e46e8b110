"""
Statistics over the whole aggregate store.

Produces the document the dashboard's overview cards read: coverage, averages
and value distribution per score type, biomarker and data-log inventories,
factor and archetype coverage, and a ranking of the best-populated profiles.
Works on raw stored JSON so it tolerates records written by older versions.
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import Field

from wellbeing_webhooks.domain.models import CamelModel

SCORE_TYPES = ("sleep", "activity", "mentalWellbeing", "readiness", "wellbeing")
ACTIVE_WINDOW = timedelta(hours=24)
TOP_PROFILES = 10
TOP_FACTORS = 3


def normalize_score_type(score_type: str) -> str:
    return "mentalWellbeing" if score_type == "mental_wellbeing" else score_type


def distribution_bucket(value: float) -> str:
    if value >= 0.8:
        return "excellent"
    if value >= 0.6:
        return "high"
    if value >= 0.4:
        return "medium"
    if value >= 0.2:
        return "low"
    return "minimal"


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


class DistributionBuckets(CamelModel):
    excellent: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    minimal: int = 0


class SummaryStats(CamelModel):
    total_profiles: int = 0
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data_completeness: int = Field(default=0, description="Percent of the 5 score types filled")
    active_profiles: int = Field(default=0, description="Profiles updated in the last 24h")


class ScoreStats(CamelModel):
    coverage: dict[str, int] = Field(default_factory=lambda: dict.fromkeys(SCORE_TYPES, 0))
    averages: dict[str, float | None] = Field(
        default_factory=lambda: dict.fromkeys(SCORE_TYPES, None)
    )
    distribution: dict[str, DistributionBuckets] = Field(
        default_factory=lambda: {t: DistributionBuckets() for t in SCORE_TYPES}
    )


class BiomarkerStats(CamelModel):
    total_types: int = 0
    coverage: dict[str, int] = Field(default_factory=dict)
    categories: dict[str, int] = Field(
        default_factory=lambda: {"sleep": 0, "activity": 0, "vitals": 0, "other": 0}
    )


class DataLogStats(CamelModel):
    total_entries: int = 0
    types: dict[str, int] = Field(default_factory=dict)
    sources: dict[str, int] = Field(default_factory=dict)


class FactorStats(CamelModel):
    coverage: dict[str, int] = Field(default_factory=dict)
    top_factors: dict[str, list[str]] = Field(default_factory=dict)


class ArchetypeStats(CamelModel):
    total_types: int = 0
    distribution: dict[str, int] = Field(default_factory=dict)


class ProfileRanking(CamelModel):
    external_id: str
    score_count: int
    biomarker_count: int
    last_updated: str


class ProfileStats(CamelModel):
    with_complete_data: int = 0
    with_partial_data: int = 0
    with_minimal_data: int = 0
    with_no_scores: int = 0
    top_profiles: list[ProfileRanking] = Field(default_factory=list)


class WebhookStats(CamelModel):
    summary: SummaryStats = Field(default_factory=SummaryStats)
    scores: ScoreStats = Field(default_factory=ScoreStats)
    biomarkers: BiomarkerStats = Field(default_factory=BiomarkerStats)
    data_logs: DataLogStats = Field(default_factory=DataLogStats)
    factors: FactorStats = Field(default_factory=FactorStats)
    archetypes: ArchetypeStats = Field(default_factory=ArchetypeStats)
    profiles: ProfileStats = Field(default_factory=ProfileStats)


def generate_stats(store: Mapping[str, Any], now: datetime | None = None) -> WebhookStats:
    """Compute the statistics document from a raw store snapshot."""
    now = now or datetime.now(UTC)
    profiles = [p for p in store.values() if isinstance(p, Mapping)]
    stats = WebhookStats(summary=SummaryStats(total_profiles=len(profiles), last_updated=now))
    if not profiles:
        return stats

    score_values: dict[str, list[float]] = {t: [] for t in SCORE_TYPES}
    rankings: list[ProfileRanking] = []

    for profile in profiles:
        updated = _parse_timestamp(profile.get("lastUpdated"))
        if updated is not None and updated > now - ACTIVE_WINDOW:
            stats.summary.active_profiles += 1

        score_count = 0
        for score_type, score in _as_mapping(profile.get("scores")).items():
            value = _as_mapping(score).get("value")
            if not isinstance(value, int | float) or isinstance(value, bool):
                continue
            score_count += 1
            normalized = normalize_score_type(score_type)
            if normalized in stats.scores.coverage:
                stats.scores.coverage[normalized] += 1
            score_values.setdefault(normalized, []).append(float(value))
            buckets = stats.scores.distribution.get(normalized)
            if buckets is not None:
                bucket = distribution_bucket(float(value))
                setattr(buckets, bucket, getattr(buckets, bucket) + 1)

        if score_count == 5:
            stats.profiles.with_complete_data += 1
        elif score_count >= 2:
            stats.profiles.with_partial_data += 1
        elif score_count == 1:
            stats.profiles.with_minimal_data += 1
        else:
            stats.profiles.with_no_scores += 1

        biomarkers = _as_mapping(profile.get("biomarkers"))
        for key, biomarker in biomarkers.items():
            stats.biomarkers.coverage[key] = stats.biomarkers.coverage.get(key, 0) + 1
            category = _as_mapping(biomarker).get("category")
            if category in ("sleep", "activity"):
                stats.biomarkers.categories[category] += 1
            elif category in ("vitals", "heart"):
                stats.biomarkers.categories["vitals"] += 1
            else:
                stats.biomarkers.categories["other"] += 1

        for log_type, batches in _as_mapping(profile.get("dataLogs")).items():
            stats.data_logs.types[log_type] = stats.data_logs.types.get(log_type, 0) + 1
            if not isinstance(batches, list):
                continue
            for batch in batches:
                logs = _as_mapping(batch).get("logs")
                if not isinstance(logs, list):
                    continue
                stats.data_logs.total_entries += len(logs)
                for log in logs:
                    source = _as_mapping(log).get("source")
                    if source:
                        stats.data_logs.sources[source] = stats.data_logs.sources.get(source, 0) + 1

        for score_type, factors in _as_mapping(profile.get("factors")).items():
            if not isinstance(factors, list) or not factors:
                continue
            normalized = normalize_score_type(score_type)
            stats.factors.coverage[normalized] = stats.factors.coverage.get(normalized, 0) + 1
            names = stats.factors.top_factors.setdefault(normalized, [])
            for factor in factors:
                name = _as_mapping(factor).get("name")
                if name and name not in names:
                    names.append(name)

        for name, archetype in _as_mapping(profile.get("archetypes")).items():
            if _as_mapping(archetype).get("value"):
                stats.archetypes.distribution[name] = stats.archetypes.distribution.get(name, 0) + 1

        if score_count > 0 or biomarkers:
            rankings.append(
                ProfileRanking(
                    external_id=profile.get("externalId") or "unknown",
                    score_count=score_count,
                    biomarker_count=len(biomarkers),
                    last_updated=profile.get("lastUpdated") or "",
                )
            )

    for score_type, values in score_values.items():
        if values:
            stats.scores.averages[score_type] = round(sum(values) / len(values), 2)

    filled = sum(stats.scores.coverage.values())
    stats.summary.data_completeness = round(filled / (len(profiles) * len(SCORE_TYPES)) * 100)

    # Scores weigh ten times more than biomarkers
    rankings.sort(key=lambda r: r.score_count + r.biomarker_count / 10, reverse=True)
    stats.profiles.top_profiles = rankings[:TOP_PROFILES]

    stats.factors.top_factors = {
        score_type: names[:TOP_FACTORS] for score_type, names in stats.factors.top_factors.items()
    }
    stats.biomarkers.total_types = len(stats.biomarkers.coverage)
    stats.archetypes.total_types = len(stats.archetypes.distribution)
    return stats
