"""
Read-only analysis of the persisted aggregate store.

Pure functions over a raw store snapshot, so they work on whatever JSON the
store file holds, including records written by older versions.
"""

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

# Subjects created by the provider's sample/test tooling rather than real users
SYNTHETIC_ID_PREFIXES = ("SampleProfile-", "TestProfile-")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass
class ProfileInventory:
    """Which data points exist anywhere in the store."""

    profile_count: int = 0
    archetype_profiles: int = 0
    data_log_profiles: int = 0
    score_types: set[str] = field(default_factory=set)
    biomarker_types: set[str] = field(default_factory=set)
    factor_names: set[str] = field(default_factory=set)
    archetypes: set[str] = field(default_factory=set)
    data_log_types: set[str] = field(default_factory=set)
    unique_fields: set[str] = field(default_factory=set)
    external_ids: set[str] = field(default_factory=set)

    @property
    def real_user_ids(self) -> list[str]:
        return sorted(i for i in self.external_ids if not i.startswith(SYNTHETIC_ID_PREFIXES))


@dataclass
class EventDistribution:
    """How many subjects carry each score, biomarker and archetype type."""

    profile_count: int = 0
    score_types: Counter[str] = field(default_factory=Counter)
    biomarker_types: Counter[str] = field(default_factory=Counter)
    archetype_types: Counter[str] = field(default_factory=Counter)
    multi_score_profiles: list[tuple[str, list[str]]] = field(default_factory=list)

    def score_share(self, score_type: str) -> float:
        """Percentage of subjects that have the given score type."""
        if not self.profile_count:
            return 0.0
        return self.score_types[score_type] / self.profile_count * 100


def build_inventory(store: Mapping[str, Any]) -> ProfileInventory:
    inventory = ProfileInventory()

    for profile in store.values():
        if not isinstance(profile, Mapping):
            continue
        inventory.profile_count += 1

        if profile.get("externalId"):
            inventory.external_ids.add(profile["externalId"])

        for score_type, score in _mapping(profile.get("scores")).items():
            inventory.score_types.add(score_type)
            inventory.unique_fields.update(f"score.{key}" for key in _mapping(score))

        for biomarker in _mapping(profile.get("biomarkers")).values():
            biomarker = _mapping(biomarker)
            if biomarker.get("type"):
                category = biomarker.get("category") or "unknown"
                inventory.biomarker_types.add(f"{category}.{biomarker['type']}")
            inventory.unique_fields.update(f"biomarker.{key}" for key in biomarker)

        for factors in _mapping(profile.get("factors")).values():
            if isinstance(factors, list):
                inventory.factor_names.update(
                    f["name"] for f in factors if isinstance(f, Mapping) and f.get("name")
                )

        archetypes = _mapping(profile.get("archetypes"))
        if archetypes:
            inventory.archetype_profiles += 1
            inventory.archetypes.update(archetypes)

        data_logs = _mapping(profile.get("dataLogs"))
        if data_logs:
            inventory.data_log_profiles += 1
            inventory.data_log_types.update(data_logs)

    return inventory


def build_distribution(store: Mapping[str, Any]) -> EventDistribution:
    distribution = EventDistribution()

    for key, profile in store.items():
        if not isinstance(profile, Mapping):
            continue
        distribution.profile_count += 1

        scores = _mapping(profile.get("scores"))
        distribution.score_types.update(scores.keys())
        if len(scores) > 1:
            distribution.multi_score_profiles.append(
                (profile.get("externalId") or key, list(scores))
            )

        for biomarker in _mapping(profile.get("biomarkers")).values():
            biomarker = _mapping(biomarker)
            distribution.biomarker_types[f"{biomarker.get('category')}_{biomarker.get('type')}"] += 1

        distribution.archetype_types.update(_mapping(profile.get("archetypes")).keys())

    return distribution


def summarize_recent_events(events: list[Any]) -> dict[str, Any]:
    """Event-type counts and parse failures among the captured events."""
    by_type: Counter[str] = Counter()
    parse_errors = 0
    for event in events:
        event = _mapping(event)
        by_type[event.get("eventType") or "unknown"] += 1
        if event.get("parseError"):
            parse_errors += 1
    return {"captured": len(events), "eventTypes": dict(by_type), "parseErrors": parse_errors}
