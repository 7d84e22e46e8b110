"""
Webhook Data Reporter
=====================

Read-only inspection of the files the ingestion service writes.

COMMANDS:
- profiles: inventory of score/biomarker/factor/archetype/data-log types
- events:   per-type distributions plus captured event statistics
- stats:    the statistics document served by the API, as JSON

USAGE:
    wellbeing-webhooks-report [--data-dir DIR] COMMAND
"""

import argparse
import asyncio
import json
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wellbeing_webhooks.config import StorageConfig, get_config
from wellbeing_webhooks.reporting.analysis import (
    build_distribution,
    build_inventory,
    summarize_recent_events,
)
from wellbeing_webhooks.services.aggregate_store import AggregateStore
from wellbeing_webhooks.services.event_journal import EventJournal
from wellbeing_webhooks.services.statistics import generate_stats

console = Console()


def _load_store(storage: StorageConfig) -> dict:
    store = AggregateStore(storage.aggregate_path, storage.backup_path)
    return asyncio.run(store.snapshot())


def _bullet_list(title: str, items: Iterable[str], empty: str = "none found") -> None:
    items = sorted(items)
    console.print(f"\n[bold]{title} ({len(items)})[/bold]")
    if not items:
        console.print(f"  [yellow]{empty}[/yellow]")
    for item in items:
        console.print(f"  • {item}")


def _counts_table(title: str, counts: Iterable[tuple[str, int]], unit: str) -> Table:
    table = Table(title=title)
    table.add_column("Type", style="cyan")
    table.add_column(unit.capitalize(), style="green", justify="right")
    for name, count in counts:
        table.add_row(name, str(count))
    return table


def report_profiles(storage: StorageConfig) -> int:
    inventory = build_inventory(_load_store(storage))

    console.print(Panel("🔍 Webhook Data Inventory", style="blue"))
    console.print(f"Total Profiles: {inventory.profile_count}")
    console.print(f"Profiles with Archetypes: {inventory.archetype_profiles}")
    console.print(f"Profiles with DataLogs: {inventory.data_log_profiles}")

    _bullet_list("🎯 Score Types", inventory.score_types)
    _bullet_list("🧬 Biomarker Types", inventory.biomarker_types)
    _bullet_list("📈 Factor Types", inventory.factor_names)
    _bullet_list("🎭 Archetypes", inventory.archetypes)
    _bullet_list("📝 Data Log Types", inventory.data_log_types, empty="limited data")
    _bullet_list("🔑 Unique Data Fields", inventory.unique_fields)

    real_users = inventory.real_user_ids
    if real_users:
        console.print(f"\n👤 Real user profiles detected: {len(real_users)}")
        console.print(f"Examples: {', '.join(real_users[:3])}")
    return 0


def report_events(storage: StorageConfig) -> int:
    distribution = build_distribution(_load_store(storage))
    journal = EventJournal(storage)

    console.print(Panel("📊 Webhook Event Analysis", style="blue"))
    console.print(f"Total Profiles: {distribution.profile_count}")

    table = Table(title="Score Types Distribution")
    table.add_column("Score Type", style="cyan")
    table.add_column("Profiles", style="green", justify="right")
    table.add_column("Share", style="yellow", justify="right")
    for score_type, count in distribution.score_types.most_common():
        table.add_row(score_type, str(count), f"{distribution.score_share(score_type):.1f}%")
    console.print(table)

    console.print(
        f"\n{len(distribution.multi_score_profiles)} profiles have 2+ score types"
    )
    for external_id, score_types in distribution.multi_score_profiles[:3]:
        console.print(f"  {external_id}: {', '.join(score_types)}")

    console.print(
        _counts_table(
            "Biomarker Types (Top 10)", distribution.biomarker_types.most_common(10), "profiles"
        )
    )
    if distribution.archetype_types:
        console.print(
            _counts_table(
                "Archetype Types", distribution.archetype_types.most_common(), "profiles"
            )
        )

    stats = journal.event_stats()
    console.print(Panel("📈 Event Statistics", style="blue"))
    console.print(f"Total Events Processed: {stats.get('totalEvents', 0)}")
    console.print(f"Last Updated: {stats.get('lastUpdated') or 'Never'}")
    for bucket, title in (
        ("eventTypes", "Event Types"),
        ("scoreTypes", "Score Types Received"),
        ("biomarkerCategories", "Biomarker Categories"),
    ):
        counts = stats.get(bucket) or {}
        if counts:
            ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
            console.print(_counts_table(title, ranked, "events"))

    recent = summarize_recent_events(journal.recent_events())
    console.print(
        f"\nCaptured events: {recent['captured']} (parse errors: {recent['parseErrors']})"
    )
    return 0


def report_stats(storage: StorageConfig) -> int:
    stats = generate_stats(_load_store(storage))
    console.print_json(json.dumps(stats.model_dump(mode="json", by_alias=True)))
    return 0


COMMANDS = {
    "profiles": report_profiles,
    "events": report_events,
    "stats": report_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wellbeing-webhooks-report",
        description="Inspect the webhook aggregate store (read-only).",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the store files (defaults to WEBHOOK_DATA_DIR)",
    )
    parser.add_argument("command", choices=sorted(COMMANDS), help="Report to print")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    storage = get_config().storage
    if args.data_dir is not None:
        storage = storage.model_copy(update={"data_dir": args.data_dir})
    return COMMANDS[args.command](storage)


if __name__ == "__main__":
    raise SystemExit(main())
