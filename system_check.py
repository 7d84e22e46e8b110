"""
End-to-end check of the webhook ingestion pipeline.

This script exercises:
1. Configuration loading and validation
2. Signed deliveries of every event kind through the ingestion handler
3. Rejections: bad signature, malformed JSON, missing subject id
4. Replay idempotence
5. Statistics over the resulting store

Everything runs against a temporary data directory; nothing in WEBHOOK_DATA_DIR
is touched.

Run with: uv run python system_check.py
"""

import asyncio
import json
import tempfile
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wellbeing_webhooks.config import (
    StorageConfig,
    WebhookConfig,
    get_config,
    print_config_summary,
    validate_config,
)
from wellbeing_webhooks.services import (
    AggregateStore,
    EventJournal,
    IngestionHandler,
    compute_signature,
    generate_stats,
)

console = Console()

SECRET = "system-check-secret"

DELIVERIES = [
    (
        "ScoreCreatedIntegrationEvent",
        "demo-user-1",
        {
            "type": "sleep",
            "state": "high",
            "score": 0.82,
            "factors": [{"name": "sleep_duration", "value": 470, "goal": 480}],
            "createdAtUtc": "2024-05-01T06:00:00Z",
        },
    ),
    (
        "ScoreCreatedIntegrationEvent",
        "demo-user-1",
        {
            "type": "activity",
            "state": "medium",
            "score": 0.55,
            "createdAtUtc": "2024-05-01T06:05:00Z",
        },
    ),
    (
        "BiomarkerCreatedIntegrationEvent",
        "demo-user-1",
        {
            "category": "activity",
            "type": "steps",
            "value": "8412",
            "unit": "count",
            "createdAtUtc": "2024-05-01T07:00:00Z",
        },
    ),
    (
        "DataLogReceivedIntegrationEvent",
        "demo-user-2",
        {
            "logType": "sleep",
            "dataType": "sleep_stage_deep",
            "receivedAtUtc": "2024-05-01T08:00:00Z",
            "dataLogs": [{"value": 62, "unit": "minute", "source": "watch", "deviceType": "Watch"}],
        },
    ),
    (
        "ArchetypeCreatedIntegrationEvent",
        "demo-user-2",
        {"name": "sleep_pattern", "value": "consistent_early_riser", "dataType": "ordinal"},
    ),
    ("SomeFutureIntegrationEvent", "demo-user-2", {"anything": True}),
]


def _request(event_type: str | None, external_id: str | None, body: bytes, secret: str = SECRET):
    headers = {"Content-Type": "application/json", "X-Signature": compute_signature(body, secret)}
    if event_type:
        headers["X-Event-Type"] = event_type
    if external_id:
        headers["X-External-Id"] = external_id
    return body, headers


def _handler(data_dir: Path) -> IngestionHandler:
    storage = StorageConfig(data_dir=data_dir)
    store = AggregateStore(storage.aggregate_path, storage.backup_path)
    return IngestionHandler(store, WebhookConfig(secret=SECRET), EventJournal(storage))


async def check_configuration() -> bool:
    """Check configuration loading and validation."""
    console.print(Panel("🔧 Checking Configuration", style="blue"))

    try:
        validate_config()
        config = get_config()
        if not config.webhook.secret:
            console.print(
                "⚠️  SAHHA_WEBHOOK_SECRET not set: the server would accept unsigned webhooks",
                style="yellow",
            )
        print_config_summary()
        return True
    except Exception as e:
        console.print(f"❌ Configuration check failed: {e}", style="red")
        return False


async def check_deliveries(data_dir: Path) -> bool:
    """Every event kind lands in the right aggregate category."""
    console.print(Panel("📥 Checking Deliveries", style="blue"))

    handler = _handler(data_dir)
    table = Table(title="Deliveries")
    table.add_column("Event Type", style="cyan")
    table.add_column("Subject", style="magenta")
    table.add_column("Status", style="green")
    table.add_column("Kind", style="yellow")

    all_ok = True
    for event_type, external_id, payload in DELIVERIES:
        body = json.dumps(payload).encode("utf-8")
        outcome = await handler.handle(*_request(event_type, external_id, body))
        all_ok = all_ok and outcome.ok
        table.add_row(
            event_type, external_id, str(outcome.status_code), outcome.body.get("kind", "-")
        )

    console.print(table)
    snapshot = await handler.store.snapshot()
    for external_id, record in snapshot.items():
        console.print(f"  {external_id}: {json.dumps(record.get('scores', {}))}")
    return all_ok and set(snapshot) == {"demo-user-1", "demo-user-2"}


async def check_rejections(data_dir: Path) -> bool:
    """Bad deliveries are refused and leave the store untouched."""
    console.print(Panel("🛡️ Checking Rejections", style="blue"))

    handler = _handler(data_dir)
    before = handler.store.path.read_bytes() if handler.store.path.exists() else b""
    good_body = json.dumps({"type": "sleep", "score": 0.1}).encode("utf-8")

    cases = [
        ("bad signature", _request("ScoreCreatedIntegrationEvent", "x", good_body, "wrong"), 401),
        ("malformed JSON", _request("ScoreCreatedIntegrationEvent", "x", b"{nope"), 400),
        ("no subject id", _request("ScoreCreatedIntegrationEvent", None, good_body), 400),
    ]

    passed = True
    for name, (body, headers), expected in cases:
        outcome = await handler.handle(body, headers)
        ok = outcome.status_code == expected
        passed = passed and ok
        console.print(
            f"{'✅' if ok else '❌'} {name}: {outcome.status_code} ({outcome.body.get('details')})",
            style="green" if ok else "red",
        )

    after = handler.store.path.read_bytes() if handler.store.path.exists() else b""
    if after != before:
        console.print("❌ Store changed after rejected deliveries", style="red")
        return False
    return passed


async def check_replay(data_dir: Path) -> bool:
    """Replaying the same delivery leaves the store byte-identical."""
    console.print(Panel("🔁 Checking Replay", style="blue"))

    handler = _handler(data_dir)
    event_type, external_id, payload = DELIVERIES[3]
    request = _request(event_type, external_id, json.dumps(payload).encode("utf-8"))

    await handler.handle(*request)
    before = handler.store.path.read_bytes()
    await handler.handle(*request)

    if handler.store.path.read_bytes() != before:
        console.print("❌ Replay changed the store", style="red")
        return False
    console.print("✅ Replay was a no-op", style="green")
    return True


async def check_statistics(data_dir: Path) -> bool:
    """Statistics reflect what was ingested."""
    console.print(Panel("📊 Checking Statistics", style="blue"))

    store = _handler(data_dir).store
    stats = generate_stats(await store.snapshot())

    summary = Table(title="Store Summary")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Profiles", str(stats.summary.total_profiles))
    summary.add_row("Data Completeness", f"{stats.summary.data_completeness}%")
    summary.add_row("Sleep Average", str(stats.scores.averages["sleep"]))
    summary.add_row("Biomarker Types", str(stats.biomarkers.total_types))
    summary.add_row("Data Log Entries", str(stats.data_logs.total_entries))
    summary.add_row("Archetypes", ", ".join(stats.archetypes.distribution) or "-")
    console.print(summary)
    return stats.summary.total_profiles == 2


async def run_all_checks() -> None:
    """Run all system checks."""
    console.print(Panel("🧪 Wellbeing Webhook Ingestion - System Check", style="bold blue"))

    with tempfile.TemporaryDirectory(prefix="webhook-check-") as tmp:
        data_dir = Path(tmp)
        checks = [
            ("Configuration", check_configuration()),
            ("Deliveries", check_deliveries(data_dir)),
            ("Rejections", check_rejections(data_dir)),
            ("Replay", check_replay(data_dir)),
            ("Statistics", check_statistics(data_dir)),
        ]

        results = {}
        for name, check in checks:
            results[name] = await check
            console.print()

    table = Table(title="System Check Results")
    table.add_column("Check", style="cyan")
    table.add_column("Result", style="white")
    for name, ok in results.items():
        table.add_row(name, "✅ PASS" if ok else "❌ FAIL")
    console.print(table)

    passed = sum(results.values())
    style = "bold green" if passed == len(results) else "bold red"
    console.print(f"\n{passed}/{len(results)} checks passed", style=style)


if __name__ == "__main__":
    asyncio.run(run_all_checks())
