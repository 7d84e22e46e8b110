"""Shared fixtures: a throwaway data directory and the services built on it."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from payloads import SECRET

from wellbeing_webhooks.config import StorageConfig, WebhookConfig, get_config
from wellbeing_webhooks.services.aggregate_store import AggregateStore
from wellbeing_webhooks.services.event_journal import EventJournal
from wellbeing_webhooks.services.ingestion import IngestionHandler
from wellbeing_webhooks.services.settings_store import SettingsStore


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensure get_config cache is cleared before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def storage(tmp_path: Path) -> StorageConfig:
    return StorageConfig(data_dir=tmp_path)


@pytest.fixture
def store(storage: StorageConfig) -> AggregateStore:
    return AggregateStore(storage.aggregate_path, storage.backup_path)


@pytest.fixture
def journal(storage: StorageConfig) -> EventJournal:
    return EventJournal(storage)


@pytest.fixture
def settings_store(storage: StorageConfig) -> SettingsStore:
    return SettingsStore(storage.settings_path)


@pytest.fixture
def handler(
    store: AggregateStore, journal: EventJournal, settings_store: SettingsStore
) -> IngestionHandler:
    """Handler with a configured secret, so every delivery must be signed."""
    return IngestionHandler(store, WebhookConfig(secret=SECRET), journal, settings_store)
