"""Administrative webhook settings persisted to their own JSON file."""

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field, ValidationError

from wellbeing_webhooks.domain.errors import StorageError
from wellbeing_webhooks.domain.models import CamelModel
from wellbeing_webhooks.services.aggregate_store import read_json_document, write_json_atomic

logger = structlog.get_logger(__name__)

SECRET_MASK = "••••••••"


class WebhookSettings(CamelModel):
    """Webhook registration details entered through the admin endpoint."""

    configured: bool = False
    webhook_url: str | None = None
    webhook_secret: str | None = Field(default=None, repr=False)
    tunnel_url: str | None = None
    created_at: datetime | None = None

    def public_view(self, profile_count: int) -> dict[str, Any]:
        """Settings as shown to the dashboard: the secret never leaves masked."""
        return {
            "configured": self.configured,
            "webhookUrl": self.webhook_url,
            "tunnelUrl": self.tunnel_url,
            "secret": SECRET_MASK if self.webhook_secret else None,
            "profileCount": profile_count,
        }


class SettingsStore:
    """Loads and saves WebhookSettings; a missing or unreadable file means unconfigured."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.logger = logger.bind(component="settings_store", path=str(path))

    def load_sync(self) -> WebhookSettings:
        if not self.path.exists():
            return WebhookSettings()
        result = read_json_document(self.path)
        if result.is_err():
            self.logger.warning("settings_unreadable", error=str(result.unwrap_err()))
            return WebhookSettings()
        try:
            return WebhookSettings.model_validate(result.unwrap())
        except ValidationError as e:
            self.logger.warning("settings_invalid", error=str(e))
            return WebhookSettings()

    async def load(self) -> WebhookSettings:
        return await asyncio.to_thread(self.load_sync)

    async def save(
        self,
        webhook_url: str | None,
        webhook_secret: str | None,
        tunnel_url: str | None = None,
    ) -> WebhookSettings:
        settings = WebhookSettings(
            configured=True,
            webhook_url=webhook_url,
            webhook_secret=webhook_secret or None,
            tunnel_url=tunnel_url,
            created_at=datetime.now(UTC),
        )
        try:
            await asyncio.to_thread(write_json_atomic, self.path, settings.to_json_dict())
        except OSError as e:
            self.logger.exception("settings_write_failed", error=str(e))
            raise StorageError("Failed to save configuration") from e

        self.logger.info(
            "settings_saved",
            webhook_url=webhook_url,
            secret_configured=settings.webhook_secret is not None,
        )
        return settings
