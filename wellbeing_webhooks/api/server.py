"""
Webhook Ingestion API Server
============================

Endpoints:
- POST   /api/sahha/webhook          -> ingest one provider delivery
- GET    /api/sahha/webhook          -> all aggregates, or one via ?externalId=
- DELETE /api/sahha/webhook          -> clear the store (?confirm=true)
- GET    /api/sahha/webhook/stats    -> statistics over the store
- GET    /api/sahha/config           -> webhook settings (secret masked)
- POST   /api/sahha/config           -> save webhook settings
- GET    /health

Usage:
    uvicorn wellbeing_webhooks.api.server:create_app --factory --reload
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field

from wellbeing_webhooks import __version__
from wellbeing_webhooks.config import AppConfig, get_config
from wellbeing_webhooks.domain.errors import WebhookError
from wellbeing_webhooks.domain.models import CamelModel
from wellbeing_webhooks.log_config import configure_logging
from wellbeing_webhooks.services.aggregate_store import AggregateStore
from wellbeing_webhooks.services.event_journal import EventJournal
from wellbeing_webhooks.services.ingestion import IngestionHandler
from wellbeing_webhooks.services.settings_store import SettingsStore
from wellbeing_webhooks.services.statistics import generate_stats

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Everything the routes need, built once per application."""

    config: AppConfig
    store: AggregateStore
    journal: EventJournal
    settings: SettingsStore
    ingestion: IngestionHandler

    @classmethod
    def from_config(cls, config: AppConfig) -> "Services":
        storage = config.storage
        store = AggregateStore(storage.aggregate_path, storage.backup_path)
        journal = EventJournal(storage)
        settings = SettingsStore(storage.settings_path)
        return cls(
            config=config,
            store=store,
            journal=journal,
            settings=settings,
            ingestion=IngestionHandler(store, config.webhook, journal, settings),
        )


class ConfigUpdateRequest(CamelModel):
    webhook_url: str | None = Field(default=None, description="Public URL registered upstream")
    webhook_secret: str | None = Field(default=None, description="Shared signing secret")
    tunnel_url: str | None = None


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Application factory; tests pass their own config pointing at a temp data dir."""
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(config.logging)
        config.storage.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "webhook_api_started",
            environment=config.environment,
            data_dir=str(config.storage.data_dir),
            signature_verification=bool(config.webhook.secret),
        )
        yield
        logger.info("webhook_api_stopped")

    app = FastAPI(
        title="Wellbeing Webhook Ingestion API",
        version=__version__,
        description="Receives provider webhooks and serves the merged subject aggregates",
        lifespan=lifespan,
    )
    app.state.services = Services.from_config(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(WebhookError)
    async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.reason, "details": exc.details},
        )

    @app.get("/health")
    async def health_check():
        return {"status": "online", "version": __version__}

    @app.post("/api/sahha/webhook")
    async def receive_webhook(request: Request) -> JSONResponse:
        body = await request.body()
        outcome = await _services(request).ingestion.handle(body, request.headers)
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    @app.get("/api/sahha/webhook")
    async def list_webhook_data(
        request: Request,
        external_id: str | None = Query(default=None, alias="externalId"),
    ):
        store = _services(request).store
        if external_id:
            aggregate = await store.get(external_id)
            if aggregate is None:
                return JSONResponse(
                    status_code=404, content={"success": False, "error": "Profile not found"}
                )
            return {"success": True, "data": aggregate.to_json_dict()}

        profiles = list((await store.snapshot()).values())
        last_updated = max(
            (p.get("lastUpdated") for p in profiles if isinstance(p.get("lastUpdated"), str)),
            default="",
        )
        return {
            "success": True,
            "count": len(profiles),
            "profiles": profiles,
            "lastUpdated": last_updated,
        }

    @app.delete("/api/sahha/webhook")
    async def clear_webhook_data(request: Request, confirm: bool = False):
        if not confirm:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Must confirm deletion with ?confirm=true"},
            )
        await _services(request).store.clear()
        return {"success": True, "message": "Webhook data cleared"}

    @app.get("/api/sahha/webhook/stats")
    async def webhook_stats(request: Request):
        snapshot = await _services(request).store.snapshot()
        return generate_stats(snapshot).model_dump(mode="json", by_alias=True)

    @app.get("/api/sahha/config")
    async def get_webhook_settings(request: Request):
        services = _services(request)
        settings = await services.settings.load()
        return settings.public_view(await services.store.count())

    @app.post("/api/sahha/config")
    async def save_webhook_settings(request: Request, payload: ConfigUpdateRequest):
        await _services(request).settings.save(
            webhook_url=payload.webhook_url,
            webhook_secret=payload.webhook_secret,
            tunnel_url=payload.tunnel_url,
        )
        return {"success": True}

    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn using the env config."""
    config = get_config()
    uvicorn.run(
        "wellbeing_webhooks.api.server:create_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        reload=config.api.reload,
    )


if __name__ == "__main__":
    run()
