"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no webhook secrets in code)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()


class WebhookConfig(BaseModel):
    """Inbound webhook verification settings."""

    secret: str | None = Field(
        default=None, description="Shared secret for HMAC-SHA256 signatures (open mode if unset)"
    )
    signature_header: str = Field(default="X-Signature", description="Signature header name")
    external_id_header: str = Field(default="X-External-Id", description="Subject id header name")
    event_type_header: str = Field(default="X-Event-Type", description="Event type header name")

    # Development-only escape hatch for manual testing
    allow_signature_bypass: bool = Field(
        default=False, description="Honor X-Bypass-Signature: test (development only)"
    )
    bypass_header: str = Field(default="X-Bypass-Signature", description="Bypass header name")

    @field_validator("secret")
    def blank_secret_means_open_mode(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class StorageConfig(BaseModel):
    """Flat-file storage layout under a single data directory."""

    data_dir: Path = Field(default=Path("./data"), description="Directory holding all JSON files")
    aggregate_file: str = Field(default="sahha-webhook-data.json")
    backup_file: str = Field(default="sahha-webhook-backup.json")
    settings_file: str = Field(default="webhook-config.json")
    event_analysis_file: str = Field(default="webhook-event-analysis.json")
    event_stats_file: str = Field(default="webhook-event-stats.json")
    activity_log_file: str = Field(default="webhook-activity.log")

    event_history_limit: int = Field(
        default=200, gt=0, description="Number of captured events kept for analysis"
    )

    @property
    def aggregate_path(self) -> Path:
        return self.data_dir / self.aggregate_file

    @property
    def backup_path(self) -> Path:
        return self.data_dir / self.backup_file

    @property
    def settings_path(self) -> Path:
        return self.data_dir / self.settings_file

    @property
    def event_analysis_path(self) -> Path:
        return self.data_dir / self.event_analysis_file

    @property
    def event_stats_path(self) -> Path:
        return self.data_dir / self.event_stats_file

    @property
    def activity_log_path(self) -> Path:
        return self.data_dir / self.activity_log_file


class APIConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="0.0.0.0", description="API server host")
    port: int = Field(default=8000, gt=0, lt=65536, description="API server port")
    reload: bool = Field(default=False, description="Enable auto-reload for development")

    # Security settings
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"], description="Allowed origins for CORS"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self

    @model_validator(mode="after")
    def bypass_only_in_dev(self) -> "AppConfig":
        """Signature bypass must never be reachable outside development."""
        if self.webhook.allow_signature_bypass and self.environment != "development":
            raise ValueError("signature bypass is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    webhook_config = WebhookConfig(
        secret=os.getenv("SAHHA_WEBHOOK_SECRET"),
        allow_signature_bypass=debug
        and _parse_bool(os.getenv("WEBHOOK_ALLOW_SIGNATURE_BYPASS"), False),
    )

    storage_config = StorageConfig(
        data_dir=Path(os.getenv("WEBHOOK_DATA_DIR", "./data")),
        event_history_limit=int(os.getenv("WEBHOOK_EVENT_HISTORY_LIMIT", "200")),
    )

    # API config
    api_config = APIConfig(
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=_parse_bool(os.getenv("API_RELOAD"), debug),
        allowed_origins=os.getenv("API_ALLOWED_ORIGINS", "http://localhost:3000").split(","),
    )

    # Logging config
    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        webhook=webhook_config,
        storage=storage_config,
        api=api_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.webhook.secret:
            print("✅ Webhook signature secret configured")
        else:
            print("⚠️  No SAHHA_WEBHOOK_SECRET configured - webhooks accepted without verification")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n🔐 WEBHOOK CONFIGURATION")
    print(f"Signature Verification: {'enabled' if config.webhook.secret else 'open mode'}")
    print(f"Signature Bypass: {config.webhook.allow_signature_bypass}")

    print("\n💾 STORAGE CONFIGURATION")
    print(f"Data Directory: {config.storage.data_dir}")
    print(f"Event History Limit: {config.storage.event_history_limit}")

    print("\n🌐 API CONFIGURATION")
    print(f"Host: {config.api.host}:{config.api.port}")
    print(f"Reload: {config.api.reload}")


if __name__ == "__main__":
    # Test configuration loading
    validate_config()
    print_config_summary()
