"""Application configuration via environment variables and .env file."""

from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings.sources import DotEnvSettingsSource, PydanticBaseSettingsSource

# Path to .env file (patch in tests to use tmp_path / ".env")
_ENV_FILE: Path = Path(".env")


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "BEACONHUB_",
        "env_file_encoding": "utf-8",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Load .env from _ENV_FILE (patchable in tests)
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(
                settings_cls,
                env_file=_ENV_FILE,
                env_file_encoding="utf-8",
            ),
            file_secret_settings,
        )

    # Database
    db_path: Path = Path("./data/beaconhub.db")
    database_url: str | None = None  # overrides db_path when set

    # Logging
    log_level: str = "info"

    # IANA zone used to bucket history into calendar days.
    # Unset means the server's local zone.
    timezone: str | None = None

    # History paging
    history_page_size: int = 200

    # Per-subscriber buffer before live events are dropped
    event_queue_size: int = 100

    # Record request/response pairs of the mobile-facing endpoints
    audit_enabled: bool = True

    # Insert the default beacon set on startup (never overwrites aliases)
    seed_beacons: bool = True

    # CORS, comma-separated
    # Env: BEACONHUB_CORS_ORIGINS="http://localhost:3000,https://dash.example.com"
    cors_origins: str = "*"

    # Server
    host: str = "0.0.0.0"
    port: int = 4000

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str | None) -> str | None:
        if not v:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @field_validator("history_page_size", "event_queue_size")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def zone(self) -> tzinfo | None:
        """Configured history zone, or None for the server's local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def get_cors_origins(self) -> list[str]:
        """Split the comma-separated origin list."""
        return [s.strip() for s in self.cors_origins.split(",") if s.strip()]

    def get_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.db_path}"


def load_config() -> Settings:
    """Load configuration from .env and environment (env overrides .env)."""
    return Settings()


settings = Settings()
