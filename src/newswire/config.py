"""Runtime configuration for the cycling engine, HTTP API and sync client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from newswire.timing import resolve_timezone

API_MODES = ("cycling", "simple")


@dataclass(slots=True)
class EngineSettings:
    """Server-side cycling engine settings."""

    counter_key: str = "article_cycle"
    gated: bool = False
    consumption_wait_seconds: float = 10.0
    consumption_poll_seconds: float = 1.0
    max_conflict_retries: int = 5
    publish_timezone: str = "UTC"


@dataclass(slots=True)
class ApiSettings:
    """HTTP surface settings."""

    mode: str = "cycling"
    host: str = "127.0.0.1"
    port: int = 8000
    base_path: str = ""


@dataclass(slots=True)
class ClientSettings:
    """Sync client polling settings."""

    api_url: str = "http://127.0.0.1:8000"
    poll_interval_seconds: float = 5.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 30.0
    request_timeout_seconds: float = 10.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".newswire.db")
    engine: EngineSettings = field(default_factory=EngineSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    client: ClientSettings = field(default_factory=ClientSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("NEWSWIRE_DB_PATH", ".newswire.db")),
            engine=EngineSettings(
                counter_key=os.getenv("NEWSWIRE_COUNTER_KEY", "article_cycle"),
                gated=_env_bool("NEWSWIRE_ENGINE_GATED", default=False),
                consumption_wait_seconds=float(
                    os.getenv("NEWSWIRE_CONSUMPTION_WAIT_SECONDS", "10.0"),
                ),
                consumption_poll_seconds=float(
                    os.getenv("NEWSWIRE_CONSUMPTION_POLL_SECONDS", "1.0"),
                ),
                max_conflict_retries=int(os.getenv("NEWSWIRE_MAX_CONFLICT_RETRIES", "5")),
                publish_timezone=os.getenv("NEWSWIRE_PUBLISH_TIMEZONE", "UTC"),
            ),
            api=ApiSettings(
                mode=os.getenv("NEWSWIRE_API_MODE", "cycling").strip().lower(),
                host=os.getenv("NEWSWIRE_API_HOST", "127.0.0.1"),
                port=int(os.getenv("NEWSWIRE_API_PORT", "8000")),
                base_path=os.getenv("NEWSWIRE_API_BASE_PATH", ""),
            ),
            client=ClientSettings(
                api_url=os.getenv("NEWSWIRE_API_URL", "http://127.0.0.1:8000"),
                poll_interval_seconds=float(os.getenv("NEWSWIRE_POLL_INTERVAL_SECONDS", "5.0")),
                max_retries=int(os.getenv("NEWSWIRE_CLIENT_MAX_RETRIES", "3")),
                backoff_base_seconds=float(
                    os.getenv("NEWSWIRE_BACKOFF_BASE_SECONDS", "1.0"),
                ),
                backoff_cap_seconds=float(os.getenv("NEWSWIRE_BACKOFF_CAP_SECONDS", "30.0")),
                request_timeout_seconds=float(
                    os.getenv("NEWSWIRE_REQUEST_TIMEOUT_SECONDS", "10.0"),
                ),
            ),
        )

    def validate_for_engine(self) -> None:
        """Raise configuration error if engine or API settings are unusable."""

        if not self.engine.counter_key.strip():
            raise ValueError("NEWSWIRE_COUNTER_KEY must not be empty.")
        if self.engine.consumption_wait_seconds < 0:
            raise ValueError("NEWSWIRE_CONSUMPTION_WAIT_SECONDS must be >= 0.")
        if self.engine.consumption_poll_seconds <= 0:
            raise ValueError("NEWSWIRE_CONSUMPTION_POLL_SECONDS must be > 0.")
        if self.engine.max_conflict_retries <= 0:
            raise ValueError("NEWSWIRE_MAX_CONFLICT_RETRIES must be a positive integer.")
        try:
            resolve_timezone(self.engine.publish_timezone)
        except (KeyError, ValueError) as error:
            raise ValueError(
                f"Invalid NEWSWIRE_PUBLISH_TIMEZONE: {self.engine.publish_timezone!r}",
            ) from error
        if self.api.mode not in API_MODES:
            raise ValueError(
                f"Invalid NEWSWIRE_API_MODE: {self.api.mode!r}. Expected one of {API_MODES}.",
            )
        if not 0 < self.api.port < 65536:
            raise ValueError("NEWSWIRE_API_PORT must be between 1 and 65535.")

    def validate_for_client(self, override_api_url: str | None = None) -> None:
        """Raise configuration error if the sync client cannot poll with these settings."""

        _validate_api_url(override_api_url or self.client.api_url)
        if self.client.poll_interval_seconds < 0:
            raise ValueError("NEWSWIRE_POLL_INTERVAL_SECONDS must be >= 0.")
        if self.client.max_retries < 0:
            raise ValueError("NEWSWIRE_CLIENT_MAX_RETRIES must be >= 0.")
        if self.client.backoff_base_seconds < 0:
            raise ValueError("NEWSWIRE_BACKOFF_BASE_SECONDS must be >= 0.")
        if self.client.backoff_cap_seconds < self.client.backoff_base_seconds:
            raise ValueError(
                "NEWSWIRE_BACKOFF_CAP_SECONDS must be >= NEWSWIRE_BACKOFF_BASE_SECONDS.",
            )
        if self.client.request_timeout_seconds <= 0:
            raise ValueError("NEWSWIRE_REQUEST_TIMEOUT_SECONDS must be > 0.")


def _validate_api_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid wire API URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
