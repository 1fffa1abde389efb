from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv

from codenames.infra.redis_client import DEFAULT_REDIS_URL


_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class Settings:
    admin_password: str = "changeme123"
    # Key for signing the admin cookie; derived from the password when unset.
    admin_session_secret: str | None = None
    redis_url: str = DEFAULT_REDIS_URL
    jitsi_metrics_url: str = "http://localhost:8080"
    conference_polling: bool = True
    conference_poll_interval_sec: float = 5.0
    match_retention_hours: float = 24.0
    sweep_interval_sec: float = 3600.0
    telemetry_window_min: float = 30.0
    telemetry_prune_interval_sec: float = 300.0
    archive_on_shutdown: bool = True
    log_level: str = "INFO"

    @property
    def match_retention(self) -> timedelta:
        return timedelta(hours=self.match_retention_hours)

    @property
    def telemetry_window(self) -> timedelta:
        return timedelta(minutes=self.telemetry_window_min)

    @property
    def session_secret(self) -> str:
        return self.admin_session_secret or f"admin-session-secret:{self.admin_password}"

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv()
        d = Settings()
        return Settings(
            admin_password=os.environ.get("ADMIN_PASSWORD") or d.admin_password,
            admin_session_secret=os.environ.get("ADMIN_SESSION_SECRET") or None,
            redis_url=os.environ.get("REDIS_URL") or d.redis_url,
            jitsi_metrics_url=os.environ.get("JITSI_METRICS_URL") or d.jitsi_metrics_url,
            conference_polling=_env_bool("CONFERENCE_POLLING", d.conference_polling),
            conference_poll_interval_sec=_env_float("CONFERENCE_POLL_INTERVAL_SEC", d.conference_poll_interval_sec),
            match_retention_hours=_env_float("MATCH_RETENTION_HOURS", d.match_retention_hours),
            sweep_interval_sec=_env_float("SWEEP_INTERVAL_SEC", d.sweep_interval_sec),
            telemetry_window_min=_env_float("TELEMETRY_WINDOW_MIN", d.telemetry_window_min),
            telemetry_prune_interval_sec=_env_float("TELEMETRY_PRUNE_INTERVAL_SEC", d.telemetry_prune_interval_sec),
            archive_on_shutdown=_env_bool("ARCHIVE_ON_SHUTDOWN", d.archive_on_shutdown),
            log_level=(os.environ.get("LOG_LEVEL") or d.log_level).upper(),
        )
