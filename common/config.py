from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


MIN_REFRESH_SECONDS = 15.0


class ConfigurationError(ValueError):
    """Invalid bridge settings detected at startup."""


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _default_credentials_file() -> Optional[str]:
    candidate = Path.cwd() / "service-account.json"
    return str(candidate) if candidate.exists() else None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_pool_timeout_seconds: float
    db_statement_timeout_seconds: float

    # Global broker override (takes precedence over per-project broker settings).
    mqtt_url: Optional[str]
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_client_id_prefix: str
    mqtt_keepalive_seconds: int
    mqtt_reconnect_min_seconds: int
    mqtt_reconnect_max_seconds: int

    refresh_seconds: float
    deadband_meters: float
    alert_hysteresis_meters: float
    default_alert_cooldown_sec: float

    notify_updates: bool
    notify_updates_interval_sec: float

    # Service account JSON del Admin SDK de Firebase
    fcm_credentials_file: Optional[str]
    push_timeout_seconds: float

    worker_count: int
    worker_queue_size: int

    readings_ttl_days: int

    @property
    def push_enabled(self) -> bool:
        return bool(self.fcm_credentials_file)


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("BRIDGE_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    refresh_seconds = max(MIN_REFRESH_SECONDS, _env_float("BRIDGE_REFRESH_SECONDS", 60.0))

    reconnect_min = _env_int("MQTT_RECONNECT_MIN_SECONDS", 3)
    reconnect_max = _env_int("MQTT_RECONNECT_MAX_SECONDS", 60)
    if reconnect_min < 1 or reconnect_max < reconnect_min:
        raise ConfigurationError(
            f"invalid reconnect backoff min={reconnect_min} max={reconnect_max}"
        )

    deadband = _env_float("DEADBAND_METERS", 0.003)
    hysteresis = _env_float("ALERT_HYSTERESIS_METERS", 0.0)
    if deadband < 0 or hysteresis < 0:
        raise ConfigurationError("DEADBAND_METERS and ALERT_HYSTERESIS_METERS must be >= 0")

    worker_count = _env_int("BRIDGE_WORKERS", 4)
    if worker_count < 1:
        raise ConfigurationError("BRIDGE_WORKERS must be >= 1")

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./level_bridge.db"),
        db_pool_timeout_seconds=_env_float("DB_POOL_TIMEOUT_SECONDS", 10.0),
        db_statement_timeout_seconds=_env_float("DB_STATEMENT_TIMEOUT_SECONDS", 10.0),
        mqtt_url=_env_str("MQTT_URL"),
        mqtt_username=_env_str("MQTT_USERNAME"),
        mqtt_password=_env_str("MQTT_PASSWORD"),
        mqtt_client_id_prefix=os.getenv("MQTT_CLIENT_ID_PREFIX", "level-bridge"),
        mqtt_keepalive_seconds=_env_int("MQTT_KEEPALIVE_SECONDS", 60),
        mqtt_reconnect_min_seconds=reconnect_min,
        mqtt_reconnect_max_seconds=reconnect_max,
        refresh_seconds=refresh_seconds,
        deadband_meters=deadband,
        alert_hysteresis_meters=hysteresis,
        default_alert_cooldown_sec=max(0.0, _env_float("DEFAULT_ALERT_COOLDOWN_SEC", 1800.0)),
        notify_updates=_env_bool("NOTIFY_UPDATES"),
        notify_updates_interval_sec=max(0.0, _env_float("NOTIFY_UPDATES_INTERVAL_SEC", 0.0)),
        fcm_credentials_file=(
            _env_str("FCM_CREDENTIALS_FILE")
            or _env_str("GOOGLE_APPLICATION_CREDENTIALS")
            or _default_credentials_file()
        ),
        push_timeout_seconds=_env_float("PUSH_TIMEOUT_SECONDS", 5.0),
        worker_count=worker_count,
        worker_queue_size=_env_int("BRIDGE_QUEUE_SIZE", 1000),
        readings_ttl_days=max(0, _env_int("READINGS_TTL_DAYS", 0)),
    )
