from __future__ import annotations

from dataclasses import dataclass
import os


TRUTHY_VALUES = {"1", "true", "yes", "on"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def env_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"Invalid integer env {name}={raw!r}") from exc


def env_float(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Invalid number env {name}={raw!r}") from exc


@dataclass(frozen=True)
class BotConfig:
    discord_token: str
    database_url: str
    db_echo: bool = False
    log_level: str = "INFO"
    settings_flush_seconds: float = 0.7
    thread_inactivity_seconds: float = 600.0
    alert_auto_delete_seconds: float = 30.0
    member_sync_batch_size: int = 50
    member_sync_batch_pause_seconds: float = 0.15
    activity_log_retention_days: int = 30
    activity_log_prune_interval_seconds: int = 3600

    @property
    def database_enabled(self) -> bool:
        return bool(self.database_url)

    def validate(self) -> None:
        if self.settings_flush_seconds <= 0 or self.settings_flush_seconds >= 1:
            raise ValueError("SETTINGS_FLUSH_SECONDS must be > 0 and < 1")
        if self.thread_inactivity_seconds <= 0:
            raise ValueError("THREAD_INACTIVITY_SECONDS must be > 0")
        if self.alert_auto_delete_seconds <= 0:
            raise ValueError("ALERT_AUTO_DELETE_SECONDS must be > 0")
        if self.alert_auto_delete_seconds >= self.thread_inactivity_seconds:
            raise ValueError("ALERT_AUTO_DELETE_SECONDS must be shorter than THREAD_INACTIVITY_SECONDS")
        if self.member_sync_batch_size < 1:
            raise ValueError("MEMBER_SYNC_BATCH_SIZE must be >= 1")
        if self.member_sync_batch_pause_seconds < 0:
            raise ValueError("MEMBER_SYNC_BATCH_PAUSE_SECONDS must be >= 0")
        if self.activity_log_retention_days < 1:
            raise ValueError("ACTIVITY_LOG_RETENTION_DAYS must be >= 1")
        if self.activity_log_prune_interval_seconds < 60:
            raise ValueError("ACTIVITY_LOG_PRUNE_INTERVAL_SECONDS must be >= 60")
        if self.log_level not in VALID_LOG_LEVELS:
            valid = ", ".join(sorted(VALID_LOG_LEVELS))
            raise ValueError(f"LOG_LEVEL must be one of: {valid}")


def load_config() -> BotConfig:
    cfg = BotConfig(
        discord_token=os.getenv("DISCORD_TOKEN", ""),
        database_url=os.getenv("DATABASE_URL", ""),
        db_echo=env_bool("DB_ECHO", default=False),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        settings_flush_seconds=env_float("SETTINGS_FLUSH_SECONDS", default=0.7),
        thread_inactivity_seconds=env_float("THREAD_INACTIVITY_SECONDS", default=600.0),
        alert_auto_delete_seconds=env_float("ALERT_AUTO_DELETE_SECONDS", default=30.0),
        member_sync_batch_size=env_int("MEMBER_SYNC_BATCH_SIZE", default=50),
        member_sync_batch_pause_seconds=env_float("MEMBER_SYNC_BATCH_PAUSE_SECONDS", default=0.15),
        activity_log_retention_days=env_int("ACTIVITY_LOG_RETENTION_DAYS", default=30),
        activity_log_prune_interval_seconds=env_int("ACTIVITY_LOG_PRUNE_INTERVAL_SECONDS", default=3600),
    )
    cfg.validate()
    return cfg
