from __future__ import annotations

import pytest

from bot.config import BotConfig
from bot.main import AlertApplication
from db.repository import InMemoryActivityLog, InMemoryConfigStore
from services.settings_cache import WriteBackConfigCache


@pytest.fixture
def config() -> BotConfig:
    return BotConfig(
        discord_token="token",
        database_url="",
        db_echo=False,
        log_level="DEBUG",
        settings_flush_seconds=0.05,
        thread_inactivity_seconds=0.3,
        alert_auto_delete_seconds=0.1,
        member_sync_batch_size=2,
        member_sync_batch_pause_seconds=0.0,
    )


@pytest.fixture
def store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def activity_store() -> InMemoryActivityLog:
    return InMemoryActivityLog()


@pytest.fixture
def cache(store: InMemoryConfigStore) -> WriteBackConfigCache:
    return WriteBackConfigCache(store, flush_window_seconds=0.05)


@pytest.fixture
def app(config: BotConfig, store: InMemoryConfigStore, activity_store: InMemoryActivityLog) -> AlertApplication:
    return AlertApplication(config=config, config_store=store, activity_store=activity_store)
