from __future__ import annotations

import asyncio
import logging
from typing import Any

from bot.config import BotConfig
from db.repository import InMemoryActivityLog, InMemoryConfigStore
from db.schema_guard import ensure_required_schema, validate_required_tables
from db.session import SessionManager
from gateway.task_registry import SingletonTaskRegistry
from services.activity_log_service import ActivityRecorder, prune_expired
from services.alert_dispatcher import AlertDispatcher
from services.alert_engine import AlertEngine
from services.persistence_service import SqlActivityLogStore, SqlConfigStore
from services.settings_cache import WriteBackConfigCache
from services.thread_manager import ThreadLifecycleManager


log = logging.getLogger("vcalert.app")

BACKGROUND_LOOP_NAMES = ("activity_log_prune_worker",)


class AlertApplication:
    """Wires stores, caches and the alert engine together for one bot process."""

    def __init__(
        self,
        *,
        config: BotConfig,
        config_store: Any | None = None,
        activity_store: Any | None = None,
        session_manager: SessionManager | None = None,
    ) -> None:
        self.config = config
        self.session_manager = session_manager
        if self.session_manager is None and config.database_enabled and (config_store is None or activity_store is None):
            self.session_manager = SessionManager(config)

        if config_store is None:
            config_store = SqlConfigStore(self.session_manager) if self.session_manager else InMemoryConfigStore()
        if activity_store is None:
            activity_store = SqlActivityLogStore(self.session_manager) if self.session_manager else InMemoryActivityLog()
        self.config_store = config_store
        self.activity_store = activity_store

        self.cache = WriteBackConfigCache(config_store, flush_window_seconds=config.settings_flush_seconds)
        self.threads = ThreadLifecycleManager(
            inactivity_seconds=config.thread_inactivity_seconds,
            member_batch_size=config.member_sync_batch_size,
            member_batch_pause_seconds=config.member_sync_batch_pause_seconds,
        )
        self.dispatcher = AlertDispatcher(auto_delete_seconds=config.alert_auto_delete_seconds)
        self.recorder = ActivityRecorder(activity_store)
        self.engine = AlertEngine(
            cache=self.cache,
            threads=self.threads,
            dispatcher=self.dispatcher,
            recorder=self.recorder,
        )
        self.task_registry = SingletonTaskRegistry()
        self._schema_ready = False

    async def setup(self) -> None:
        if self.session_manager is not None and not self._schema_ready:
            async with self.session_manager.engine.begin() as connection:
                changes = await ensure_required_schema(connection)
                await validate_required_tables(connection)
            if changes:
                log.info("Applied DB schema changes: %s", ", ".join(changes))
            self._schema_ready = True
        elif self.session_manager is None:
            log.warning("DATABASE_URL not set, guild settings and activity logs are kept in memory only")
        self.start_background_loops()

    def start_background_loops(self) -> None:
        self.task_registry.start_once("activity_log_prune_worker", self._activity_log_prune_worker)

    async def prune_activity_log(self) -> int:
        return await prune_expired(self.activity_store, retention_days=self.config.activity_log_retention_days)

    async def _activity_log_prune_worker(self) -> None:
        while True:
            try:
                await self.prune_activity_log()
            except Exception:
                log.exception("Activity log prune failed")
            await asyncio.sleep(self.config.activity_log_prune_interval_seconds)

    async def close(self) -> None:
        try:
            await self.engine.shutdown()
        except Exception:
            log.exception("Alert engine shutdown failed")
        await self.task_registry.cancel_all()
        if self.session_manager is not None:
            await self.session_manager.dispose()
