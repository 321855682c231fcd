from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from db.repository import DuplicateConfigError, GuildAlertConfig


log = logging.getLogger("vcalert.cache")

DEFAULT_FLUSH_WINDOW_SECONDS = 0.7


class ConfigStore(Protocol):
    async def get(self, guild_id: int) -> GuildAlertConfig | None:
        ...

    async def insert(self, config: GuildAlertConfig) -> None:
        ...

    async def upsert(self, config: GuildAlertConfig) -> None:
        ...

    async def delete(self, guild_id: int) -> None:
        ...


class ConfigUnavailableError(RuntimeError):
    def __init__(self, guild_id: int) -> None:
        super().__init__(f"Alert config for guild {guild_id} could not be loaded")
        self.guild_id = guild_id


class WriteBackConfigCache:
    """Process-local guild config cache with coalesced persistence.

    Reads are always served from memory once a guild is loaded. Mutations go
    into the cache immediately and into a pending-write map keyed by guild id;
    a single timer flushes the whole map one window after the first mutation,
    so a burst of toggles ends up as one upsert per guild carrying the last
    state.
    """

    def __init__(self, store: ConfigStore, *, flush_window_seconds: float = DEFAULT_FLUSH_WINDOW_SECONDS) -> None:
        self.store = store
        self.flush_window_seconds = float(flush_window_seconds)
        self._entries: dict[int, GuildAlertConfig] = {}
        self._pending: dict[int, GuildAlertConfig] = {}
        self._flush_task: asyncio.Task | None = None
        # Held while upserts or a reset delete are in flight.
        self._write_lock = asyncio.Lock()

    @property
    def pending_guild_ids(self) -> list[int]:
        return sorted(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    def cached(self, guild_id: int) -> GuildAlertConfig | None:
        return self._entries.get(int(guild_id))

    async def get(self, guild_id: int) -> GuildAlertConfig:
        """Config for read paths; falls back to uncached defaults when the store is down."""
        try:
            return await self.load(guild_id)
        except ConfigUnavailableError:
            log.warning("Config read failed for guild %s, using defaults without caching", guild_id, exc_info=True)
            return GuildAlertConfig(guild_id=int(guild_id))

    async def load(self, guild_id: int) -> GuildAlertConfig:
        """Config for mutation paths; raises ``ConfigUnavailableError`` instead of inventing defaults."""
        guild_id = int(guild_id)
        cached = self._entries.get(guild_id)
        if cached is not None:
            return cached

        try:
            stored = await self.store.get(guild_id)
        except Exception as exc:
            raise ConfigUnavailableError(guild_id) from exc

        if stored is None:
            stored = GuildAlertConfig(guild_id=guild_id)
            try:
                await self.store.insert(stored)
                log.info("Materialized default alert config for guild %s", guild_id)
            except DuplicateConfigError:
                log.debug("Default config for guild %s was inserted concurrently", guild_id)
            except Exception:
                log.exception("Failed to persist default config for guild %s", guild_id)

        # Another task may have loaded or updated this guild while we awaited the store.
        return self._entries.setdefault(guild_id, stored)

    def update(self, config: GuildAlertConfig) -> GuildAlertConfig:
        self._entries[config.guild_id] = config
        self._pending[config.guild_id] = config.snapshot()
        self._schedule_flush()
        return config

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return
        self._flush_task = asyncio.create_task(self._flush_after_window(), name="settings_cache_flush")

    async def _flush_after_window(self) -> None:
        await asyncio.sleep(self.flush_window_seconds)
        await self.flush()

    async def flush(self) -> int:
        task = self._flush_task
        self._flush_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        pending, self._pending = self._pending, {}
        if not pending:
            return 0

        async with self._write_lock:
            results = await asyncio.gather(*(self._persist(config) for config in pending.values()))
        saved = sum(1 for ok in results if ok)
        log.debug("Flushed %s/%s pending guild configs", saved, len(pending))
        return saved

    async def _persist(self, config: GuildAlertConfig) -> bool:
        try:
            await self.store.upsert(config)
            return True
        except Exception:
            log.exception("Failed to save alert config for guild %s", config.guild_id)
            return False

    async def reset(self, guild_id: int) -> GuildAlertConfig:
        guild_id = int(guild_id)
        # Drop the snapshot first so a flush firing during the delete cannot write it back.
        self._entries.pop(guild_id, None)
        self._pending.pop(guild_id, None)
        async with self._write_lock:
            try:
                await self.store.delete(guild_id)
            except Exception:
                log.exception("Config reset delete failed for guild %s", guild_id)
        return await self.get(guild_id)

    async def close(self) -> int:
        return await self.flush()
