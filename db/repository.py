from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from typing import Dict, List, Optional


class DuplicateConfigError(Exception):
    """Raised by a config store when a row for the guild already exists."""

    def __init__(self, guild_id: int) -> None:
        super().__init__(f"Config for guild {guild_id} already exists")
        self.guild_id = guild_id


@dataclass(slots=True)
class GuildAlertConfig:
    guild_id: int
    alerts_enabled: bool = False
    text_channel_id: int | None = None
    join_alerts: bool = True
    leave_alerts: bool = True
    online_alerts: bool = True
    private_thread_alerts: bool = True
    auto_delete: bool = True
    ignored_role_id: int | None = None
    ignore_role_enabled: bool = False

    def snapshot(self) -> "GuildAlertConfig":
        return replace(self)

    def as_row(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in CONFIG_FIELDS}


CONFIG_FIELDS: tuple[str, ...] = tuple(item.name for item in fields(GuildAlertConfig))


@dataclass(slots=True)
class ActivityLogEntry:
    guild_id: int
    actor_id: int
    actor_name: str
    kind: str
    room_name: str = "-"
    guild_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class InMemoryConfigStore:
    """Config store used when no database is configured, and by the tests."""

    def __init__(self) -> None:
        self.rows: Dict[int, GuildAlertConfig] = {}

    async def get(self, guild_id: int) -> Optional[GuildAlertConfig]:
        row = self.rows.get(int(guild_id))
        return row.snapshot() if row is not None else None

    async def insert(self, config: GuildAlertConfig) -> None:
        if config.guild_id in self.rows:
            raise DuplicateConfigError(config.guild_id)
        self.rows[config.guild_id] = config.snapshot()

    async def upsert(self, config: GuildAlertConfig) -> None:
        self.rows[config.guild_id] = config.snapshot()

    async def delete(self, guild_id: int) -> None:
        self.rows.pop(int(guild_id), None)


class InMemoryActivityLog:
    def __init__(self) -> None:
        self.entries: List[ActivityLogEntry] = []

    async def append(self, entry: ActivityLogEntry) -> None:
        self.entries.append(entry)

    async def recent(
        self,
        guild_id: int,
        *,
        since: datetime | None = None,
        actor_id: int | None = None,
        limit: int = 20,
    ) -> list[ActivityLogEntry]:
        rows = [
            entry
            for entry in self.entries
            if entry.guild_id == guild_id
            and (since is None or entry.created_at >= since)
            and (actor_id is None or entry.actor_id == actor_id)
        ]
        rows.sort(key=lambda entry: entry.created_at, reverse=True)
        return rows[:limit]

    async def prune(self, older_than: datetime) -> int:
        before = len(self.entries)
        self.entries = [entry for entry in self.entries if entry.created_at >= older_than]
        return before - len(self.entries)
