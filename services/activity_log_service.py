from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Protocol

from db.repository import ActivityLogEntry
from gateway.task_registry import BackgroundTaskSet


log = logging.getLogger("vcalert.activity")

LOG_RANGES = ("today", "yesterday", "7days", "30days")
DEFAULT_LOG_RANGE = "today"
RECENT_LOG_LIMIT = 20
ACTIVITY_EXPORT_LIMIT = 1000

_KIND_ICONS = {
    "join": "🟢",
    "leave": "🔴",
    "online": "✨",
}


class ActivityLogStore(Protocol):
    async def append(self, entry: ActivityLogEntry) -> None:
        ...

    async def recent(
        self,
        guild_id: int,
        *,
        since: datetime | None = None,
        actor_id: int | None = None,
        limit: int = RECENT_LOG_LIMIT,
    ) -> list[ActivityLogEntry]:
        ...

    async def prune(self, older_than: datetime) -> int:
        ...


class ActivityRecorder:
    """Appends activity entries in the background; alerts never wait on it."""

    def __init__(self, store: ActivityLogStore) -> None:
        self.store = store
        self._writes = BackgroundTaskSet("activity_log")

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def record(self, entry: ActivityLogEntry) -> None:
        self._writes.spawn(self._append(entry))

    async def _append(self, entry: ActivityLogEntry) -> None:
        try:
            await self.store.append(entry)
        except Exception as exc:
            log.warning(
                "Failed to record %s activity for actor %s in guild %s: %s",
                entry.kind,
                entry.actor_id,
                entry.guild_id,
                exc,
            )

    async def recent(
        self,
        guild_id: int,
        *,
        range_name: str = DEFAULT_LOG_RANGE,
        actor_id: int | None = None,
        now: datetime | None = None,
        limit: int = RECENT_LOG_LIMIT,
    ) -> list[ActivityLogEntry]:
        since = range_start(range_name, now=now)
        return await self.store.recent(int(guild_id), since=since, actor_id=actor_id, limit=limit)

    async def drain(self) -> None:
        await self._writes.drain()


def range_start(range_name: str, *, now: datetime | None = None) -> datetime:
    current = now or datetime.now(UTC)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_name == "today":
        return midnight
    if range_name == "yesterday":
        return midnight - timedelta(days=1)
    if range_name == "7days":
        return current - timedelta(days=7)
    if range_name == "30days":
        return current - timedelta(days=30)
    raise ValueError(f"Unknown log range: {range_name}")


async def prune_expired(store: ActivityLogStore, *, retention_days: int, now: datetime | None = None) -> int:
    cutoff = (now or datetime.now(UTC)) - timedelta(days=max(1, int(retention_days)))
    return await store.prune(cutoff)


def _relative_age(created_at: datetime, now: datetime) -> str:
    seconds = max(0, int((now - created_at).total_seconds()))
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def describe_entry(entry: ActivityLogEntry, *, now: datetime | None = None) -> str:
    icon = _KIND_ICONS.get(entry.kind, "•")
    age = _relative_age(entry.created_at, now or datetime.now(UTC))
    if entry.kind == "online":
        return f"{icon} **{entry.actor_name}** came online • {age}"
    verb = "joined" if entry.kind == "join" else "left"
    return f"{icon} **{entry.actor_name}** {verb} **{entry.room_name}** • {age}"


_EXPORT_ACTIONS = {
    "join": "entered",
    "leave": "left",
    "online": "came online",
}


def render_activity_export(
    entries: list[ActivityLogEntry],
    *,
    guild_name: str,
    range_name: str,
    now: datetime | None = None,
) -> str:
    """Plain-text export attached to /logs, one block per entry."""
    current = now or datetime.now(UTC)
    lines = [
        f"Activity log for {guild_name} ({range_name})",
        f"Generated {current.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"Entries: {len(entries)}",
        "",
    ]
    for entry in entries:
        icon = _KIND_ICONS.get(entry.kind, "•")
        action = _EXPORT_ACTIONS.get(entry.kind, entry.kind)
        where = f" {entry.room_name}" if entry.kind != "online" and entry.room_name else ""
        lines.append(f"{icon} [{entry.kind}] {entry.actor_name} ({entry.actor_id}) {action}{where}")
        stamp = entry.created_at.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
        lines.append(f"    {_relative_age(entry.created_at, current)} ({stamp})")
    return "\n".join(lines) + "\n"


def activity_export_filename(guild_name: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in (guild_name or "guild"))
    return f"{safe or 'guild'}_activity.txt"
