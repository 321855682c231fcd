from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from db.models import ActivityLog, GuildAlertSettings
from db.repository import CONFIG_FIELDS, ActivityLogEntry, DuplicateConfigError, GuildAlertConfig


log = logging.getLogger("vcalert.db")

_UPSERT_UPDATE_FIELDS: tuple[str, ...] = tuple(name for name in CONFIG_FIELDS if name != "guild_id")


def _config_from_row(row: GuildAlertSettings) -> GuildAlertConfig:
    return GuildAlertConfig(**{name: getattr(row, name) for name in CONFIG_FIELDS})


def _entry_from_row(row: ActivityLog) -> ActivityLogEntry:
    return ActivityLogEntry(
        guild_id=row.guild_id,
        guild_name=row.guild_name,
        actor_id=row.actor_id,
        actor_name=row.actor_name,
        room_name=row.room_name,
        kind=row.kind,
        created_at=row.created_at,
    )


class SqlConfigStore:
    """Durable guild config store on top of ``SessionManager``.

    Upserts use PostgreSQL ``INSERT .. ON CONFLICT DO UPDATE`` so a flush never
    needs a read first.
    """

    def __init__(self, session_manager: Any) -> None:
        self.session_manager = session_manager

    async def get(self, guild_id: int) -> GuildAlertConfig | None:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(
                select(GuildAlertSettings).where(GuildAlertSettings.guild_id == int(guild_id))
            )
            row = result.scalar_one_or_none()
            return _config_from_row(row) if row is not None else None

    async def insert(self, config: GuildAlertConfig) -> None:
        try:
            async with self.session_manager.session_scope() as session:
                session.add(GuildAlertSettings(**config.as_row()))
                await session.flush()
        except IntegrityError as exc:
            raise DuplicateConfigError(config.guild_id) from exc

    async def upsert(self, config: GuildAlertConfig) -> None:
        values = config.as_row()
        stmt = pg_insert(GuildAlertSettings).values(**values)
        update_values: dict[str, Any] = {name: stmt.excluded[name] for name in _UPSERT_UPDATE_FIELDS}
        update_values["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=[GuildAlertSettings.guild_id],
            set_=update_values,
        )
        async with self.session_manager.session_scope() as session:
            await session.execute(stmt)

    async def delete(self, guild_id: int) -> None:
        async with self.session_manager.session_scope() as session:
            await session.execute(delete(GuildAlertSettings).where(GuildAlertSettings.guild_id == int(guild_id)))


class SqlActivityLogStore:
    def __init__(self, session_manager: Any) -> None:
        self.session_manager = session_manager

    async def append(self, entry: ActivityLogEntry) -> None:
        async with self.session_manager.session_scope() as session:
            session.add(
                ActivityLog(
                    guild_id=entry.guild_id,
                    guild_name=entry.guild_name,
                    actor_id=entry.actor_id,
                    actor_name=entry.actor_name,
                    room_name=entry.room_name,
                    kind=entry.kind,
                    created_at=entry.created_at,
                )
            )

    async def recent(
        self,
        guild_id: int,
        *,
        since: datetime | None = None,
        actor_id: int | None = None,
        limit: int = 20,
    ) -> list[ActivityLogEntry]:
        stmt = select(ActivityLog).where(ActivityLog.guild_id == int(guild_id))
        if since is not None:
            stmt = stmt.where(ActivityLog.created_at >= since)
        if actor_id is not None:
            stmt = stmt.where(ActivityLog.actor_id == int(actor_id))
        stmt = stmt.order_by(ActivityLog.created_at.desc()).limit(max(1, int(limit)))
        async with self.session_manager.session_scope() as session:
            result = await session.execute(stmt)
            return [_entry_from_row(row) for row in result.scalars().all()]

    async def prune(self, older_than: datetime) -> int:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(delete(ActivityLog).where(ActivityLog.created_at < older_than))
            removed = int(getattr(result, "rowcount", 0) or 0)
        if removed:
            log.info("Pruned %s activity log rows older than %s", removed, older_than.isoformat())
        return removed
