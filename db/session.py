from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bot.config import BotConfig


log = logging.getLogger("vcalert.db")

MAX_LOGGED_BATCH_ROWS = 20


def _describe_param(value: object) -> object:
    # Flags and timestamps are safe to show; ids and member/room names are not.
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return "<id>"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        return f"<text:{len(value)}>"
    return f"<{value.__class__.__name__}>"


def redact_sql_parameters(parameters: object) -> object:
    """Loggable view of bound parameters for a settings or activity-log statement."""
    if isinstance(parameters, dict):
        return {str(key): _describe_param(value) for key, value in parameters.items()}
    if isinstance(parameters, (list, tuple)):
        rows = [redact_sql_parameters(row) for row in parameters[:MAX_LOGGED_BATCH_ROWS]]
        if len(parameters) > MAX_LOGGED_BATCH_ROWS:
            rows.append(f"... +{len(parameters) - MAX_LOGGED_BATCH_ROWS} more")
        return tuple(rows) if isinstance(parameters, tuple) else rows
    return _describe_param(parameters)


class SessionManager:
    """Owns the async engine behind the settings and activity-log stores."""

    def __init__(self, config: BotConfig):
        self._engine = create_async_engine(
            config.database_url,
            echo=config.db_echo,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        event.listen(self._engine.sync_engine, "before_cursor_execute", self._before_execute)
        event.listen(self._engine.sync_engine, "after_cursor_execute", self._after_execute)
        event.listen(self._engine.sync_engine, "handle_error", self._on_error)

    @property
    def engine(self):
        return self._engine

    @staticmethod
    def _before_execute(conn, cursor, statement, parameters, context, executemany):
        if not log.isEnabledFor(logging.DEBUG):
            return
        context._vcalert_started_at = time.perf_counter()
        log.debug("[to-db] SQL=%s params=%s", statement, redact_sql_parameters(parameters))

    @staticmethod
    def _after_execute(conn, cursor, statement, parameters, context, executemany):
        started_at = getattr(context, "_vcalert_started_at", None)
        if started_at is None or not log.isEnabledFor(logging.DEBUG):
            return
        log.debug("[from-db] rows=%s took=%.2fms", cursor.rowcount, (time.perf_counter() - started_at) * 1000)

    @staticmethod
    def _on_error(exception_context):
        log.warning("[from-db] query failed: %s", exception_context.original_exception)

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self) -> None:
        await self._engine.dispose()
