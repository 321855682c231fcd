from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class GuildAlertSettings(Base):
    __tablename__ = "guild_alert_settings"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    alerts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    text_channel_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    join_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    leave_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    online_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    private_thread_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ignored_role_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ignore_role_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (Index("ix_activity_logs_guild_created", "guild_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actor_name: Mapped[str] = mapped_column(Text, nullable=False)
    room_name: Mapped[str] = mapped_column(Text, nullable=False, default="-")
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


def mapped_public_table_names() -> tuple[str, ...]:
    return tuple(table.name for table in Base.metadata.sorted_tables)


REQUIRED_BOOT_TABLES = mapped_public_table_names()
