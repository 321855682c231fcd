from __future__ import annotations

import logging
from typing import Any

from db.repository import ActivityLogEntry, GuildAlertConfig
from gateway.safety import resolve_text_channel
from services.activity_log_service import ActivityRecorder
from services.alert_dispatcher import AlertDispatcher
from services.event_classifier import (
    EventKind,
    OccupancyChange,
    PresenceChange,
    classify_occupancy,
    classify_presence,
    role_ids_of,
)
from services.privacy import is_private_room
from services.render_service import render_alert
from services.settings_cache import WriteBackConfigCache
from services.thread_manager import ThreadLifecycleManager


log = logging.getLogger("vcalert.engine")


def _display_name(member: Any) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(member, attr, None)
        if value:
            return str(value)
    return str(getattr(member, "id", "unknown"))


def _avatar_url(member: Any) -> str | None:
    avatar = getattr(member, "display_avatar", None)
    url = getattr(avatar, "url", None)
    return str(url) if url else None


def _status_text(status: Any) -> str | None:
    if status is None:
        return None
    return str(getattr(status, "value", status))


class AlertEngine:
    """Routes gateway events through classification into alerts.

    Every collaborator is owned by the instance; nothing here is global.
    """

    def __init__(
        self,
        *,
        cache: WriteBackConfigCache,
        threads: ThreadLifecycleManager,
        dispatcher: AlertDispatcher,
        recorder: ActivityRecorder,
    ) -> None:
        self.cache = cache
        self.threads = threads
        self.dispatcher = dispatcher
        self.recorder = recorder

    async def handle_voice_state(self, member: Any, before: Any, after: Any) -> EventKind | None:
        try:
            return await self._handle_voice_state(member, before, after)
        except Exception:
            log.exception(
                "Voice state handling failed guild_id=%s member_id=%s",
                getattr(getattr(member, "guild", None), "id", None),
                getattr(member, "id", None),
            )
            return None

    async def handle_presence(self, member: Any, previous_status: Any, new_status: Any) -> EventKind | None:
        try:
            return await self._handle_presence(member, previous_status, new_status)
        except Exception:
            log.exception(
                "Presence handling failed guild_id=%s member_id=%s",
                getattr(getattr(member, "guild", None), "id", None),
                getattr(member, "id", None),
            )
            return None

    async def _handle_voice_state(self, member: Any, before: Any, after: Any) -> EventKind:
        guild = member.guild
        old_room = getattr(before, "channel", None)
        new_room = getattr(after, "channel", None)
        config = await self.cache.get(guild.id)

        change = OccupancyChange(
            guild_id=int(guild.id),
            actor_id=int(member.id),
            actor_is_bot=bool(getattr(member, "bot", False)),
            old_room_id=getattr(old_room, "id", None),
            new_room_id=getattr(new_room, "id", None),
            actor_role_ids=role_ids_of(member),
        )
        kind = classify_occupancy(change, config)
        if not kind.is_alert:
            log.debug("Voice state %s for member %s in guild %s", kind.value, member.id, guild.id)
            return kind

        room = new_room if kind is EventKind.JOIN else old_room
        room_name = getattr(room, "name", None)
        self._record(guild, member, kind, room_name)

        parent = await self._resolve_destination(guild, config)
        if parent is None:
            return kind

        payload = render_alert(kind, actor_name=_display_name(member), room_name=room_name, icon_url=_avatar_url(member))
        destination = parent
        if config.private_thread_alerts and is_private_room(room, getattr(guild, "default_role", None)):
            destination = await self.threads.acquire_thread(room, parent)
            if destination is None:
                return kind

        await self.dispatcher.dispatch(payload, destination, auto_delete=config.auto_delete)
        return kind

    async def _handle_presence(self, member: Any, previous_status: Any, new_status: Any) -> EventKind:
        guild = member.guild
        config = await self.cache.get(guild.id)
        change = PresenceChange(
            guild_id=int(guild.id),
            actor_id=int(member.id),
            actor_is_bot=bool(getattr(member, "bot", False)),
            previous_status=_status_text(previous_status),
            new_status=_status_text(new_status),
            actor_role_ids=role_ids_of(member),
        )
        kind = classify_presence(change, config)
        if not kind.is_alert:
            return kind

        self._record(guild, member, kind, None)
        parent = await self._resolve_destination(guild, config)
        if parent is None:
            return kind

        payload = render_alert(kind, actor_name=_display_name(member), icon_url=_avatar_url(member))
        await self.dispatcher.dispatch(payload, parent, auto_delete=config.auto_delete)
        return kind

    async def _resolve_destination(self, guild: Any, config: GuildAlertConfig) -> Any | None:
        parent = await resolve_text_channel(guild, config.text_channel_id)
        if parent is None:
            log.error(
                "Alert channel %s could not be resolved for guild %s",
                config.text_channel_id,
                getattr(guild, "id", None),
            )
        return parent

    def _record(self, guild: Any, member: Any, kind: EventKind, room_name: str | None) -> None:
        self.recorder.record(
            ActivityLogEntry(
                guild_id=int(guild.id),
                guild_name=getattr(guild, "name", None),
                actor_id=int(member.id),
                actor_name=_display_name(member),
                room_name=room_name or "-",
                kind=kind.value,
            )
        )

    def forget_room(self, room_id: int) -> bool:
        return self.threads.forget_room(room_id)

    def forget_thread(self, thread_id: int) -> bool:
        return self.threads.forget_thread(thread_id)

    async def shutdown(self) -> None:
        saved = await self.cache.close()
        dropped = self.threads.shutdown()
        await self.dispatcher.close()
        await self.recorder.drain()
        log.info("Alert engine stopped (flushed_configs=%s dropped_threads=%s)", saved, dropped)
