from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from db.repository import GuildAlertConfig


ONLINE_STATUS = "online"


class EventKind(str, Enum):
    JOIN = "join"
    LEAVE = "leave"
    ONLINE = "online"
    IGNORED_MOVE = "ignored_move"
    IGNORED_FILTERED = "ignored_filtered"

    @property
    def is_alert(self) -> bool:
        return self in (EventKind.JOIN, EventKind.LEAVE, EventKind.ONLINE)


@dataclass(frozen=True, slots=True)
class OccupancyChange:
    guild_id: int
    actor_id: int
    actor_is_bot: bool
    old_room_id: int | None
    new_room_id: int | None
    actor_role_ids: frozenset[int] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True)
class PresenceChange:
    guild_id: int
    actor_id: int
    actor_is_bot: bool
    previous_status: str | None
    new_status: str | None
    actor_role_ids: frozenset[int] = field(default_factory=frozenset)


def role_ids_of(member: Any) -> frozenset[int]:
    roles: Iterable[Any] = getattr(member, "roles", None) or ()
    return frozenset(int(role.id) for role in roles if getattr(role, "id", None) is not None)


def _is_filtered(config: GuildAlertConfig, *, actor_is_bot: bool, actor_role_ids: frozenset[int]) -> bool:
    if actor_is_bot:
        return True
    if not config.alerts_enabled or not config.text_channel_id:
        return True
    if config.ignore_role_enabled and config.ignored_role_id and config.ignored_role_id in actor_role_ids:
        return True
    return False


def classify_occupancy(change: OccupancyChange, config: GuildAlertConfig) -> EventKind:
    if _is_filtered(config, actor_is_bot=change.actor_is_bot, actor_role_ids=change.actor_role_ids):
        return EventKind.IGNORED_FILTERED

    old_room, new_room = change.old_room_id, change.new_room_id
    if old_room is not None and new_room is not None and old_room != new_room:
        return EventKind.IGNORED_MOVE
    if old_room is None and new_room is not None and config.join_alerts:
        return EventKind.JOIN
    if old_room is not None and new_room is None and config.leave_alerts:
        return EventKind.LEAVE
    # Mute/deafen updates within one room and disabled kinds end up here.
    return EventKind.IGNORED_FILTERED


def classify_presence(change: PresenceChange, config: GuildAlertConfig) -> EventKind:
    if _is_filtered(config, actor_is_bot=change.actor_is_bot, actor_role_ids=change.actor_role_ids):
        return EventKind.IGNORED_FILTERED
    if not config.online_alerts:
        return EventKind.IGNORED_FILTERED
    if change.new_status != ONLINE_STATUS or change.previous_status == ONLINE_STATUS:
        return EventKind.IGNORED_FILTERED
    return EventKind.ONLINE
