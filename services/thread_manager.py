from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import discord

from gateway.safety import is_not_found
from gateway.task_registry import KeyedSerialQueue
from utils.text import truncate_text


log = logging.getLogger("vcalert.threads")

THREAD_NAME_LIMIT = 100
THREAD_AUTO_ARCHIVE_MINUTES = 60
DEFAULT_INACTIVITY_SECONDS = 10 * 60
DEFAULT_MEMBER_BATCH_SIZE = 50
DEFAULT_MEMBER_BATCH_PAUSE_SECONDS = 0.15
UNKNOWN_MEMBER_CODE = 10007
UNKNOWN_USER_CODE = 10013
EXPECTED_MEMBER_ADD_CODES = frozenset({UNKNOWN_MEMBER_CODE, UNKNOWN_USER_CODE})


class ThreadRefreshError(Exception):
    pass


def thread_name_for(room_name: str | None) -> str:
    return truncate_text(f"🔊 VC Alert ({room_name or 'voice'})", THREAD_NAME_LIMIT)


def _member_ids_for_target(target: Any) -> set[int]:
    members = getattr(target, "members", None)
    if members is not None:
        return {int(member.id) for member in members if not getattr(member, "bot", False)}
    if getattr(target, "bot", False):
        return set()
    return {int(target.id)}


def _is_default_role(target: Any) -> bool:
    is_default = getattr(target, "is_default", None)
    return bool(callable(is_default) and is_default())


def permitted_viewer_ids(room: Any) -> set[int]:
    """Member ids granted view access by the room's overwrites, minus any denies.

    The default role is skipped: its deny is what makes the room private.
    """
    allowed: set[int] = set()
    denied: set[int] = set()
    overwrites = getattr(room, "overwrites", None) or {}
    for target, overwrite in overwrites.items():
        if _is_default_role(target):
            continue
        can_view = getattr(overwrite, "view_channel", None)
        if can_view is None:
            continue
        if can_view:
            allowed |= _member_ids_for_target(target)
        else:
            denied |= _member_ids_for_target(target)
    return allowed - denied


def _is_expected_member_add_error(exc: BaseException) -> bool:
    return getattr(exc, "code", None) in EXPECTED_MEMBER_ADD_CODES or is_not_found(exc)


@dataclass(slots=True)
class ThreadRegistryEntry:
    room_id: int
    thread: Any
    timer: asyncio.Task | None = None
    settled_member_ids: set[int] = field(default_factory=set)

    def cancel_timer(self) -> None:
        timer, self.timer = self.timer, None
        if timer is None or timer.done() or timer is asyncio.current_task():
            return
        timer.cancel()


class ThreadLifecycleManager:
    """Owns one ephemeral private thread per private voice room.

    Everything that touches a room's entry runs under that room's lock, so
    back-to-back events for one room see each other's effects. External
    deletion hooks bypass the lock and only drop local state.
    """

    def __init__(
        self,
        *,
        inactivity_seconds: float = DEFAULT_INACTIVITY_SECONDS,
        member_batch_size: int = DEFAULT_MEMBER_BATCH_SIZE,
        member_batch_pause_seconds: float = DEFAULT_MEMBER_BATCH_PAUSE_SECONDS,
    ) -> None:
        self.inactivity_seconds = float(inactivity_seconds)
        self.member_batch_size = max(1, int(member_batch_size))
        self.member_batch_pause_seconds = max(0.0, float(member_batch_pause_seconds))
        self._entries: dict[int, ThreadRegistryEntry] = {}
        self._locks = KeyedSerialQueue()

    @property
    def room_locks(self) -> KeyedSerialQueue:
        return self._locks

    @property
    def active_room_ids(self) -> list[int]:
        return sorted(self._entries)

    def get_entry(self, room_id: int) -> ThreadRegistryEntry | None:
        return self._entries.get(int(room_id))

    async def acquire_thread(self, room: Any, parent: Any) -> Any | None:
        """Return the live thread for ``room``, creating it when needed.

        Resets the inactivity timer and syncs membership. ``None`` means the
        event should be dropped.
        """
        room_id = int(room.id)
        async with self._locks.hold(room_id):
            entry = self._entries.get(room_id)
            if entry is not None:
                try:
                    entry = await self._revalidate(entry, parent)
                except ThreadRefreshError as exc:
                    log.error("%s", exc)
                    return None

            if entry is None:
                thread = await self._create_thread(room, parent)
                if thread is None:
                    return None
                entry = ThreadRegistryEntry(room_id=room_id, thread=thread)
                self._entries[room_id] = entry

            self._restart_timer(entry)
            await self._sync_members(entry, room)
            return entry.thread

    async def _revalidate(self, entry: ThreadRegistryEntry, parent: Any) -> ThreadRegistryEntry | None:
        thread_id = getattr(entry.thread, "id", None)
        fetch_channel = getattr(getattr(parent, "guild", None), "fetch_channel", None)
        fresh = entry.thread
        if thread_id is None:
            fresh = None
        elif fetch_channel is not None:
            try:
                fresh = await fetch_channel(int(thread_id))
            except Exception as exc:
                if not is_not_found(exc):
                    raise ThreadRefreshError(
                        f"Failed to refresh thread {thread_id} for room {entry.room_id}: {exc}"
                    ) from exc
                fresh = None

        if fresh is None or getattr(fresh, "archived", False):
            log.info("Thread %s for room %s is gone or archived, creating a new one", thread_id, entry.room_id)
            self._discard(entry.room_id)
            return None

        entry.thread = fresh
        return entry

    async def _create_thread(self, room: Any, parent: Any) -> Any | None:
        room_name = getattr(room, "name", None)
        try:
            thread = await parent.create_thread(
                name=thread_name_for(room_name),
                type=discord.ChannelType.private_thread,
                auto_archive_duration=THREAD_AUTO_ARCHIVE_MINUTES,
                invitable=False,
                reason=f"Private VC alert for {room_name}",
            )
        except Exception as exc:
            log.error("Failed to create private thread for room %s (%s): %s", room.id, room_name, exc)
            return None

        log.info("Created private thread %s for room %s (%s)", getattr(thread, "id", None), room.id, room_name)
        return thread

    def _restart_timer(self, entry: ThreadRegistryEntry) -> None:
        entry.cancel_timer()
        entry.timer = asyncio.create_task(
            self._expire_after(entry.room_id),
            name=f"thread_eviction:{entry.room_id}",
        )

    async def _expire_after(self, room_id: int) -> None:
        await asyncio.sleep(self.inactivity_seconds)
        timer = asyncio.current_task()
        await self._locks.run(room_id, lambda: self._evict(room_id, timer))

    async def _evict(self, room_id: int, timer: asyncio.Task | None) -> None:
        entry = self._entries.get(room_id)
        if entry is None or entry.timer is not timer:
            # Reset or forgotten while this timer waited for the room lock.
            return
        del self._entries[room_id]
        entry.timer = None
        try:
            await entry.thread.delete()
        except Exception as exc:
            log.warning("Failed to delete private thread %s for room %s: %s", getattr(entry.thread, "id", None), room_id, exc)
            return
        log.info("Deleted private thread for room %s after inactivity", room_id)

    async def _sync_members(self, entry: ThreadRegistryEntry, room: Any) -> int:
        if not entry.settled_member_ids:
            cached_members = getattr(entry.thread, "members", None) or ()
            entry.settled_member_ids.update(int(member.id) for member in cached_members)

        targets = sorted(permitted_viewer_ids(room) - entry.settled_member_ids)
        if not targets:
            return 0

        added = 0
        for start in range(0, len(targets), self.member_batch_size):
            if start and self.member_batch_pause_seconds:
                await asyncio.sleep(self.member_batch_pause_seconds)
            batch = targets[start : start + self.member_batch_size]
            outcomes = await asyncio.gather(
                *(entry.thread.add_user(discord.Object(id=member_id)) for member_id in batch),
                return_exceptions=True,
            )
            for member_id, outcome in zip(batch, outcomes):
                if not isinstance(outcome, BaseException):
                    entry.settled_member_ids.add(member_id)
                    added += 1
                elif _is_expected_member_add_error(outcome):
                    entry.settled_member_ids.add(member_id)
                else:
                    log.warning("Failed to add member %s to thread for room %s: %s", member_id, entry.room_id, outcome)

        log.debug("Added %s/%s members to thread for room %s", added, len(targets), entry.room_id)
        return added

    def _discard(self, room_id: int) -> ThreadRegistryEntry | None:
        entry = self._entries.pop(int(room_id), None)
        if entry is not None:
            entry.cancel_timer()
        return entry

    def forget_room(self, room_id: int) -> bool:
        entry = self._discard(room_id)
        if entry is not None:
            log.info("Dropped thread tracking for deleted room %s", room_id)
        return entry is not None

    def forget_thread(self, thread_id: int) -> bool:
        for room_id, entry in list(self._entries.items()):
            if getattr(entry.thread, "id", None) == int(thread_id):
                self._discard(room_id)
                log.info("Dropped thread tracking for deleted thread %s (room %s)", thread_id, room_id)
                return True
        return False

    def shutdown(self) -> int:
        count = len(self._entries)
        for entry in self._entries.values():
            entry.cancel_timer()
        self._entries.clear()
        return count
