from __future__ import annotations

import asyncio

import discord
import pytest

from services.thread_manager import (
    THREAD_NAME_LIMIT,
    ThreadLifecycleManager,
    permitted_viewer_ids,
    thread_name_for,
)


class NotFound(Exception):
    pass


class HTTPException(Exception):
    def __init__(self, code: int):
        super().__init__(f"discord error {code}")
        self.code = code


class _Member:
    def __init__(self, member_id: int, *, bot: bool = False):
        self.id = member_id
        self.bot = bot


class _Role:
    def __init__(self, role_id: int, members: list[_Member], *, default: bool = False):
        self.id = role_id
        self.members = members
        self._default = default

    def is_default(self) -> bool:
        return self._default


class _Overwrite:
    def __init__(self, view_channel):
        self.view_channel = view_channel


class _Thread:
    def __init__(self, thread_id: int):
        self.id = thread_id
        self.archived = False
        self.members: list[_Member] = []
        self.added: list[int] = []
        self.failures: dict[int, Exception] = {}
        self.deleted = 0

    async def add_user(self, user):
        error = self.failures.get(user.id)
        if error is not None:
            raise error
        self.added.append(user.id)

    async def delete(self):
        self.deleted += 1


class _Guild:
    def __init__(self):
        self.threads: dict[int, _Thread] = {}
        self.fetch_error: Exception | None = None

    async def fetch_channel(self, channel_id: int):
        if self.fetch_error is not None:
            raise self.fetch_error
        thread = self.threads.get(channel_id)
        if thread is None:
            raise NotFound("unknown channel")
        return thread


class _Parent:
    def __init__(self):
        self.guild = _Guild()
        self.created: list[dict] = []
        self.create_error: Exception | None = None
        self._next_id = 1000

    async def create_thread(self, **kwargs):
        await asyncio.sleep(0.01)
        if self.create_error is not None:
            raise self.create_error
        thread = _Thread(self._next_id)
        self._next_id += 1
        self.guild.threads[thread.id] = thread
        self.created.append(kwargs)
        return thread


class _Room:
    def __init__(self, room_id: int = 1, name: str = "Secret Lounge", overwrites=None):
        self.id = room_id
        self.name = name
        self.overwrites = overwrites or {}


def _manager(**overrides) -> ThreadLifecycleManager:
    values = {"inactivity_seconds": 0.2, "member_batch_size": 2, "member_batch_pause_seconds": 0.0}
    values.update(overrides)
    return ThreadLifecycleManager(**values)


def _private_room(room_id: int = 1) -> _Room:
    everyone = _Role(0, [_Member(1), _Member(2), _Member(3)], default=True)
    crew = _Role(50, [_Member(1), _Member(2), _Member(99, bot=True)])
    return _Room(
        room_id,
        overwrites={
            everyone: _Overwrite(False),
            crew: _Overwrite(True),
            _Member(3): _Overwrite(True),
            _Member(2): _Overwrite(False),
        },
    )


def test_thread_name_uses_room_name_and_is_truncated():
    assert thread_name_for("Lounge") == "🔊 VC Alert (Lounge)"
    assert len(thread_name_for("x" * 300)) == THREAD_NAME_LIMIT


def test_permitted_viewers_combine_allows_minus_denies_without_bots():
    assert permitted_viewer_ids(_private_room()) == {1, 3}


@pytest.mark.asyncio
async def test_first_event_creates_private_thread_named_after_room():
    manager = _manager()
    parent = _Parent()
    room = _Room(overwrites={})

    thread = await manager.acquire_thread(room, parent)

    assert thread is parent.guild.threads[1000]
    assert parent.created == [
        {
            "name": "🔊 VC Alert (Secret Lounge)",
            "type": discord.ChannelType.private_thread,
            "auto_archive_duration": 60,
            "invitable": False,
            "reason": "Private VC alert for Secret Lounge",
        }
    ]
    assert manager.active_room_ids == [1]
    manager.shutdown()


@pytest.mark.asyncio
async def test_back_to_back_events_for_one_room_create_a_single_thread():
    manager = _manager()
    parent = _Parent()
    room = _Room(overwrites={})

    first, second = await asyncio.gather(
        manager.acquire_thread(room, parent),
        manager.acquire_thread(room, parent),
    )

    assert first is second
    assert len(parent.created) == 1
    assert len(manager.room_locks) == 0
    manager.shutdown()


@pytest.mark.asyncio
async def test_distinct_rooms_get_their_own_threads_concurrently():
    manager = _manager()
    parent = _Parent()

    first, second = await asyncio.gather(
        manager.acquire_thread(_Room(1), parent),
        manager.acquire_thread(_Room(2), parent),
    )

    assert first is not second
    assert manager.active_room_ids == [1, 2]
    manager.shutdown()


@pytest.mark.asyncio
async def test_activity_extends_deadline_and_idle_thread_is_deleted_once():
    manager = _manager(inactivity_seconds=0.2)
    parent = _Parent()
    room = _Room()

    thread = await manager.acquire_thread(room, parent)
    await asyncio.sleep(0.12)
    again = await manager.acquire_thread(room, parent)
    await asyncio.sleep(0.12)

    assert again is thread
    assert thread.deleted == 0
    assert manager.get_entry(room.id) is not None

    await asyncio.sleep(0.2)

    assert thread.deleted == 1
    assert manager.get_entry(room.id) is None
    assert len(parent.created) == 1


@pytest.mark.asyncio
async def test_event_after_eviction_creates_a_fresh_thread():
    manager = _manager(inactivity_seconds=0.05)
    parent = _Parent()
    room = _Room()

    first = await manager.acquire_thread(room, parent)
    await asyncio.sleep(0.12)
    second = await manager.acquire_thread(room, parent)

    assert first.deleted == 1
    assert second is not first
    assert len(parent.created) == 2
    manager.shutdown()


@pytest.mark.asyncio
async def test_stale_timer_does_not_evict_reset_entry():
    manager = _manager()
    parent = _Parent()
    room = _Room()
    thread = await manager.acquire_thread(room, parent)

    await manager._evict(room.id, timer=None)

    assert thread.deleted == 0
    assert manager.get_entry(room.id) is not None
    manager.shutdown()


@pytest.mark.asyncio
async def test_membership_sync_adds_permitted_viewers_once():
    manager = _manager()
    parent = _Parent()
    room = _private_room()

    thread = await manager.acquire_thread(room, parent)
    await manager.acquire_thread(room, parent)

    assert sorted(thread.added) == [1, 3]
    manager.shutdown()


@pytest.mark.asyncio
async def test_membership_sync_skips_existing_thread_members():
    manager = _manager()
    parent = _Parent()
    room = _private_room()
    original_create = parent.create_thread

    async def create_with_member(**kwargs):
        thread = await original_create(**kwargs)
        thread.members = [_Member(1)]
        return thread

    parent.create_thread = create_with_member

    thread = await manager.acquire_thread(room, parent)

    assert thread.added == [3]
    manager.shutdown()


@pytest.mark.asyncio
async def test_unknown_member_errors_are_settled_and_other_errors_retried():
    manager = _manager()
    parent = _Parent()
    room = _Room(
        overwrites={
            _Member(1): _Overwrite(True),
            _Member(2): _Overwrite(True),
            _Member(3): _Overwrite(True),
        }
    )
    original_create = parent.create_thread

    async def create_with_failures(**kwargs):
        created = await original_create(**kwargs)
        created.failures = {1: HTTPException(10007), 2: HTTPException(50001)}
        return created

    parent.create_thread = create_with_failures

    thread = await manager.acquire_thread(room, parent)
    assert thread.added == [3]

    thread.failures = {}
    await manager.acquire_thread(room, parent)

    assert thread.added == [3, 2]
    manager.shutdown()


@pytest.mark.asyncio
async def test_member_adds_are_sent_in_batches():
    manager = _manager(member_batch_size=2, member_batch_pause_seconds=0.01)
    parent = _Parent()
    room = _Room(overwrites={_Member(member_id): _Overwrite(True) for member_id in range(1, 6)})

    thread = await manager.acquire_thread(room, parent)

    assert sorted(thread.added) == [1, 2, 3, 4, 5]
    manager.shutdown()


@pytest.mark.asyncio
async def test_archived_or_deleted_thread_is_replaced_under_the_lock():
    manager = _manager()
    parent = _Parent()
    room = _Room()

    first = await manager.acquire_thread(room, parent)
    first.archived = True
    second = await manager.acquire_thread(room, parent)

    del parent.guild.threads[second.id]
    third = await manager.acquire_thread(room, parent)

    assert len({first.id, second.id, third.id}) == 3
    assert len(parent.created) == 3
    assert manager.get_entry(room.id).thread is third
    manager.shutdown()


@pytest.mark.asyncio
async def test_unexpected_refresh_error_drops_event_but_keeps_entry():
    manager = _manager()
    parent = _Parent()
    room = _Room()
    thread = await manager.acquire_thread(room, parent)

    parent.guild.fetch_error = HTTPException(500)
    result = await manager.acquire_thread(room, parent)

    assert result is None
    assert manager.get_entry(room.id).thread is thread
    assert len(parent.created) == 1
    manager.shutdown()


@pytest.mark.asyncio
async def test_thread_creation_failure_leaves_no_entry():
    manager = _manager()
    parent = _Parent()
    parent.create_error = HTTPException(50013)

    result = await manager.acquire_thread(_Room(), parent)

    assert result is None
    assert manager.active_room_ids == []


@pytest.mark.asyncio
async def test_forget_hooks_drop_entries_and_cancel_timers():
    manager = _manager(inactivity_seconds=0.05)
    parent = _Parent()
    first = await manager.acquire_thread(_Room(1), parent)
    second = await manager.acquire_thread(_Room(2), parent)

    assert manager.forget_room(1) is True
    assert manager.forget_thread(second.id) is True
    assert manager.forget_room(1) is False
    assert manager.forget_thread(424242) is False

    await asyncio.sleep(0.1)
    assert first.deleted == 0
    assert second.deleted == 0
    assert manager.active_room_ids == []


@pytest.mark.asyncio
async def test_shutdown_cancels_timers_without_deleting_threads():
    manager = _manager(inactivity_seconds=0.05)
    parent = _Parent()
    thread = await manager.acquire_thread(_Room(), parent)

    assert manager.shutdown() == 1
    await asyncio.sleep(0.1)

    assert thread.deleted == 0
    assert manager.active_room_ids == []
