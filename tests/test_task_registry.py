from __future__ import annotations

import asyncio

import pytest

from gateway.task_registry import BackgroundTaskSet, KeyedSerialQueue, SingletonTaskRegistry


@pytest.mark.asyncio
async def test_singleton_task_registry_starts_each_name_once():
    registry = SingletonTaskRegistry()
    started = 0

    async def worker():
        nonlocal started
        started += 1
        await asyncio.sleep(10)

    first = registry.start_once("worker", worker)
    second = registry.start_once("worker", worker)
    await asyncio.sleep(0)

    assert first is second
    assert started == 1
    await registry.cancel_all()
    assert first.cancelled()


@pytest.mark.asyncio
async def test_keyed_serial_queue_runs_same_key_in_order():
    queue = KeyedSerialQueue()
    events: list[str] = []

    async def job(name: str):
        events.append(f"{name}:start")
        await asyncio.sleep(0.01)
        events.append(f"{name}:end")

    await asyncio.gather(queue.run(1, lambda: job("a")), queue.run(1, lambda: job("b")))

    assert events == ["a:start", "a:end", "b:start", "b:end"]
    assert 1 not in queue
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_keyed_serial_queue_does_not_block_other_keys():
    queue = KeyedSerialQueue()
    release = asyncio.Event()
    other_ran = asyncio.Event()

    async def blocker():
        await release.wait()

    async def other():
        other_ran.set()

    blocked = asyncio.create_task(queue.run("room-a", blocker))
    await asyncio.sleep(0)
    await asyncio.wait_for(queue.run("room-b", other), timeout=1)

    assert other_ran.is_set()
    assert "room-a" in queue
    release.set()
    await blocked


@pytest.mark.asyncio
async def test_keyed_serial_queue_releases_lock_after_failure():
    queue = KeyedSerialQueue()

    async def boom():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await queue.run(5, boom)

    assert 5 not in queue
    assert await queue.run(5, lambda: asyncio.sleep(0, result="ok")) == "ok"


@pytest.mark.asyncio
async def test_background_task_set_keeps_tasks_until_done():
    tasks = BackgroundTaskSet("test")

    async def failing():
        raise RuntimeError("ignored")

    tasks.spawn(asyncio.sleep(0.01))
    tasks.spawn(failing())
    assert len(tasks) == 2

    await tasks.drain()
    assert len(tasks) == 0


@pytest.mark.asyncio
async def test_background_task_set_cancel_all():
    tasks = BackgroundTaskSet("test")
    task = tasks.spawn(asyncio.sleep(10))

    await tasks.cancel_all()

    assert task.cancelled()
    assert len(tasks) == 0
