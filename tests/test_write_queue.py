import asyncio
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workspace_sync.controller.write_queue import WriteQueue  # noqa: E402


@pytest.mark.asyncio
async def test_same_key_writes_run_in_order():
    queue = WriteQueue()
    log = []

    async def write(name, delay):
        async with queue.hold("page-1"):
            log.append(f"{name}:start")
            await asyncio.sleep(delay)
            log.append(f"{name}:end")

    await asyncio.gather(write("first", 0.02), write("second", 0))
    assert log == ["first:start", "first:end", "second:start", "second:end"]
    assert queue._locks == {}


@pytest.mark.asyncio
async def test_different_keys_overlap():
    queue = WriteQueue()
    log = []

    async def write(key, delay):
        async with queue.hold(key):
            log.append(f"{key}:start")
            await asyncio.sleep(delay)
            log.append(f"{key}:end")

    await asyncio.gather(write("a", 0.02), write("b", 0))
    assert log[:2] == ["a:start", "b:start"]


@pytest.mark.asyncio
async def test_shared_keys_do_not_deadlock():
    queue = WriteQueue()

    async def write(*keys):
        async with queue.hold(*keys):
            assert {key for key in keys if key} <= set(queue._locks)
            await asyncio.sleep(0)

    await asyncio.wait_for(asyncio.gather(write("x", "y"), write("y", "x"), write("y", None)), timeout=1)
    assert queue._locks == {}


@pytest.mark.asyncio
async def test_lock_released_after_error():
    queue = WriteQueue()
    with pytest.raises(RuntimeError):
        async with queue.hold("k"):
            raise RuntimeError("write failed")
    async with queue.hold("k"):
        assert queue._locks["k"].locked()
