"""
Tests for the control serializer: single-writer inbox, handlers,
middleware, loopback unlock notifications and stop semantics.
"""

import asyncio
import threading

import pytest

from tukitd.models.errors import BusyError, ShuttingDownError
from tukitd.models.messages import (
    AcquireRequest,
    MessageType,
    ReleaseRequest,
    WorkerStarted,
)
from tukitd.models.enums import TransactionState
from tukitd.services.control_serializer import ControlSerializer
from tukitd.services.middleware import log_middleware


@pytest.mark.asyncio
async def test_acquire_and_busy():
    serializer = ControlSerializer()
    task = asyncio.create_task(serializer.run())

    record = await serializer.acquire("1")
    assert record.id == "1"

    with pytest.raises(BusyError):
        await serializer.acquire("1")

    assert await serializer.release("1") is True
    assert await serializer.release("1") is False

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_effective_release_publishes_unlock_notification():
    serializer = ControlSerializer()
    unlocked = []
    serializer.subscribe(MessageType.TRANSACTION_UNLOCKED, lambda msg: unlocked.append(msg.transaction_id))
    task = asyncio.create_task(serializer.run())

    await serializer.acquire("5")
    await serializer.release("5")
    await serializer.release("5")   # no-op, no notification
    await serializer.snapshot()     # queued after the notification

    assert unlocked == ["5"]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_worker_started_marks_running():
    serializer = ControlSerializer()
    task = asyncio.create_task(serializer.run())

    await serializer.acquire("9")
    await serializer.request(WorkerStarted(transaction_id="9"))
    records = await serializer.snapshot()

    assert [(r.id, r.state) for r in records] == [("9", TransactionState.RUNNING)]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_post_threadsafe_from_worker_thread():
    serializer = ControlSerializer()
    seen = []
    serializer.subscribe(MessageType.RELEASE, lambda msg: seen.append(threading.get_ident()), priority=5)
    task = asyncio.create_task(serializer.run())
    await asyncio.sleep(0)

    await serializer.acquire("3")
    thread = threading.Thread(target=serializer.post_threadsafe, args=(ReleaseRequest(transaction_id="3"),))
    thread.start()
    thread.join()

    for _ in range(100):
        if "3" not in serializer.registry:
            break
        await asyncio.sleep(0.01)

    assert "3" not in serializer.registry
    # handlers ran on the loop thread, not on the posting thread
    assert seen == [threading.get_ident()]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


def test_post_threadsafe_before_run_raises():
    serializer = ControlSerializer()
    with pytest.raises(RuntimeError):
        serializer.post_threadsafe(AcquireRequest(transaction_id="1"))


@pytest.mark.asyncio
async def test_handlers_run_in_priority_order():
    serializer = ControlSerializer()
    order = []
    serializer.subscribe(MessageType.ACQUIRE, lambda msg: order.append(("low", msg.transaction_id in serializer.registry)), priority=-1)
    serializer.subscribe(MessageType.ACQUIRE, lambda msg: order.append(("high", msg.transaction_id in serializer.registry)), priority=10)
    task = asyncio.create_task(serializer.run())

    await serializer.acquire("1")

    # high runs before the built-in registry handler, low after it
    assert order == [("high", False), ("low", True)]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_filter_fn():
    serializer = ControlSerializer()
    seen = []
    serializer.subscribe(
        MessageType.ACQUIRE,
        lambda msg: seen.append(msg.transaction_id),
        priority=5,
        filter_fn=lambda msg: msg.transaction_id.startswith("a")
    )
    task = asyncio.create_task(serializer.run())

    await serializer.acquire("a1")
    await serializer.acquire("b1")

    assert seen == ["a1"]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_middleware_can_block():
    serializer = ControlSerializer()
    serializer.add_middleware(log_middleware)

    def gate(msg):
        if msg.type is MessageType.ACQUIRE and msg.transaction_id == "blocked":
            msg.fail(ShuttingDownError())
            return None
        return msg

    serializer.add_middleware(gate)
    task = asyncio.create_task(serializer.run())

    with pytest.raises(ShuttingDownError):
        await serializer.acquire("blocked")
    assert "blocked" not in serializer.registry

    await serializer.acquire("fine")
    assert "fine" in serializer.registry

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_handler_failure_reaches_caller_and_loop_continues():
    serializer = ControlSerializer()

    def broken(msg):
        raise ValueError("boom")

    serializer.subscribe(MessageType.REGISTRY_SNAPSHOT, broken, priority=5)
    task = asyncio.create_task(serializer.run())

    with pytest.raises(ValueError, match="boom"):
        await serializer.snapshot()

    await serializer.acquire("1")
    assert serializer.is_running

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_async_handler_is_awaited():
    serializer = ControlSerializer()
    seen = []

    async def handler(msg):
        await asyncio.sleep(0)
        seen.append(msg.transaction_id)

    serializer.subscribe(MessageType.ACQUIRE, handler, priority=1)
    task = asyncio.create_task(serializer.run())

    await serializer.acquire("x")
    assert seen == ["x"]

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)


@pytest.mark.asyncio
async def test_stop_fails_queued_and_later_requests():
    serializer = ControlSerializer()
    gate = asyncio.Event()

    async def slow(msg):
        await gate.wait()

    serializer.subscribe(MessageType.ACQUIRE, slow, priority=5, filter_fn=lambda m: m.transaction_id == "slow")
    task = asyncio.create_task(serializer.run())

    first = asyncio.create_task(serializer.acquire("slow"))
    second = asyncio.create_task(serializer.acquire("queued"))
    await asyncio.sleep(0.05)

    serializer.stop()
    gate.set()
    await asyncio.wait_for(task, timeout=5.0)

    # the message being handled completes, the queued one is refused
    assert (await first).id == "slow"
    with pytest.raises(ShuttingDownError):
        await second
    with pytest.raises(ShuttingDownError):
        await serializer.acquire("late")
    assert not serializer.is_running
    assert serializer.stop_requested
