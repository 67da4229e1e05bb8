"""
Tests for the drain state machine, critical task monitoring and the
prioritized teardown sequence.
"""

import asyncio
import os
import signal

import pytest

from tukitd.lifecycle.shutdown_coordinator import ShutdownCoordinator
from tukitd.models.enums import DaemonState
from tukitd.models.errors import ShuttingDownError

from conftest import wait_unlocked


async def _settle():
    # let the serializer work through what is queued
    for _ in range(5):
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_terminates_immediately_when_idle(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)

    coordinator.request_termination(signal.SIGTERM)
    orderly = await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert orderly is True
    assert coordinator.state is DaemonState.TERMINATED
    assert coordinator.reason == "SIGTERM"
    assert coordinator.exit_code == 0
    await asyncio.wait_for(daemon.task, timeout=2.0)
    assert not daemon.serializer.is_running


@pytest.mark.asyncio
async def test_drains_until_last_lock_is_released(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)
    snap = await daemon.service.open("active")
    await daemon.serializer.acquire(snap)

    coordinator.request_termination(signal.SIGINT)
    await _settle()

    assert coordinator.state is DaemonState.DRAINING
    assert daemon.serializer.is_running

    # a repeated signal re-evaluates and keeps draining
    coordinator.request_termination(signal.SIGTERM)
    await _settle()
    assert coordinator.state is DaemonState.DRAINING

    await daemon.serializer.release(snap)
    orderly = await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert orderly is True
    assert coordinator.state is DaemonState.TERMINATED


@pytest.mark.asyncio
async def test_shutdown_during_active_work(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)
    snap = await daemon.service.open("active")
    await daemon.service.call(snap, "sleep 0.3")

    coordinator.request_termination()
    waiter = asyncio.create_task(coordinator.wait_for_shutdown())
    await _settle()

    assert not waiter.done()
    assert coordinator.state is DaemonState.DRAINING

    assert await asyncio.wait_for(waiter, timeout=5.0) is True
    # the result was still broadcast before the daemon let go
    assert daemon.broadcaster.named("CommandExecuted") == [("CommandExecuted", snap, 0, "")]


@pytest.mark.asyncio
async def test_new_work_rejected_while_draining(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)
    busy = await daemon.service.open("active")
    other = await daemon.service.open("active")
    await daemon.serializer.acquire(busy)

    coordinator.request_termination()
    await _settle()

    with pytest.raises(ShuttingDownError) as exc_info:
        await daemon.service.call(other, "echo hi")
    assert exc_info.value.error_name == "org.opensuse.tukit.Error.ShuttingDown"
    assert other not in daemon.serializer.registry

    await daemon.serializer.release(busy)
    assert await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0) is True


@pytest.mark.asyncio
async def test_accept_during_drain(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer, accept_during_drain=True)
    busy = await daemon.service.open("active")
    other = await daemon.service.open("active")
    await daemon.serializer.acquire(busy)

    coordinator.request_termination()
    await _settle()

    await daemon.service.call(other, "echo hi")
    await daemon.serializer.release(busy)
    await daemon.broadcaster.wait_for("CommandExecuted")
    await wait_unlocked(daemon.serializer, other)

    assert await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0) is True


@pytest.mark.asyncio
async def test_critical_task_failure(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)

    async def crashing():
        await asyncio.sleep(0.05)
        raise RuntimeError("connection lost")

    coordinator.watch(asyncio.create_task(crashing()), "Message bus connection")

    orderly = await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0)

    assert orderly is False
    assert coordinator.exit_code == 1
    assert "Message bus connection failed: connection lost" in coordinator.reason
    assert daemon.serializer.stop_requested


@pytest.mark.asyncio
async def test_critical_task_unexpected_exit(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)

    async def quits():
        return None

    coordinator.watch(asyncio.create_task(quits()), "Control serializer")

    assert await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0) is False
    assert coordinator.reason == "Control serializer exited unexpectedly"


class _Recorder:
    def __init__(self, name, priority, calls, delay=0.0, fail=False):
        self.name = name
        self._priority = priority
        self.calls = calls
        self.delay = delay
        self.fail = fail

    @property
    def shutdown_priority(self):
        return self._priority

    async def shutdown(self):
        self.calls.append(self.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.name} failed")


@pytest.mark.asyncio
async def test_shutdown_all_runs_by_priority_and_survives_failures(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer, timeout_per_handler=0.1)
    calls = []
    coordinator.register(_Recorder("tasks", 40, calls))
    coordinator.register(_Recorder("api", 90, calls, fail=True))
    coordinator.register(_Recorder("bus", 50, calls, delay=1.0))

    await coordinator.shutdown_all()

    assert calls == ["api", "bus", "tasks"]


def test_register_rejects_incomplete_handler():
    from tukitd.services.control_serializer import ControlSerializer

    coordinator = ShutdownCoordinator(ControlSerializer())
    with pytest.raises(ValueError):
        coordinator.register(object())


@pytest.mark.asyncio
async def test_real_sigterm_is_routed_through_serializer(daemon):
    coordinator = ShutdownCoordinator(daemon.serializer)
    loop = asyncio.get_running_loop()
    coordinator.setup_signal_handlers(loop)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        assert await asyncio.wait_for(coordinator.wait_for_shutdown(), timeout=2.0) is True
        assert coordinator.reason == "SIGTERM"
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
