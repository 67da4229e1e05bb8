"""
Tests for the execution coordinator: worker outcomes (run_task) and the
submit/rendezvous/broadcast/release cycle.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from tukitd.engine.engine_interface import EngineError
from tukitd.models.enums import ExecutionMode, TransactionState
from tukitd.models.errors import CommandExpansionError, ResourceExhaustedError
from tukitd.models.transaction import CommandExecuted, ExecutionFailed, ExecutionTask
from tukitd.services.control_serializer import ControlSerializer
from tukitd.services.execution_coordinator import COMMAND_NOT_PROCESSED, ExecutionCoordinator

from conftest import RecordingBroadcaster, wait_unlocked


def _open(engine) -> str:
    with engine.new_transaction() as tx:
        tx.init("active")
        snap = tx.snapshot
        tx.keep()
    return snap


def _task(snap, command, mode=ExecutionMode.ISOLATED):
    return ExecutionTask.from_request(snap, command, mode)


# -----------------------------
# run_task (worker side, synchronous)
# -----------------------------

def test_run_task_success(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, "echo hi"))

    assert outcome == CommandExecuted(snap, 0, "hi\n")


def test_run_task_isolated_runs_inside_snapshot(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, "pwd"))

    assert outcome.output.strip() == str(engine.root / snap)


def test_run_task_ambient_substitutes_snapshot_root(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, "echo '{}'", ExecutionMode.AMBIENT))

    assert isinstance(outcome, CommandExecuted)
    assert outcome.output == f"{engine.root / snap}\n"


def test_nonzero_exit_is_still_executed(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, "sh -c 'exit 3'"))

    assert isinstance(outcome, CommandExecuted)
    assert outcome.returncode == 3


def test_unknown_program(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, "definitely-not-a-program-xyz"))

    assert isinstance(outcome, CommandExecuted)
    assert outcome.returncode == 127


def test_resume_failure(engine):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())

    outcome = coordinator.run_task(_task("badid", "echo hi"))

    assert isinstance(outcome, ExecutionFailed)
    assert outcome.transaction_id == "badid"
    assert "badid" in outcome.message


@pytest.mark.parametrize("command, code", [
    ("echo a | grep a", CommandExpansionError.WRDE_BADCHAR),
    ("echo $(id)", CommandExpansionError.WRDE_CMDSUB),
    ("echo 'open", CommandExpansionError.WRDE_SYNTAX),
    ("   ", CommandExpansionError.WRDE_SYNTAX),
])
def test_expansion_failure(engine, command, code):
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())
    snap = _open(engine)

    outcome = coordinator.run_task(_task(snap, command))

    assert outcome == ExecutionFailed(snap, COMMAND_NOT_PROCESSED, code)


def test_new_transaction_failure():
    engine = MagicMock()
    engine.new_transaction.side_effect = EngineError("out of handles", -12)
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())

    outcome = coordinator.run_task(_task("1", "echo hi"))

    assert outcome == ExecutionFailed("1", "out of handles", -1)


def test_keep_failure():
    tx = MagicMock()
    tx.__enter__.return_value = tx
    tx.execute.return_value = (0, "ok\n")
    tx.keep.side_effect = EngineError("cannot keep", -5)
    engine = MagicMock()
    engine.new_transaction.return_value = tx
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())

    outcome = coordinator.run_task(_task("1", "echo ok"))

    assert outcome == ExecutionFailed("1", "cannot keep", -1)
    tx.__exit__.assert_called_once()


def test_engine_execute_failure_reports_code():
    tx = MagicMock()
    tx.__enter__.return_value = tx
    tx.execute.side_effect = EngineError("mount failed", -30)
    engine = MagicMock()
    engine.new_transaction.return_value = tx
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, RecordingBroadcaster())

    outcome = coordinator.run_task(_task("1", "echo ok"))

    assert outcome == CommandExecuted("1", -30, "")
    tx.keep.assert_called_once()


# -----------------------------
# submit (loop side)
# -----------------------------

@pytest.mark.asyncio
async def test_submit_returns_when_running_and_releases_after(daemon):
    snap = _open(daemon.engine)
    await daemon.serializer.acquire(snap)

    await daemon.execution.submit(_task(snap, "sleep 0.2"))

    record = daemon.serializer.registry.get(snap)
    assert record is not None
    assert record.state is TransactionState.RUNNING

    signals = await daemon.broadcaster.wait_for("CommandExecuted")
    assert signals == [("CommandExecuted", snap, 0, "")]
    await wait_unlocked(daemon.serializer, snap)
    assert daemon.execution.active_workers == 0


@pytest.mark.asyncio
async def test_broadcast_happens_before_unlock(daemon):
    snap = _open(daemon.engine)
    seen_locked = []
    original = daemon.broadcaster.command_executed

    def command_executed(snapshot, returncode, output):
        seen_locked.append(snapshot in daemon.serializer.registry)
        return original(snapshot, returncode, output)

    daemon.broadcaster.command_executed = command_executed

    await daemon.serializer.acquire(snap)
    await daemon.execution.submit(_task(snap, "true"))
    await daemon.broadcaster.wait_for("CommandExecuted")
    await wait_unlocked(daemon.serializer, snap)

    assert seen_locked == [True]


@pytest.mark.asyncio
async def test_failed_worker_broadcasts_error_and_unlocks(daemon):
    await daemon.serializer.acquire("404")
    await daemon.execution.submit(_task("404", "echo hi"))

    (signal,) = await daemon.broadcaster.wait_for("Error")
    assert signal[1] == "404"
    await wait_unlocked(daemon.serializer, "404")
    assert daemon.broadcaster.named("CommandExecuted") == []


@pytest.mark.asyncio
async def test_submit_fails_when_serializer_is_not_running(engine):
    broadcaster = RecordingBroadcaster()
    coordinator = ExecutionCoordinator(ControlSerializer(), engine, broadcaster)
    snap = _open(engine)

    with pytest.raises(ResourceExhaustedError):
        await asyncio.wait_for(coordinator.submit(_task(snap, "echo hi")), timeout=5.0)

    assert coordinator.active_workers == 0
    assert broadcaster.signals == []
