"""
Execution Coordinator
---------------------

Runs commands against transactions on dedicated worker threads.

    submit() ──► worker thread ──► WorkerStarted  ──► serializer (RUNNING) ──► submit() returns
                      │
                      └──────────► WorkerFinished ──► serializer (broadcast, release)

Workers never touch the registry or the bus. Everything they produce goes
back through the serializer inbox.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Dict, List

from tukitd.engine.engine_interface import EngineError, ITransactionEngine
from tukitd.models.enums import ExecutionMode
from tukitd.models.errors import CommandExpansionError, ResourceExhaustedError
from tukitd.models.messages import MessageType, WorkerStarted, WorkerFinished
from tukitd.models.transaction import (
    CommandExecuted,
    ExecutionFailed,
    ExecutionOutcome,
    ExecutionTask,
)
from tukitd.services.broadcaster import IBroadcaster
from tukitd.services.control_serializer import ControlSerializer
from tukitd.utils.command_line import expand_command
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.EXECUTION)

COMMAND_NOT_PROCESSED = "Command could not be processed."

# Broadcast before the built-in release handler (priority 0) runs
BROADCAST_PRIORITY = 10


class ExecutionCoordinator:
    """
    Starts one worker thread per execution request.

    Example:
        coordinator = ExecutionCoordinator(serializer, engine, broadcaster)

        await serializer.acquire("42")
        await coordinator.submit(
            ExecutionTask.from_request("42", "zypper -n up", ExecutionMode.ISOLATED)
        )
        # returns as soon as the worker is RUNNING; the result arrives as
        # CommandExecuted / Error broadcast
    """

    def __init__(
        self,
        serializer: ControlSerializer,
        engine: ITransactionEngine,
        broadcaster: IBroadcaster
    ):
        self._serializer = serializer
        self._engine = engine
        self._broadcaster = broadcaster
        # loop-thread only
        self._workers: Dict[str, threading.Thread] = {}

        serializer.subscribe(
            MessageType.WORKER_FINISHED,
            self._on_worker_finished,
            priority=BROADCAST_PRIORITY
        )

    # -----------------------------
    # Submission
    # -----------------------------
    async def submit(self, task: ExecutionTask) -> None:
        """
        Start a worker for `task` and wait until it is RUNNING.

        The caller must hold the lock for task.transaction_id. If no worker
        can be started the lock is released here.

        Raises:
            ResourceExhaustedError: the worker thread could not be started
        """
        started = WorkerStarted(transaction_id=task.transaction_id)
        started.reply = asyncio.get_running_loop().create_future()

        worker = threading.Thread(
            target=self._work,
            args=(task, started),
            name=f"tukitd-exec-{task.transaction_id}",
        )
        try:
            worker.start()
        except RuntimeError as ex:
            log.error("Cannot start worker thread", transaction=task.transaction_id, error=str(ex))
            await self._serializer.release(task.transaction_id)
            raise ResourceExhaustedError("Could not start worker for transaction.") from ex

        self._workers[task.transaction_id] = worker
        try:
            await started.reply
        except ResourceExhaustedError:
            self._workers.pop(task.transaction_id, None)
            if self._serializer.is_running:
                await self._serializer.release(task.transaction_id)
            raise

    # -----------------------------
    # Worker thread
    # -----------------------------
    def _work(self, task: ExecutionTask, started: WorkerStarted) -> None:
        try:
            self._serializer.post_threadsafe(started)
        except RuntimeError as ex:
            log.error("Cannot report worker start", transaction=task.transaction_id, error=str(ex))
            self._fail_start(started, ex)
            return

        outcome = None
        try:
            log.info(f"Executing command `{task.command}` in snapshot {task.transaction_id}...")
            outcome = self.run_task(task)
        except Exception as ex:
            log.error("Worker failed", transaction=task.transaction_id, error=str(ex), exc_info=True)
            outcome = ExecutionFailed(task.transaction_id, f"Internal error: {ex}", -1)
        finally:
            if outcome is None:
                outcome = ExecutionFailed(task.transaction_id, "Worker terminated unexpectedly.", -1)
            try:
                self._serializer.post_threadsafe(WorkerFinished(outcome=outcome))
            except RuntimeError as ex:
                log.error(
                    "Cannot report worker result, control loop is gone",
                    transaction=task.transaction_id,
                    error=str(ex)
                )

    @staticmethod
    def _fail_start(started: WorkerStarted, cause: Exception) -> None:
        """Fail the rendezvous on the submitting loop; the command never runs."""
        error = ResourceExhaustedError("Could not start worker for transaction.")
        error.__cause__ = cause

        def fail() -> None:
            if not started.reply.done():
                started.reply.set_exception(error)

        try:
            started.reply.get_loop().call_soon_threadsafe(fail)
        except RuntimeError as ex:
            log.error("Cannot fail worker start, submitting loop is closed", error=str(ex))

    def run_task(self, task: ExecutionTask) -> ExecutionOutcome:
        """
        Resume, expand, execute, keep. Blocking; runs on the worker thread.

        Never raises for engine or expansion problems; those become an
        ExecutionFailed outcome. A non-zero command return code is a
        successful execution.
        """
        tid = task.transaction_id
        try:
            tx = self._engine.new_transaction()
        except EngineError as ex:
            return ExecutionFailed(tid, ex.message, -1)

        with tx:
            try:
                tx.resume(tid)
            except EngineError as ex:
                log.warn("Cannot resume transaction", transaction=tid, error=ex.message)
                return ExecutionFailed(tid, ex.message, ex.code)

            try:
                argv = self._expand(task.command)
            except CommandExpansionError as ex:
                log.warn("Cannot expand command", transaction=tid, command=task.command, error=ex.message)
                return ExecutionFailed(tid, COMMAND_NOT_PROCESSED, ex.code)

            try:
                if task.mode is ExecutionMode.ISOLATED:
                    returncode, output = tx.execute(argv)
                else:
                    returncode, output = tx.call_ext(argv)
            except EngineError as ex:
                log.warn("Engine could not run command", transaction=tid, error=ex.message)
                returncode, output = (ex.code or -1), ""

            # the snapshot is kept whatever the command returned
            try:
                tx.keep()
            except EngineError as ex:
                log.error("Cannot keep transaction", transaction=tid, error=ex.message)
                return ExecutionFailed(tid, ex.message, -1)

        return CommandExecuted(tid, returncode, output)

    @staticmethod
    def _expand(command: str) -> List[str]:
        argv = expand_command(command)
        if not argv:
            raise CommandExpansionError(CommandExpansionError.WRDE_SYNTAX, "Nothing to execute")
        return argv

    # -----------------------------
    # Completion (serializer)
    # -----------------------------
    def _on_worker_finished(self, msg: WorkerFinished) -> None:
        outcome = msg.outcome
        self._workers.pop(outcome.transaction_id, None)

        if isinstance(outcome, CommandExecuted):
            log.info(
                "Command executed",
                transaction=outcome.transaction_id,
                returncode=outcome.returncode
            )
            self._broadcaster.command_executed(outcome.transaction_id, outcome.returncode, outcome.output)
        else:
            log.warn(
                "Execution failed",
                transaction=outcome.transaction_id,
                error=outcome.message,
                code=outcome.code
            )
            self._broadcaster.error(outcome.transaction_id, outcome.message, outcome.code)

    @property
    def active_workers(self) -> int:
        return len(self._workers)
