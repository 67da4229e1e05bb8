"""
Transaction Service - the RPC operations, independent of the bus binding

Open / Call / CallExt / Close / Abort. Blocking engine work runs in the
loop's default executor so the control serializer never waits on it.
"""

from __future__ import annotations

import asyncio
from typing import Callable, TypeVar

from tukitd.engine.engine_interface import EngineError, ITransactionEngine
from tukitd.models.enums import ExecutionMode
from tukitd.models.errors import EngineFailure, InvalidInputError, TransportError
from tukitd.models.transaction import ExecutionTask
from tukitd.services.broadcaster import IBroadcaster
from tukitd.services.control_serializer import ControlSerializer
from tukitd.services.execution_coordinator import ExecutionCoordinator
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SYSTEM)

T = TypeVar("T")


def _validate_id(transaction: str) -> str:
    if not isinstance(transaction, str) or not transaction or "\x00" in transaction:
        raise InvalidInputError("Could not read transaction ID.")
    return transaction


class TransactionService:
    """
    Example:
        service = TransactionService(serializer, coordinator, engine, broadcaster)
        snap = await service.open("active")
        await service.call(snap, "zypper -n in vim")   # returns once running
        ...
        await service.close(snap)
    """

    def __init__(
        self,
        serializer: ControlSerializer,
        coordinator: ExecutionCoordinator,
        engine: ITransactionEngine,
        broadcaster: IBroadcaster
    ):
        self._serializer = serializer
        self._coordinator = coordinator
        self._engine = engine
        self._broadcaster = broadcaster

    async def _in_executor(self, fn: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except EngineError as ex:
            raise EngineFailure(ex.message, ex.code) from ex

    # -----------------------------
    # Open
    # -----------------------------
    def _open_in_engine(self, base: str) -> str:
        with self._engine.new_transaction() as tx:
            tx.init(base)
            snapshot = tx.snapshot
            tx.keep()
            return snapshot

    async def open(self, base: str) -> str:
        """
        Create a transaction from `base` and retain it.

        Raises:
            InvalidInputError, EngineFailure, TransportError
        """
        if not isinstance(base, str) or "\x00" in base:
            raise InvalidInputError("Could not read base snapshot identifier.")

        snapshot = await self._in_executor(self._open_in_engine, base)

        try:
            await self._broadcaster.transaction_opened(snapshot)
        except TransportError as ex:
            raise TransportError("Sending signal 'TransactionOpened' failed.", ex.code) from ex

        log.info(f"Snapshot {snapshot} created.")
        return snapshot

    # -----------------------------
    # Call / CallExt
    # -----------------------------
    async def execute(self, transaction: str, command: str, mode: ExecutionMode) -> None:
        _validate_id(transaction)
        if not isinstance(command, str):
            raise InvalidInputError()

        task = ExecutionTask.from_request(transaction, command, mode)
        await self._serializer.acquire(task.transaction_id)
        await self._coordinator.submit(task)

    async def call(self, transaction: str, command: str) -> None:
        """Run `command` inside the snapshot. Returns once the worker runs."""
        await self.execute(transaction, command, ExecutionMode.ISOLATED)

    async def call_ext(self, transaction: str, command: str) -> None:
        """Run `command` on the host with the snapshot attached."""
        await self.execute(transaction, command, ExecutionMode.AMBIENT)

    # -----------------------------
    # Close / Abort
    # -----------------------------
    def _close_in_engine(self, transaction: str) -> None:
        with self._engine.new_transaction() as tx:
            tx.resume(transaction)
            tx.finalize()

    def _abort_in_engine(self, transaction: str) -> None:
        # resumed but neither kept nor finalized: disposing discards it
        with self._engine.new_transaction() as tx:
            tx.resume(transaction)

    async def _locked(self, transaction: str, fn: Callable[[str], None]) -> int:
        _validate_id(transaction)
        await self._serializer.acquire(transaction)
        try:
            await self._in_executor(fn, transaction)
        finally:
            await self._serializer.release(transaction)
        return 0

    async def close(self, transaction: str) -> int:
        """Finalize the transaction. Returns 0."""
        ret = await self._locked(transaction, self._close_in_engine)
        log.info(f"Snapshot {transaction} closed.")
        return ret

    async def abort(self, transaction: str) -> int:
        """Discard the transaction. Returns 0."""
        ret = await self._locked(transaction, self._abort_in_engine)
        log.info(f"Snapshot {transaction} aborted.")
        return ret
