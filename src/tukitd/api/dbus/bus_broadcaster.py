"""
Bus broadcaster: emits TransactionOpened, CommandExecuted and Error signals.
"""

import asyncio
from typing import List, Set

from dbus_fast import Message
from dbus_fast.aio import MessageBus

from tukitd.models.config import BusConfig
from tukitd.models.errors import TransportError
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.BUS)

CANNOT_SEND_COMMAND_EXECUTED = "Cannot send signal 'CommandExecuted'."


class BusBroadcaster:
    """
    IBroadcaster on a dbus-fast connection.

    Every emit returns a future that completes once the message was written
    to the bus socket, or fails with TransportError. A CommandExecuted that
    cannot be sent is reported once through the Error signal; Error signals
    that fail are only logged.
    """

    def __init__(self, bus: MessageBus, config: BusConfig):
        self._bus = bus
        self._config = config
        self._pending: Set[asyncio.Future] = set()

    def _emit(self, interface: str, member: str, signature: str, body: List) -> "asyncio.Future[None]":
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()

        try:
            msg = Message.new_signal(self._config.signal_path, interface, member, signature, body)
            sent = self._bus.send(msg)
        except Exception as ex:
            log.error(f"Sending signal '{member}' failed", error=str(ex))
            result.set_exception(TransportError(f"Sending signal '{member}' failed.", -1))
            return result

        self._pending.add(result)

        def _done(fut: asyncio.Future) -> None:
            self._pending.discard(result)
            if result.done():
                return
            if fut.cancelled():
                result.set_exception(TransportError(f"Sending signal '{member}' was cancelled.", -1))
            elif fut.exception() is not None:
                log.error(f"Sending signal '{member}' failed", error=str(fut.exception()))
                result.set_exception(TransportError(f"Sending signal '{member}' failed.", -1))
            else:
                log.debug(f"Signal {member} sent", body=body)
                result.set_result(None)

        sent.add_done_callback(_done)
        return result

    def transaction_opened(self, snapshot: str) -> "asyncio.Future[None]":
        return self._emit(self._config.interface, "TransactionOpened", "s", [snapshot])

    def command_executed(self, snapshot: str, returncode: int, output: str) -> "asyncio.Future[None]":
        fut = self._emit(self._config.interface, "CommandExecuted", "sis", [snapshot, returncode, output])

        def _fallback(f: asyncio.Future) -> None:
            if not f.cancelled() and f.exception() is not None:
                self.error(snapshot, CANNOT_SEND_COMMAND_EXECUTED, f.exception().code)

        fut.add_done_callback(_fallback)
        return fut

    def error(self, transaction: str, message: str, code: int) -> "asyncio.Future[None]":
        fut = self._emit(self._config.error_interface, "Error", "ssi", [transaction, message, code])
        # nobody awaits Error signals; retrieve the exception so it is not reported as lost
        fut.add_done_callback(lambda f: f.cancelled() or f.exception())
        return fut

    async def flush(self, timeout: float = 2.0) -> None:
        """Wait for signals still being written."""
        if not self._pending:
            return
        done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            log.warn("Signals still unsent at disconnect", count=len(pending))

    @property
    def pending(self) -> int:
        return len(self._pending)
