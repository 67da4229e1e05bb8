"""
org.opensuse.tukit.Transaction

Method handlers are coroutines: they run on the event loop and only wait
on the control serializer or the default executor, so a long Close never
blocks other callers.
"""

from typing import Awaitable, TypeVar

from dbus_fast.service import ServiceInterface, method, signal

from tukitd.api.dbus.errors import to_dbus_error
from tukitd.services.transaction_service import TransactionService
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.BUS)

T = TypeVar("T")

INTERFACE_NAME = "org.opensuse.tukit.Transaction"


class TransactionInterface(ServiceInterface):
    """
    Bus facade over TransactionService.

    The signals below only describe TransactionOpened and CommandExecuted
    for introspection; they are emitted by BusBroadcaster on the service's
    signal path.
    """

    def __init__(self, service: TransactionService, name: str = INTERFACE_NAME):
        super().__init__(name)
        self._service = service

    async def _call(self, member: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as ex:
            error = to_dbus_error(ex)
            log.debug(f"{member} failed", error=error.type, text=error.text)
            raise error from ex

    @method(name="Open")
    async def open(self, base: "s") -> "s":
        return await self._call("Open", self._service.open(base))

    @method(name="Call")
    async def call(self, transaction: "s", command: "s"):
        await self._call("Call", self._service.call(transaction, command))

    @method(name="CallExt")
    async def call_ext(self, transaction: "s", command: "s"):
        await self._call("CallExt", self._service.call_ext(transaction, command))

    @method(name="Close")
    async def close(self, transaction: "s") -> "i":
        return await self._call("Close", self._service.close(transaction))

    @method(name="Abort")
    async def abort(self, transaction: "s") -> "i":
        return await self._call("Abort", self._service.abort(transaction))

    @signal(name="TransactionOpened")
    def transaction_opened(self, snapshot) -> "s":
        return snapshot

    @signal(name="CommandExecuted")
    def command_executed(self, snapshot, returncode, output) -> "sis":
        return [snapshot, returncode, output]
