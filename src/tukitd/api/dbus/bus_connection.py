"""
Message bus connection: connect, export the transaction object, own the name.
"""

import asyncio
from typing import Optional

from dbus_fast import BusType as DBusBusType, RequestNameReply
from dbus_fast.aio import MessageBus
from dbus_fast.service import ServiceInterface

from tukitd.api.dbus.bus_broadcaster import BusBroadcaster
from tukitd.models.config import BusConfig
from tukitd.models.enums import BusType
from tukitd.models.errors import TransportError
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.BUS)

_BUS_TYPES = {
    BusType.SYSTEM: DBusBusType.SYSTEM,
    BusType.SESSION: DBusBusType.SESSION,
}


class BusConnection:
    """
    Example:
        connection = BusConnection(config.bus)
        await connection.connect()
        connection.export(TransactionInterface(service))
        await connection.request_name()
        ...
        await connection.close()
    """

    def __init__(self, config: BusConfig):
        self._config = config
        self._bus: Optional[MessageBus] = None
        self._broadcaster: Optional[BusBroadcaster] = None

    async def connect(self) -> MessageBus:
        """
        Raises:
            TransportError: the bus is not reachable
        """
        try:
            self._bus = await MessageBus(bus_type=_BUS_TYPES[self._config.type]).connect()
        except Exception as ex:
            raise TransportError(f"Failed to connect to the {self._config.type.name.lower()} bus: {ex}") from ex

        self._broadcaster = BusBroadcaster(self._bus, self._config)
        log.info("Connected to message bus", bus=self._config.type.name.lower(), unique_name=self._bus.unique_name)
        return self._bus

    def export(self, interface: ServiceInterface) -> None:
        self._require().export(self._config.object_path, interface)
        log.debug("Interface exported", path=self._config.object_path, interface=interface.name)

    async def request_name(self) -> None:
        """
        Take ownership of the service name.

        Raises:
            TransportError: the name is owned by someone else or the request failed
        """
        try:
            reply = await self._require().request_name(self._config.service_name)
        except Exception as ex:
            raise TransportError(f"Failed to acquire service name {self._config.service_name}: {ex}") from ex

        if reply != RequestNameReply.PRIMARY_OWNER:
            raise TransportError(
                f"Failed to acquire service name {self._config.service_name}: {reply.name}"
            )
        log.info(f"Acquired service name {self._config.service_name}")

    async def wait_for_disconnect(self) -> None:
        """Completes when the connection is lost (critical task for the coordinator)."""
        await self._require().wait_for_disconnect()

    async def close(self) -> None:
        if self._bus is None:
            return
        if self._broadcaster is not None:
            await self._broadcaster.flush()
        if self._bus.connected:
            self._bus.disconnect()
            try:
                await asyncio.wait_for(self._bus.wait_for_disconnect(), timeout=1.0)
            except asyncio.TimeoutError:
                log.warn("Bus disconnect timed out")
            except Exception as ex:
                log.debug("Bus disconnected with error", error=str(ex))
        self._bus = None
        log.info("Disconnected from message bus")

    def _require(self) -> MessageBus:
        if self._bus is None:
            raise RuntimeError("Not connected to the message bus")
        return self._bus

    @property
    def broadcaster(self) -> BusBroadcaster:
        if self._broadcaster is None:
            raise RuntimeError("Not connected to the message bus")
        return self._broadcaster
