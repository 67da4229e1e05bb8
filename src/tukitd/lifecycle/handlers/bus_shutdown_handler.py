from __future__ import annotations
from typing import TYPE_CHECKING

from tukitd.utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from tukitd.api.dbus.bus_connection import BusConnection

log = get_logger().for_category(LogCategory.SHUTDOWN)


class BusShutdownHandler:
    """
    Releases the bus name and disconnects from the message bus.

    Runs after the drain, so every CommandExecuted/Error signal for the
    finished transactions has already been queued on the connection.

    Priority: 50
    """

    def __init__(self, connection: "BusConnection"):
        self.connection = connection

    @property
    def shutdown_priority(self) -> int:
        return 50

    async def shutdown(self) -> None:
        log.info("Disconnecting from the message bus...")
        await self.connection.close()
