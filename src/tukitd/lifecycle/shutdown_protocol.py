"""
Teardown handler protocol.

Components that hold resources past the drain (bus connection, status API
server, background tasks) implement IShutdownHandler and are registered
with the ShutdownCoordinator.
"""

from typing import Protocol


class IShutdownHandler(Protocol):
    """
    Example:
        class BusShutdownHandler:
            @property
            def shutdown_priority(self) -> int:
                return 50

            async def shutdown(self) -> None:
                self.bus.disconnect()
    """

    @property
    def shutdown_priority(self) -> int:
        """Higher priority shuts down earlier."""
        ...

    async def shutdown(self) -> None:
        """Called once, after the drain finished."""
        ...
