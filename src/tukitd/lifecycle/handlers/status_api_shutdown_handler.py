from __future__ import annotations
from typing import TYPE_CHECKING

from tukitd.utils.logger import get_logger, LogCategory

if TYPE_CHECKING:
    from tukitd.lifecycle.api_server_wrapper import APIServerWrapper

log = get_logger().for_category(LogCategory.SHUTDOWN)


class StatusApiShutdownHandler:
    """
    Stops the status API server.

    Priority: 90 (first: nobody should observe a half torn down daemon)
    """

    def __init__(self, api_wrapper: "APIServerWrapper"):
        self.api_wrapper = api_wrapper

    @property
    def shutdown_priority(self) -> int:
        return 90

    async def shutdown(self) -> None:
        if not self.api_wrapper.is_running:
            log.debug("Status API not running")
            return
        await self.api_wrapper.stop()
