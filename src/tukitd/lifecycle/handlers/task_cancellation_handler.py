from __future__ import annotations
import asyncio
from typing import List

from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)


class TaskCancellationHandler:
    """
    Cancels and awaits the daemon's remaining background tasks
    (serializer loop after a crash, status API task, bus reader).

    Priority: 40 (last)
    """

    def __init__(self, tasks: List[asyncio.Task]):
        self.tasks = tasks

    @property
    def shutdown_priority(self) -> int:
        return 40

    async def shutdown(self) -> None:
        pending = [t for t in self.tasks if not t.done()]
        for task in pending:
            task.cancel()
            log.debug(f"Cancelled task: {task.get_name()}")

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.debug("Background tasks finished", count=len(self.tasks))
