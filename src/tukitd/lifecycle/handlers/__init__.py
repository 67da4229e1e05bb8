from .bus_shutdown_handler import BusShutdownHandler
from .status_api_shutdown_handler import StatusApiShutdownHandler
from .task_cancellation_handler import TaskCancellationHandler

__all__ = [
    "BusShutdownHandler",
    "StatusApiShutdownHandler",
    "TaskCancellationHandler",
]
