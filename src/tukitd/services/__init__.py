from .transaction_registry import TransactionRegistry
from .control_serializer import ControlSerializer
from .execution_coordinator import ExecutionCoordinator
from .transaction_service import TransactionService
from .broadcaster import IBroadcaster
from .middleware import log_middleware

__all__ = [
    "TransactionRegistry",
    "ControlSerializer",
    "ExecutionCoordinator",
    "TransactionService",
    "IBroadcaster",
    "log_middleware",
]
