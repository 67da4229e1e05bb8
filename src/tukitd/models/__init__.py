from .enums import TransactionState, ExecutionMode, DaemonState, EngineBackend, BusType, LogLevel, LogCategory
from .transaction import TransactionRecord, ExecutionTask, CommandExecuted, ExecutionFailed, ExecutionOutcome

__all__ = [
    "TransactionState",
    "ExecutionMode",
    "DaemonState",
    "EngineBackend",
    "BusType",
    "LogLevel",
    "LogCategory",
    "TransactionRecord",
    "ExecutionTask",
    "CommandExecuted",
    "ExecutionFailed",
    "ExecutionOutcome",
]
