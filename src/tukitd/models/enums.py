"""
Enums shared across the daemon
"""

from enum import Enum, auto


class TransactionState(Enum):
    """
    Lifecycle of a lock held on a transaction.

    QUEUED: lock acquired, worker not yet running
    RUNNING: worker picked up the transaction
    FINISHED: terminal, record is about to be removed
    """
    QUEUED = auto()
    RUNNING = auto()
    FINISHED = auto()


class ExecutionMode(Enum):
    """Where a command is executed relative to the snapshot"""
    ISOLATED = auto()   # Inside the snapshot's own execution context (Call)
    AMBIENT = auto()    # In the host environment, snapshot attached (CallExt)


class DaemonState(Enum):
    """Shutdown state machine"""
    RUNNING = auto()
    DRAINING = auto()
    TERMINATED = auto()


class EngineBackend(Enum):
    """Transaction engine implementations"""
    AUTO = auto()
    LIBTUKIT = auto()
    VIRTUAL = auto()


class BusType(Enum):
    """Message bus the daemon binds to"""
    SYSTEM = auto()
    SESSION = auto()


class LogLevel(Enum):
    """Log severity levels"""
    DEBUG = auto()
    INFO = auto()
    WARN = auto()
    ERROR = auto()


class LogCategory(Enum):
    """Log categories for grouping related events"""
    CONFIG = auto()      # Configuration loading, validation
    SYSTEM = auto()      # Startup, shutdown, fatal errors
    BUS = auto()         # D-Bus connection, signals, method calls
    REGISTRY = auto()    # Lock acquisition and release
    SERIALIZER = auto()  # Control loop message handling
    EXECUTION = auto()   # Worker threads
    ENGINE = auto()      # Transaction engine backends
    SHUTDOWN = auto()
    API = auto()         # Status API

    GENERAL = auto()
