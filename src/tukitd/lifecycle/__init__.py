"""
Lifecycle subsystem
-------------------

Drain-then-exit shutdown and the teardown handlers run afterwards:
    from tukitd.lifecycle import ShutdownCoordinator
    from tukitd.lifecycle.handlers import BusShutdownHandler
"""

from .shutdown_coordinator import ShutdownCoordinator
from .shutdown_protocol import IShutdownHandler
from . import handlers

__all__ = [
    "ShutdownCoordinator",
    "IShutdownHandler",
    "handlers",
]
