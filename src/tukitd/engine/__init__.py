"""
Transaction engine backends
---------------------------

    from tukitd.engine import create_engine, EngineError
"""

from .engine_interface import EngineError, ITransaction, ITransactionEngine
from .engine_factory import create_engine
from .virtual_engine import VirtualEngine

__all__ = [
    "EngineError",
    "ITransaction",
    "ITransactionEngine",
    "create_engine",
    "VirtualEngine",
]
