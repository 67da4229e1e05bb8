# engine_factory.py

from tukitd.engine.engine_interface import EngineError, ITransactionEngine
from tukitd.engine.virtual_engine import VirtualEngine
from tukitd.models.config import EngineConfig
from tukitd.models.enums import EngineBackend
from tukitd.runtime.runtime_info import RuntimeInfo
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.ENGINE)


def create_engine(config: EngineConfig) -> ITransactionEngine:
    """
    Build the configured transaction engine.

    AUTO prefers libtukit and falls back to the virtual engine with a
    warning. An explicit LIBTUKIT never falls back: a daemon asked to manage
    real snapshots must not silently pretend.

    Raises:
        EngineError: LIBTUKIT requested but the library cannot be loaded
    """
    backend = config.backend

    if backend is EngineBackend.AUTO:
        if RuntimeInfo.has_libtukit() or config.library:
            backend = EngineBackend.LIBTUKIT
        else:
            log.warn("libtukit not found, using virtual engine (no real snapshots!)")
            backend = EngineBackend.VIRTUAL

    if backend is EngineBackend.LIBTUKIT:
        from tukitd.engine.libtukit_engine import LibTukitEngine
        try:
            return LibTukitEngine(config.library)
        except EngineError as ex:
            log.error("Cannot use libtukit", error=ex.message)
            raise

    return VirtualEngine(config.virtual_root)
