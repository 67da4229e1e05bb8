"""
main_asyncio.py: tukitd entry point
------------------------------------

Responsible for:
- loading configuration and configuring the logger
- wiring serializer, engine, execution coordinator and bus surface
- running the event loop until the drain completes
- exit status: 0 on orderly shutdown, 1 if startup fails or a critical task dies
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import yaml

from tukitd import __version__
from tukitd.api.dbus import BusConnection, TransactionInterface
from tukitd.api.status import StatusContext, create_app, set_status_context
from tukitd.engine import EngineError, create_engine
from tukitd.lifecycle import ShutdownCoordinator
from tukitd.lifecycle.api_server_wrapper import APIServerWrapper
from tukitd.lifecycle.handlers import (
    BusShutdownHandler,
    StatusApiShutdownHandler,
    TaskCancellationHandler,
)
from tukitd.managers import ConfigManager
from tukitd.models.config import DaemonConfig
from tukitd.models.enums import BusType, LogCategory, LogLevel
from tukitd.models.errors import TransportError
from tukitd.runtime import RuntimeInfo
from tukitd.services import ControlSerializer, ExecutionCoordinator, TransactionService
from tukitd.services.middleware import log_middleware
from tukitd.utils.logger import configure_logger, get_logger

log = get_logger().for_category(LogCategory.SYSTEM)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tukitd",
        description="D-Bus service running transactional-update operations",
    )
    parser.add_argument(
        "-c", "--config",
        help="Configuration file (default: $TUKITD_CONFIG or /etc/tukitd/tukitd.yaml)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _log_status_api_exit(task: asyncio.Task) -> None:
    # losing the status API does not stop the daemon
    if not task.cancelled() and task.exception() is not None:
        log.error("Status API stopped", error=str(task.exception()))


async def run_daemon(config: DaemonConfig) -> int:
    """
    Run the daemon until it terminates.

    Returns:
        Process exit status
    """
    loop = asyncio.get_running_loop()

    try:
        engine = create_engine(config.engine)
    except EngineError as ex:
        log.error("Failed to initialize transaction engine", error=ex.message)
        return 1
    log.info("Transaction engine ready", backend=engine.name)

    if engine.name == "libtukit" and not RuntimeInfo.is_root():
        log.warn("Not running as root, snapshot operations will most likely fail")
    if config.bus.type is BusType.SYSTEM and not RuntimeInfo.has_system_bus():
        log.warn("No system bus found, try bus.type: session for development")
    elif config.bus.type is BusType.SESSION and not RuntimeInfo.has_session_bus():
        log.warn("DBUS_SESSION_BUS_ADDRESS is not set")

    serializer = ControlSerializer()
    serializer.add_middleware(log_middleware)

    connection = BusConnection(config.bus)
    try:
        await connection.connect()
    except TransportError as ex:
        log.error(ex.message)
        return 1

    broadcaster = connection.broadcaster
    execution = ExecutionCoordinator(serializer, engine, broadcaster)
    service = TransactionService(serializer, execution, engine, broadcaster)
    shutdown = ShutdownCoordinator(
        serializer,
        accept_during_drain=config.shutdown.accept_during_drain,
        timeout_per_handler=config.shutdown.timeout_per_handler,
        total_timeout=config.shutdown.total_timeout,
    )

    serializer_task = asyncio.create_task(serializer.run(), name="ControlSerializer")
    shutdown.watch(serializer_task, "Control serializer")

    try:
        connection.export(TransactionInterface(service, config.bus.interface))
        await connection.request_name()
        shutdown.setup_signal_handlers(loop)
    except (TransportError, OSError, RuntimeError, ValueError) as ex:
        log.error("Startup failed", error=str(ex))
        serializer.stop()
        await serializer_task
        await connection.close()
        return 1

    bus_task = asyncio.create_task(connection.wait_for_disconnect(), name="BusConnection")
    shutdown.watch(bus_task, "Message bus connection")
    background_tasks = [serializer_task, bus_task]

    if config.status_api.enabled:
        set_status_context(StatusContext(
            serializer=serializer,
            shutdown=shutdown,
            execution=execution,
            engine=engine,
        ))
        api_wrapper = APIServerWrapper(create_app(), config.status_api.host, config.status_api.port)
        api_task = asyncio.create_task(api_wrapper.start(), name="StatusApi")
        api_task.add_done_callback(_log_status_api_exit)
        background_tasks.append(api_task)
        shutdown.register(StatusApiShutdownHandler(api_wrapper))

    shutdown.register(BusShutdownHandler(connection))
    shutdown.register(TaskCancellationHandler(background_tasks))

    log.info("🏁 tukitd ready. Waiting for requests...")

    orderly = await shutdown.wait_for_shutdown()
    await shutdown.shutdown_all()
    set_status_context(None)

    if orderly:
        log.info("👋 tukitd shut down cleanly.")
    else:
        log.error("tukitd stopped after a failure", reason=shutdown.reason)
    return shutdown.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    # Set UTF-8 encoding for output (log symbols)
    if hasattr(sys.stdout, "reconfigure") and sys.stdout.encoding and sys.stdout.encoding.lower() != "utf-8":
        sys.stdout.reconfigure(encoding="utf-8")  # type: ignore

    configure_logger(min_level=LogLevel.DEBUG if args.debug else LogLevel.INFO, use_colors=False)

    try:
        config = ConfigManager(args.config).load()
    except (ValueError, OSError, TypeError, yaml.YAMLError) as ex:
        log.error("Invalid configuration", error=str(ex), error_type=type(ex).__name__)
        return 1

    configure_logger(
        min_level=LogLevel.DEBUG if args.debug else config.logging.level,
        use_colors=config.logging.use_colors,
    )

    try:
        return asyncio.run(run_daemon(config))
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received")
        return 0
    except Exception as e:
        log.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
