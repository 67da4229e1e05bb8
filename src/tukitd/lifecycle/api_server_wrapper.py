import asyncio
from typing import Optional

import uvicorn
from fastapi import FastAPI

from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)


class APIServerWrapper:
    """
    Runs the status API (uvicorn) as a task of the daemon's own loop.

    uvicorn's signal handlers are disabled: SIGINT/SIGTERM belong to the
    ShutdownCoordinator, which must be able to defer exit until the drain
    is complete.

    Behaviour:
      - start() launches uvicorn.Server.serve() in the background and blocks
        until stop() has been called.
      - stop() unblocks start(), asks uvicorn to exit, and cancels the serve
        task if it does not finish in time.
    """

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 8765):
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def _create_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            loop="asyncio",
            log_level="warning",
            access_log=False,
            server_header=False,
        )
        server = uvicorn.Server(config)
        server.install_signal_handlers = lambda: None  # type: ignore
        return server

    async def start(self, *, wait_started_timeout: float = 5.0) -> None:
        """
        Start uvicorn and wait until stop() is called.

        Raises:
            RuntimeError: Already started, or uvicorn exited before stop()
        """
        if self._serve_task is not None and not self._serve_task.done():
            raise RuntimeError("Status API already started")

        self._server = self._create_server()
        self._stop_event.clear()

        log.info(f"🌐 Launching status API on http://{self.host}:{self.port}")
        self._serve_task = asyncio.create_task(self._server.serve(), name="StatusApiServe")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_started_timeout
        while loop.time() < deadline:
            if getattr(self._server, "started", False):
                log.info("🌐 Status API started")
                break
            if self._serve_task.done():
                break
            await asyncio.sleep(0.05)

        stop_waiter = asyncio.create_task(self._stop_event.wait())
        try:
            await asyncio.wait({stop_waiter, self._serve_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            stop_waiter.cancel()
            await self.stop()
            raise

        if not self._stop_event.is_set():
            stop_waiter.cancel()
            # uvicorn reports bind failures by exiting serve()
            raise RuntimeError(f"Status API on {self.host}:{self.port} exited unexpectedly")

        log.debug("APIServerWrapper.start() exiting (stop_event set)")

    async def stop(self, *, shutdown_timeout: float = 2.0) -> None:
        """Stop the status API and release the port."""
        self._stop_event.set()

        if self._server is None:
            log.debug("Status API stop() called but server was not running")
            return

        log.info("🌐 Stopping status API...")
        self._server.should_exit = True
        self._server.force_exit = True

        if self._serve_task and not self._serve_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=shutdown_timeout)
            except asyncio.TimeoutError:
                log.warn("🌐 Status API shutdown timeout; cancelling serve task")
                self._serve_task.cancel()
                try:
                    await self._serve_task
                except asyncio.CancelledError:
                    log.debug("Uvicorn serve task cancelled")

        self._server = None
        self._serve_task = None
        log.info("🌐 Status API stopped")

    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._serve_task
