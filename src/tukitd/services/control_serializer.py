"""
Control Serializer - the single writer of the transaction registry

All requests and all worker notifications are queued into one inbox and
handled strictly one at a time, in arrival order, on the event loop:
- Producers on the loop: post(msg) / await request(msg)
- Producers on worker threads: post_threadsafe(msg)
- Consumers: subscribe(message_type, handler, priority, filter_fn)
- Middleware: add_middleware(middleware_fn), may rewrite or block messages
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from tukitd.models.errors import ShuttingDownError, TukitError
from tukitd.models.messages import (
    ControlMessage,
    MessageType,
    AcquireRequest,
    ReleaseRequest,
    WorkerStarted,
    WorkerFinished,
    RegistrySnapshotRequest,
    TransactionUnlocked,
)
from tukitd.services.transaction_registry import TransactionRegistry
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SERIALIZER)


@dataclass
class MessageHandler:
    """Handler registration"""
    handler: Callable[[ControlMessage], Any]
    priority: int
    filter_fn: Optional[Callable[[ControlMessage], bool]]


class ControlSerializer:
    """
    Owns the TransactionRegistry and the inbox feeding it.

    Built-in handlers (priority 0) implement the registry operations;
    other components subscribe with a higher priority to act before the
    registry changes, or to TRANSACTION_UNLOCKED to react after.

    Example:
        serializer = ControlSerializer()
        task = asyncio.create_task(serializer.run())

        await serializer.acquire("42")     # raises BusyError if held
        ...
        await serializer.release("42")
    """

    def __init__(self, registry: Optional[TransactionRegistry] = None):
        self._registry = registry or TransactionRegistry()
        self._handlers: Dict[MessageType, List[MessageHandler]] = {}
        self._middleware: List[Callable[[ControlMessage], Optional[ControlMessage]]] = []
        self._inbox: "asyncio.Queue[Optional[ControlMessage]]" = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._stop_requested = False
        self._processed = 0

        self.subscribe(MessageType.ACQUIRE, self._on_acquire)
        self.subscribe(MessageType.RELEASE, self._on_release)
        self.subscribe(MessageType.WORKER_STARTED, self._on_worker_started)
        self.subscribe(MessageType.WORKER_FINISHED, self._on_worker_finished)
        self.subscribe(MessageType.REGISTRY_SNAPSHOT, self._on_registry_snapshot)

    # -----------------------------
    # Registration
    # -----------------------------
    def subscribe(
        self,
        message_type: MessageType,
        handler: Callable[[ControlMessage], Any],
        priority: int = 0,
        filter_fn: Optional[Callable[[ControlMessage], bool]] = None
    ) -> None:
        """
        Subscribe to a message type

        Args:
            message_type: Which messages to handle
            handler: Called with the message (sync or async)
            priority: Higher runs first (built-in registry handlers use 0)
            filter_fn: Optional filter (return True = handle, False = skip)
        """
        entries = self._handlers.setdefault(message_type, [])
        entries.append(MessageHandler(handler, priority, filter_fn))
        entries.sort(key=lambda h: h.priority, reverse=True)
        log.debug(
            "Handler subscribed",
            message_type=message_type.name,
            handler=getattr(handler, "__name__", repr(handler)),
            priority=priority
        )

    def add_middleware(self, middleware: Callable[[ControlMessage], Optional[ControlMessage]]) -> None:
        """
        Add middleware to the message pipeline (FIFO order).

        Returning None blocks the message; the middleware is then
        responsible for failing the message's reply if it has one.
        """
        self._middleware.append(middleware)

    # -----------------------------
    # Intake
    # -----------------------------
    def post(self, msg: ControlMessage) -> None:
        """Queue a message. Must be called on the loop thread."""
        if self._stop_requested:
            msg.fail(ShuttingDownError())
            return
        self._inbox.put_nowait(msg)

    def post_threadsafe(self, msg: ControlMessage) -> None:
        """
        Queue a message from any thread.

        Raises:
            RuntimeError: the serializer has not started or its loop is closed
        """
        if self._loop is None:
            raise RuntimeError("Control serializer is not running")
        self._loop.call_soon_threadsafe(self.post, msg)

    async def request(self, msg: ControlMessage) -> Any:
        """Queue a message and wait until it has been handled."""
        msg.reply = asyncio.get_running_loop().create_future()
        self.post(msg)
        return await msg.reply

    async def acquire(self, transaction_id: str):
        """Lock a transaction. Raises BusyError / ResourceExhaustedError / ShuttingDownError."""
        return await self.request(AcquireRequest(transaction_id=transaction_id))

    async def release(self, transaction_id: str) -> bool:
        return await self.request(ReleaseRequest(transaction_id=transaction_id))

    async def snapshot(self):
        return await self.request(RegistrySnapshotRequest())

    # -----------------------------
    # Loop
    # -----------------------------
    async def run(self) -> None:
        """Process the inbox until stop() is called."""
        self._loop = asyncio.get_running_loop()
        self._running = True
        log.info("Control serializer started")
        try:
            while not self._stop_requested:
                msg = await self._inbox.get()
                if msg is None:
                    continue
                await self._dispatch(msg)
                self._processed += 1
        finally:
            self._running = False
            self._stop_requested = True
            self._fail_pending()
            log.info("Control serializer stopped", processed=self._processed)

    def stop(self) -> None:
        """End the loop once the message being handled is done."""
        if self._stop_requested:
            return
        self._stop_requested = True
        # wake the loop if it is idle
        self._inbox.put_nowait(None)

    def _fail_pending(self) -> None:
        while not self._inbox.empty():
            msg = self._inbox.get_nowait()
            if msg is not None:
                msg.fail(ShuttingDownError())

    async def _dispatch(self, msg: ControlMessage) -> None:
        for middleware in self._middleware:
            processed = middleware(msg)
            if processed is None:
                return
            msg = processed

        handlers = self._handlers.get(msg.type, [])
        for entry in handlers:
            if entry.filter_fn and not entry.filter_fn(msg):
                continue
            try:
                if inspect.iscoroutinefunction(entry.handler):
                    await entry.handler(msg)
                else:
                    entry.handler(msg)
            except Exception as e:
                log.error(
                    f"Handler failed: {getattr(entry.handler, '__name__', entry.handler)} for {msg.type.name}",
                    error=str(e),
                    exc_info=True
                )
                msg.fail(e)

        # requests nobody answered explicitly complete with None
        msg.resolve(None)

    # -----------------------------
    # Built-in registry handlers
    # -----------------------------
    def _on_acquire(self, msg: AcquireRequest) -> None:
        try:
            record = self._registry.acquire(msg.transaction_id)
        except TukitError as ex:
            msg.fail(ex)
            return
        msg.resolve(record)

    def _on_release(self, msg: ReleaseRequest) -> None:
        released = self._registry.release(msg.transaction_id)
        msg.resolve(released)
        if released:
            self.post(TransactionUnlocked(transaction_id=msg.transaction_id))

    def _on_worker_started(self, msg: WorkerStarted) -> None:
        self._registry.mark_running(msg.transaction_id)
        msg.resolve(None)

    def _on_worker_finished(self, msg: WorkerFinished) -> None:
        if self._registry.release(msg.transaction_id):
            self.post(TransactionUnlocked(transaction_id=msg.transaction_id))

    def _on_registry_snapshot(self, msg: RegistrySnapshotRequest) -> None:
        msg.resolve(self._registry.snapshot())

    # -----------------------------
    # Introspection
    # -----------------------------
    @property
    def registry(self) -> TransactionRegistry:
        """Read access for handlers running on the serializer."""
        return self._registry

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def pending(self) -> int:
        return self._inbox.qsize()
