"""
Shutdown coordinator: drain state machine and teardown sequencing.

RUNNING ──signal, registry empty──────────────► TERMINATED
   │                                               ▲
   └──signal, locks held──► DRAINING ──last unlock─┘

Termination requests and unlock notifications are both handled on the
control serializer, so the "is the registry empty?" check never races a
lock change.
"""

import asyncio
import signal
from typing import Dict, List, Optional

from tukitd.models.enums import DaemonState
from tukitd.models.errors import ShuttingDownError
from tukitd.models.messages import (
    ControlMessage,
    MessageType,
    TerminationRequest,
    TransactionUnlocked,
)
from tukitd.services.control_serializer import ControlSerializer
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """
    Defers process exit until no transaction is locked, then tears down the
    registered components in priority order.

    Example:
        coordinator = ShutdownCoordinator(serializer)
        coordinator.register(StatusApiShutdownHandler(wrapper))
        coordinator.register(BusShutdownHandler(bus))
        coordinator.watch(serializer_task, "Control serializer")

        coordinator.setup_signal_handlers(loop)
        orderly = await coordinator.wait_for_shutdown()
        await coordinator.shutdown_all()
    """

    def __init__(
        self,
        serializer: ControlSerializer,
        accept_during_drain: bool = False,
        timeout_per_handler: float = 5.0,
        total_timeout: float = 15.0
    ):
        """
        Args:
            serializer: Control serializer owning the registry
            accept_during_drain: Keep accepting new locks while draining
            timeout_per_handler: Timeout for each teardown handler (seconds)
            total_timeout: Total timeout for the teardown sequence (seconds)
        """
        self._serializer = serializer
        self._state = DaemonState.RUNNING
        self._handlers: List = []
        self._terminated = asyncio.Event()
        self._timeout_per_handler = timeout_per_handler
        self._total_timeout = total_timeout
        self._shutdown_trigger: Dict[str, Optional[str]] = {"reason": None}
        self._critical: Dict[asyncio.Task, str] = {}
        self._failed = False

        serializer.subscribe(MessageType.TERMINATE, self._on_termination_request)
        serializer.subscribe(MessageType.TRANSACTION_UNLOCKED, self._on_transaction_unlocked)
        if not accept_during_drain:
            serializer.add_middleware(self._drain_gate)

    # -----------------------------
    # Registration
    # -----------------------------
    def register(self, handler) -> None:
        """
        Register a teardown handler (IShutdownHandler).

        Raises:
            ValueError: handler lacks shutdown_priority or shutdown()
        """
        if not hasattr(handler, "shutdown_priority"):
            raise ValueError(f"Handler {handler} missing shutdown_priority property")
        if not hasattr(handler, "shutdown"):
            raise ValueError(f"Handler {handler} missing shutdown() method")

        self._handlers.append(handler)
        log.debug(f"Registered shutdown handler: {handler.__class__.__name__}")

    def watch(self, task: asyncio.Task, description: str) -> None:
        """Treat `task` as critical: if it ends before termination, shut down with failure."""
        self._critical[task] = description

    # -----------------------------
    # Signals
    # -----------------------------
    def setup_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Route SIGINT and SIGTERM into the serializer inbox.

        Raises:
            OSError / RuntimeError / ValueError: the loop cannot install them
        """
        for sig in TERMINATION_SIGNALS:
            loop.add_signal_handler(sig, self.request_termination, sig)
        log.info("Signal handlers installed (SIGINT, SIGTERM)")

    def request_termination(self, sig: signal.Signals = signal.SIGTERM) -> None:
        """Queue a termination request; evaluated on the serializer."""
        log.info(f"Signal {sig.name} received")
        self._serializer.post(TerminationRequest(signal_name=sig.name))

    # -----------------------------
    # Serializer handlers
    # -----------------------------
    def _drain_gate(self, msg: ControlMessage) -> Optional[ControlMessage]:
        if self._state is not DaemonState.RUNNING and msg.type is MessageType.ACQUIRE:
            log.warn("Rejecting new work while shutting down", transaction=msg.transaction_id)
            msg.fail(ShuttingDownError())
            return None
        return msg

    def _on_termination_request(self, msg: TerminationRequest) -> None:
        self._shutdown_trigger["reason"] = msg.signal_name
        registry = self._serializer.registry
        if registry.is_empty():
            self._terminate()
            return

        self._state = DaemonState.DRAINING
        log.info(
            "Waiting for remaining transactions to finish...",
            active=len(registry),
            transactions=", ".join(r.id for r in registry.snapshot())
        )

    def _on_transaction_unlocked(self, msg: TransactionUnlocked) -> None:
        if self._state is not DaemonState.DRAINING:
            return
        if self._serializer.registry.is_empty():
            log.info("Last transaction released", transaction=msg.transaction_id)
            self._terminate()
        else:
            log.debug("Still draining", remaining=len(self._serializer.registry))

    def _terminate(self) -> None:
        if self._state is DaemonState.TERMINATED:
            return
        self._state = DaemonState.TERMINATED
        log.info("Terminating.")
        self._serializer.stop()
        self._terminated.set()

    # -----------------------------
    # Waiting
    # -----------------------------
    async def wait_for_shutdown(self) -> bool:
        """
        Wait until the drain completed or a critical task ended.

        Returns:
            True for an orderly termination, False after a critical failure
        """
        terminated_waiter = asyncio.create_task(self._terminated.wait())
        try:
            while not self._terminated.is_set():
                wait_set = {terminated_waiter, *self._critical.keys()}
                done, _ = await asyncio.wait(wait_set, return_when=asyncio.FIRST_COMPLETED)

                if self._terminated.is_set():
                    break

                for task in done:
                    if task is terminated_waiter:
                        continue
                    self._handle_critical_task_completion(task)
                    self._failed = True
                    self._state = DaemonState.TERMINATED
                    self._serializer.stop()
                    return False
        finally:
            if not terminated_waiter.done():
                terminated_waiter.cancel()
        return not self._failed

    def _handle_critical_task_completion(self, task: asyncio.Task) -> None:
        name = self._critical.pop(task, task.get_name())
        if task.cancelled():
            reason = f"{name} was cancelled"
        elif task.exception() is not None:
            reason = f"{name} failed: {task.exception()}"
        else:
            reason = f"{name} exited unexpectedly"
        self._shutdown_trigger["reason"] = reason
        log.error(f"❌ Critical task ended: {reason}")

    # -----------------------------
    # Teardown
    # -----------------------------
    async def shutdown_all(self) -> None:
        """
        Run teardown handlers, highest priority first.

        Each handler has its own timeout and the sequence a global one; a
        failing handler does not stop the others.
        """
        log.info("🛑 Initiating shutdown sequence...")
        log.info(f"   Reason: {self._shutdown_trigger.get('reason') or 'UNKNOWN'}")

        sorted_handlers = sorted(self._handlers, key=lambda h: h.shutdown_priority, reverse=True)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        for handler in sorted_handlers:
            handler_name = handler.__class__.__name__

            elapsed = loop.time() - start_time
            if elapsed > self._total_timeout:
                log.error(f"⚠️  Total shutdown timeout exceeded ({elapsed:.1f}s > {self._total_timeout}s)")
                break

            try:
                log.debug(f"Shutting down {handler_name} (priority={handler.shutdown_priority})...")
                await asyncio.wait_for(handler.shutdown(), timeout=self._timeout_per_handler)
                log.debug(f"✓ {handler_name} shutdown complete")
            except asyncio.TimeoutError:
                log.error(f"⚠️  {handler_name} shutdown timeout ({self._timeout_per_handler}s)")
            except asyncio.CancelledError:
                log.debug(f"{handler_name} shutdown was cancelled")
                raise
            except Exception as e:
                log.error(f"❌ Error shutting down {handler_name}: {e}", exc_info=True)

        log.info("✓ Shutdown sequence complete")

    # -----------------------------
    # Introspection
    # -----------------------------
    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        return self._shutdown_trigger.get("reason")

    @property
    def exit_code(self) -> int:
        return 1 if self._failed else 0
