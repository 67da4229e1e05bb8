"""
Control messages

Everything that changes lock state travels through the control serializer's
inbox as one of these messages. Request-style messages carry a reply future
that the serializer resolves once the message has been processed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, ClassVar, Dict, Optional

from tukitd.models.transaction import ExecutionOutcome


class MessageType(Enum):
    ACQUIRE = auto()
    RELEASE = auto()
    WORKER_STARTED = auto()
    WORKER_FINISHED = auto()
    TERMINATE = auto()
    REGISTRY_SNAPSHOT = auto()
    TRANSACTION_UNLOCKED = auto()


@dataclass
class ControlMessage:
    """Base control message"""

    type: ClassVar[MessageType]
    timestamp: float = field(default_factory=time.time, init=False)
    reply: Optional[asyncio.Future] = field(default=None, init=False, repr=False, compare=False)

    def to_data(self) -> Dict[str, Any]:
        """Payload without metadata, for logging."""
        return {
            k: v for k, v in self.__dict__.items()
            if k not in ("timestamp", "reply")
        }

    def resolve(self, result: Any = None) -> None:
        if self.reply is not None and not self.reply.done():
            self.reply.set_result(result)

    def fail(self, exc: BaseException) -> None:
        if self.reply is not None and not self.reply.done():
            self.reply.set_exception(exc)


@dataclass
class AcquireRequest(ControlMessage):
    type: ClassVar[MessageType] = MessageType.ACQUIRE
    transaction_id: str = ""


@dataclass
class ReleaseRequest(ControlMessage):
    type: ClassVar[MessageType] = MessageType.RELEASE
    transaction_id: str = ""


@dataclass
class WorkerStarted(ControlMessage):
    """Posted by a worker thread as its first action; reply is the rendezvous."""
    type: ClassVar[MessageType] = MessageType.WORKER_STARTED
    transaction_id: str = ""


@dataclass
class WorkerFinished(ControlMessage):
    """Posted by a worker thread on every exit path."""
    type: ClassVar[MessageType] = MessageType.WORKER_FINISHED
    outcome: Optional[ExecutionOutcome] = None

    @property
    def transaction_id(self) -> str:
        return self.outcome.transaction_id if self.outcome else ""


@dataclass
class TerminationRequest(ControlMessage):
    type: ClassVar[MessageType] = MessageType.TERMINATE
    signal_name: str = "SIGTERM"


@dataclass
class RegistrySnapshotRequest(ControlMessage):
    type: ClassVar[MessageType] = MessageType.REGISTRY_SNAPSHOT


@dataclass
class TransactionUnlocked(ControlMessage):
    """Loopback notification published after a lock was actually removed"""
    type: ClassVar[MessageType] = MessageType.TRANSACTION_UNLOCKED
    transaction_id: str = ""
