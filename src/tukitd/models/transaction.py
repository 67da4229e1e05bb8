from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Union

from tukitd.models.enums import TransactionState, ExecutionMode


@dataclass
class TransactionRecord:
    """One lock held on a transaction id. Only the control serializer mutates it."""
    id: str
    state: TransactionState = TransactionState.QUEUED
    locked_at: float = field(default_factory=time.time)
    running_since: Optional[float] = None


@dataclass(frozen=True)
class ExecutionTask:
    """
    Everything a worker needs, owned by the worker.

    Built from the request values before the worker thread starts; nothing
    in here refers back to request-scoped objects.
    """
    transaction_id: str
    command: str
    mode: ExecutionMode

    @classmethod
    def from_request(cls, transaction_id: str, command: str, mode: ExecutionMode) -> "ExecutionTask":
        return cls(transaction_id=str(transaction_id), command=str(command), mode=mode)


@dataclass(frozen=True)
class CommandExecuted:
    """Worker outcome: command ran and the snapshot was kept"""
    transaction_id: str
    returncode: int
    output: str


@dataclass(frozen=True)
class ExecutionFailed:
    """Worker outcome: reported as an Error broadcast"""
    transaction_id: str
    message: str
    code: int


ExecutionOutcome = Union[CommandExecuted, ExecutionFailed]
