"""
Transaction engine contract
===========================
Minimal surface the daemon needs from a snapshot-based transaction engine.
Every call may block (btrfs snapshots, mounts, running commands), so callers
keep them off the control loop.
"""

from __future__ import annotations

from typing import List, Protocol, Tuple


class EngineError(Exception):
    """Failure reported by the engine. `message` comes from the engine itself."""

    def __init__(self, message: str, code: int = -1):
        self.message = message
        self.code = code
        super().__init__(message)


class ITransaction(Protocol):
    """
    Handle on one transaction inside the engine.

    A handle is either fresh (init) or attached to an existing snapshot
    (resume). Disposing a handle that was neither kept nor finalized
    discards the snapshot.
    """

    @property
    def snapshot(self) -> str:
        """Snapshot id of the transaction."""
        ...

    def init(self, base: str) -> None:
        """Create a new snapshot from `base` ("" / "active" / "default" / id)."""
        ...

    def resume(self, snapshot: str) -> None:
        """Attach to a kept, still open snapshot."""
        ...

    def execute(self, argv: List[str]) -> Tuple[int, str]:
        """Run argv inside the snapshot. Returns (returncode, output)."""
        ...

    def call_ext(self, argv: List[str]) -> Tuple[int, str]:
        """Run argv in the host environment; "{}" is replaced by the snapshot root."""
        ...

    def keep(self) -> None:
        """Retain the snapshot as an open transaction."""
        ...

    def finalize(self) -> None:
        """Close the transaction; the snapshot becomes the next default."""
        ...

    def dispose(self) -> None:
        """Release the handle."""
        ...

    def __enter__(self) -> "ITransaction":
        ...

    def __exit__(self, *exc) -> None:
        ...


class ITransactionEngine(Protocol):
    """Factory for transaction handles."""

    @property
    def name(self) -> str:
        ...

    def new_transaction(self) -> ITransaction:
        ...
