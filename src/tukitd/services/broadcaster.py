"""
Broadcast channel protocol

The daemon reports asynchronous results as bus signals. Methods are called
on the event loop, must not block, and return a future that completes once
the signal has been handed to the transport (or fails with TransportError).
"""

from __future__ import annotations

import asyncio
from typing import Protocol


class IBroadcaster(Protocol):

    def transaction_opened(self, snapshot: str) -> "asyncio.Future[None]":
        """A new transaction was created."""
        ...

    def command_executed(self, snapshot: str, returncode: int, output: str) -> "asyncio.Future[None]":
        """A worker finished; the snapshot was kept."""
        ...

    def error(self, transaction: str, message: str, code: int) -> "asyncio.Future[None]":
        """Last-resort report of a failure nobody else can deliver."""
        ...
