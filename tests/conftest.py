import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import pytest
import pytest_asyncio

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tukitd.engine.virtual_engine import VirtualEngine
from tukitd.models.errors import TransportError
from tukitd.services import ControlSerializer, ExecutionCoordinator, TransactionService


class RecordingBroadcaster:
    """Collects broadcasts instead of putting them on a bus."""

    def __init__(self):
        self.signals: List[Tuple] = []
        self.fail = set()

    def _emit(self, *signal) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        if signal[0] in self.fail:
            fut.set_exception(TransportError(f"Sending signal '{signal[0]}' failed.", -1))
        else:
            self.signals.append(signal)
            fut.set_result(None)
        return fut

    def transaction_opened(self, snapshot):
        return self._emit("TransactionOpened", snapshot)

    def command_executed(self, snapshot, returncode, output):
        return self._emit("CommandExecuted", snapshot, returncode, output)

    def error(self, transaction, message, code):
        return self._emit("Error", transaction, message, code)

    def named(self, name: str) -> List[Tuple]:
        return [s for s in self.signals if s[0] == name]

    async def wait_for(self, name: str, count: int = 1, timeout: float = 5.0) -> List[Tuple]:
        async def _poll():
            while len(self.named(name)) < count:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(_poll(), timeout=timeout)
        return self.named(name)


async def wait_unlocked(serializer: ControlSerializer, transaction: str, timeout: float = 5.0) -> None:
    async def _poll():
        while transaction in serializer.registry:
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout=timeout)


@dataclass
class Daemon:
    serializer: ControlSerializer
    engine: VirtualEngine
    broadcaster: RecordingBroadcaster
    execution: ExecutionCoordinator
    service: TransactionService
    task: asyncio.Task


@pytest.fixture
def engine(tmp_path):
    return VirtualEngine(str(tmp_path / "snapshots"))


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest_asyncio.fixture
async def daemon(engine, broadcaster):
    """Serializer running on the test loop, with execution and service layers wired."""
    serializer = ControlSerializer()
    execution = ExecutionCoordinator(serializer, engine, broadcaster)
    service = TransactionService(serializer, execution, engine, broadcaster)
    task = asyncio.create_task(serializer.run())
    await asyncio.sleep(0)

    yield Daemon(serializer, engine, broadcaster, execution, service, task)

    serializer.stop()
    await asyncio.wait_for(task, timeout=5.0)
