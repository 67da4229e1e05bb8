"""
Virtual engine
==============
In-memory stand-in for libtukit, used on development machines and in tests.
Snapshots are numbered scratch directories; commands really run, via
subprocess, either with the snapshot directory as working directory
(isolated) or in the caller's environment (ambient).
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tukitd.engine.engine_interface import EngineError
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.ENGINE)

DEFAULT_BASES = ("", "active", "default")


class SnapshotStatus(Enum):
    OPEN = auto()       # kept, transaction in progress
    CLOSED = auto()     # finalized


@dataclass
class VirtualSnapshot:
    id: str
    base: str
    root: Path
    status: SnapshotStatus = SnapshotStatus.OPEN


class VirtualEngine:
    """
    Thread-safe snapshot store. Handles from several worker threads may
    operate on different snapshots at once.
    """

    def __init__(self, root_dir: Optional[str] = None):
        self._root = Path(root_dir) if root_dir else Path(tempfile.mkdtemp(prefix="tukitd-virtual-"))
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._snapshots: Dict[str, VirtualSnapshot] = {}
        self._next_id = self._first_free_id()
        log.info("Virtual engine ready", root=str(self._root), next_snapshot=self._next_id)

    @property
    def name(self) -> str:
        return "virtual"

    @property
    def root(self) -> Path:
        return self._root

    def new_transaction(self) -> "VirtualTransaction":
        return VirtualTransaction(self)

    def _first_free_id(self) -> int:
        # directories left by an earlier run keep their numbers
        taken = [int(p.name) for p in self._root.iterdir() if p.is_dir() and p.name.isdigit()]
        return max(taken, default=0) + 1

    # -----------------------------
    # Snapshot store
    # -----------------------------
    def _create(self, base: str) -> VirtualSnapshot:
        with self._lock:
            if base not in DEFAULT_BASES and base not in self._snapshots:
                raise EngineError(f"Base snapshot '{base}' does not exist.")
            while (self._root / str(self._next_id)).exists():
                self._next_id += 1
            snap_id = str(self._next_id)
            self._next_id += 1
            root = self._root / snap_id
            try:
                root.mkdir()
            except OSError as ex:
                raise EngineError(f"Cannot create snapshot {snap_id}: {ex.strerror}") from ex
            snap = VirtualSnapshot(id=snap_id, base=base or "active", root=root)
            self._snapshots[snap_id] = snap
            return snap

    def _get_open(self, snap_id: str) -> VirtualSnapshot:
        with self._lock:
            snap = self._snapshots.get(snap_id)
            if snap is None or snap.status is not SnapshotStatus.OPEN:
                raise EngineError(
                    f"Snapshot {snap_id} is no open transaction "
                    f"(needs user data \"transactional-update-in-progress=yes\")."
                )
            return snap

    def _close(self, snap: VirtualSnapshot) -> None:
        with self._lock:
            snap.status = SnapshotStatus.CLOSED

    def _discard(self, snap: VirtualSnapshot) -> None:
        with self._lock:
            self._snapshots.pop(snap.id, None)
        shutil.rmtree(snap.root, ignore_errors=True)
        log.debug("Discarded snapshot", snapshot=snap.id)

    def snapshot_status(self, snap_id: str) -> Optional[SnapshotStatus]:
        with self._lock:
            snap = self._snapshots.get(snap_id)
            return snap.status if snap else None


class VirtualTransaction:
    def __init__(self, engine: VirtualEngine):
        self._engine = engine
        self._snap: Optional[VirtualSnapshot] = None
        self._retained = False

    def _require(self) -> VirtualSnapshot:
        if self._snap is None:
            raise EngineError("Transaction has not been initialized.")
        return self._snap

    @property
    def snapshot(self) -> str:
        return self._require().id

    def init(self, base: str) -> None:
        self._snap = self._engine._create(base)

    def resume(self, snapshot: str) -> None:
        self._snap = self._engine._get_open(snapshot)

    def _run(self, argv: List[str], cwd: Optional[Path], env: Optional[dict]) -> Tuple[int, str]:
        if not argv:
            raise EngineError("No command given.")
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return 127, f"{argv[0]}: command not found\n"
        except PermissionError:
            return 126, f"{argv[0]}: permission denied\n"
        return proc.returncode, proc.stdout

    def execute(self, argv: List[str]) -> Tuple[int, str]:
        snap = self._require()
        return self._run(argv, cwd=snap.root, env=None)

    def call_ext(self, argv: List[str]) -> Tuple[int, str]:
        snap = self._require()
        root = str(snap.root)
        env = dict(os.environ, TUKIT_SNAPSHOT=snap.id, TUKIT_ROOT=root)
        return self._run([a.replace("{}", root) for a in argv], cwd=None, env=env)

    def keep(self) -> None:
        self._require()
        self._retained = True

    def finalize(self) -> None:
        snap = self._require()
        self._engine._close(snap)
        self._retained = True

    def dispose(self) -> None:
        if self._snap is not None and not self._retained:
            self._engine._discard(self._snap)
        self._snap = None

    def __enter__(self) -> "VirtualTransaction":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()
