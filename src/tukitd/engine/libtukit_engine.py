"""
libtukit backend
================
ctypes binding to the C API of libtukit (the library behind tukit and
transactional-update). Strings handed out by the library are owned by the
caller and released with libc free().
"""

from __future__ import annotations

import ctypes
import ctypes.util
from typing import Callable, List, Optional, Tuple

from tukitd.engine.engine_interface import EngineError
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.ENGINE)

LIBRARY_NAME = "tukit"


def find_library() -> Optional[str]:
    return ctypes.util.find_library(LIBRARY_NAME)


class _LibTukit:
    """Loaded library with prototypes declared."""

    def __init__(self, path: str):
        try:
            self.lib = ctypes.CDLL(path)
            self.libc = ctypes.CDLL(ctypes.util.find_library("c"))
        except OSError as ex:
            raise EngineError(f"Cannot load {path}: {ex}") from ex

        lib = self.lib
        lib.tukit_get_errmsg.argtypes = []
        lib.tukit_get_errmsg.restype = ctypes.c_char_p
        lib.tukit_new_tx.argtypes = []
        lib.tukit_new_tx.restype = ctypes.c_void_p
        lib.tukit_free_tx.argtypes = [ctypes.c_void_p]
        lib.tukit_free_tx.restype = None
        lib.tukit_tx_init.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
        lib.tukit_tx_init.restype = ctypes.c_int
        lib.tukit_tx_resume.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
        lib.tukit_tx_resume.restype = ctypes.c_int
        for fn in (lib.tukit_tx_execute, lib.tukit_tx_call_ext):
            fn.argtypes = [ctypes.c_void_p, ctypes.POINTER(ctypes.c_char_p), ctypes.POINTER(ctypes.c_void_p)]
            fn.restype = ctypes.c_int
        lib.tukit_tx_keep.argtypes = [ctypes.c_void_p]
        lib.tukit_tx_keep.restype = ctypes.c_int
        lib.tukit_tx_finalize.argtypes = [ctypes.c_void_p]
        lib.tukit_tx_finalize.restype = ctypes.c_int
        lib.tukit_tx_get_snapshot.argtypes = [ctypes.c_void_p]
        lib.tukit_tx_get_snapshot.restype = ctypes.c_void_p
        self.libc.free.argtypes = [ctypes.c_void_p]
        self.libc.free.restype = None

    def errmsg(self) -> str:
        msg = self.lib.tukit_get_errmsg()
        return msg.decode("utf-8", "replace") if msg else "Unknown libtukit error"

    def take_string(self, ptr: Optional[int]) -> str:
        """Copy a malloc'ed C string and free it."""
        if not ptr:
            return ""
        try:
            return ctypes.string_at(ptr).decode("utf-8", "replace")
        finally:
            self.libc.free(ptr)


class LibTukitTransaction:
    def __init__(self, lib: _LibTukit):
        self._lib = lib
        self._tx = lib.lib.tukit_new_tx()
        if not self._tx:
            raise EngineError(lib.errmsg())
        self._snapshot: Optional[str] = None

    def _check(self, ret: int) -> None:
        if ret != 0:
            raise EngineError(self._lib.errmsg(), ret)

    @property
    def snapshot(self) -> str:
        if self._snapshot is None:
            ptr = self._lib.lib.tukit_tx_get_snapshot(self._tx)
            if not ptr:
                raise EngineError(self._lib.errmsg())
            self._snapshot = self._lib.take_string(ptr)
        return self._snapshot

    def init(self, base: str) -> None:
        self._check(self._lib.lib.tukit_tx_init(self._tx, base.encode()))

    def resume(self, snapshot: str) -> None:
        self._check(self._lib.lib.tukit_tx_resume(self._tx, snapshot.encode()))
        self._snapshot = snapshot

    def _run(self, fn: Callable, argv: List[str]) -> Tuple[int, str]:
        c_argv = (ctypes.c_char_p * (len(argv) + 1))(*[a.encode() for a in argv], None)
        output = ctypes.c_void_p()
        ret = fn(self._tx, c_argv, ctypes.byref(output))
        return ret, self._lib.take_string(output.value)

    def execute(self, argv: List[str]) -> Tuple[int, str]:
        return self._run(self._lib.lib.tukit_tx_execute, argv)

    def call_ext(self, argv: List[str]) -> Tuple[int, str]:
        return self._run(self._lib.lib.tukit_tx_call_ext, argv)

    def keep(self) -> None:
        self._check(self._lib.lib.tukit_tx_keep(self._tx))

    def finalize(self) -> None:
        self._check(self._lib.lib.tukit_tx_finalize(self._tx))

    def dispose(self) -> None:
        if self._tx:
            self._lib.lib.tukit_free_tx(self._tx)
            self._tx = None

    def __enter__(self) -> "LibTukitTransaction":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()


class LibTukitEngine:
    """Engine backed by the system's libtukit."""

    def __init__(self, library_path: Optional[str] = None):
        path = library_path or find_library()
        if path is None:
            raise EngineError("libtukit not found")
        self._lib = _LibTukit(path)
        log.info("Loaded libtukit", path=path)

    @property
    def name(self) -> str:
        return "libtukit"

    def new_transaction(self) -> LibTukitTransaction:
        return LibTukitTransaction(self._lib)
