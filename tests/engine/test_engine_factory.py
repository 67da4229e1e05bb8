"""
Tests for backend selection
"""

import pytest

from tukitd.engine import EngineError, VirtualEngine, create_engine
from tukitd.engine.libtukit_engine import LibTukitEngine
from tukitd.models.config import EngineConfig
from tukitd.models.enums import EngineBackend
from tukitd.runtime.runtime_info import RuntimeInfo


def test_virtual_backend(tmp_path):
    engine = create_engine(EngineConfig(backend=EngineBackend.VIRTUAL, virtual_root=str(tmp_path)))

    assert isinstance(engine, VirtualEngine)
    assert engine.name == "virtual"
    assert engine.root == tmp_path


def test_auto_falls_back_to_virtual(tmp_path, monkeypatch):
    monkeypatch.setattr(RuntimeInfo, "has_libtukit", classmethod(lambda cls: False))

    engine = create_engine(EngineConfig(backend=EngineBackend.AUTO, virtual_root=str(tmp_path)))

    assert isinstance(engine, VirtualEngine)


def test_explicit_libtukit_does_not_fall_back(tmp_path):
    config = EngineConfig(backend=EngineBackend.LIBTUKIT, library=str(tmp_path / "libtukit.so.0"))

    with pytest.raises(EngineError, match="Cannot load"):
        create_engine(config)


def test_libtukit_not_found(monkeypatch):
    monkeypatch.setattr("tukitd.engine.libtukit_engine.find_library", lambda: None)

    with pytest.raises(EngineError, match="libtukit not found"):
        LibTukitEngine()
