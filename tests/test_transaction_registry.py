"""
Tests for the per-transaction lock table
"""

import pytest

from tukitd.models.enums import TransactionState
from tukitd.models.errors import BusyError, RegistryError
from tukitd.services.transaction_registry import TransactionRegistry


def test_acquire_creates_queued_record():
    registry = TransactionRegistry()
    record = registry.acquire("42")

    assert record.id == "42"
    assert record.state is TransactionState.QUEUED
    assert "42" in registry
    assert len(registry) == 1
    assert not registry.is_empty()


def test_second_acquire_is_busy_and_leaves_record_untouched():
    registry = TransactionRegistry()
    registry.acquire("42")
    registry.mark_running("42")
    before = registry.get("42")

    with pytest.raises(BusyError) as exc_info:
        registry.acquire("42")

    assert exc_info.value.error_name == "org.opensuse.tukit.Error.Busy"
    assert exc_info.value.message == "The transaction is currently in use by another thread."
    assert registry.get("42") is before
    assert before.state is TransactionState.RUNNING


def test_acquire_after_release_succeeds():
    registry = TransactionRegistry()
    registry.acquire("42")
    assert registry.release("42") is True
    registry.acquire("42")
    assert "42" in registry


def test_release_unknown_is_noop():
    registry = TransactionRegistry()
    registry.acquire("1")

    assert registry.release("2") is False
    assert len(registry) == 1


def test_mark_running():
    registry = TransactionRegistry()
    registry.acquire("7")
    record = registry.mark_running("7")

    assert record.state is TransactionState.RUNNING
    assert record.running_since is not None


def test_mark_running_without_lock_is_a_logic_error():
    registry = TransactionRegistry()
    with pytest.raises(RegistryError):
        registry.mark_running("7")


def test_different_ids_are_independent():
    registry = TransactionRegistry()
    registry.acquire("1")
    registry.acquire("2")
    registry.release("1")

    assert "1" not in registry
    assert "2" in registry


def test_snapshot_returns_copies():
    registry = TransactionRegistry()
    registry.acquire("1")
    copies = registry.snapshot()
    copies[0].state = TransactionState.FINISHED

    assert registry.get("1").state is TransactionState.QUEUED
