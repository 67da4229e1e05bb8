"""
Transaction Registry
--------------------

Set of transaction ids that are currently locked, with the lifecycle state
of each lock. There is no internal locking: the registry is owned by the
control serializer, which is the only caller of every method here.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Dict, List, Optional

from tukitd.models.enums import TransactionState
from tukitd.models.errors import BusyError, RegistryError, ResourceExhaustedError
from tukitd.models.transaction import TransactionRecord
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.REGISTRY)


class TransactionRegistry:
    """
    Mutual exclusion per transaction id.

    Example:
        registry = TransactionRegistry()
        registry.acquire("42")        # locked, QUEUED
        registry.acquire("42")        # raises BusyError, record untouched
        registry.mark_running("42")
        registry.release("42")        # True
        registry.release("42")        # False, nothing held
    """

    def __init__(self) -> None:
        self._records: Dict[str, TransactionRecord] = {}

    def acquire(self, transaction_id: str) -> TransactionRecord:
        """
        Lock `transaction_id`.

        Raises:
            BusyError: a record for this id already exists
            ResourceExhaustedError: the record could not be allocated
        """
        if transaction_id in self._records:
            log.warn("Transaction is busy", transaction=transaction_id)
            raise BusyError(transaction_id)

        log.info(f"Locking further invocations for snapshot {transaction_id}...")
        try:
            record = TransactionRecord(id=transaction_id)
            self._records[transaction_id] = record
        except MemoryError as ex:
            # nothing was inserted, no rollback needed
            raise ResourceExhaustedError() from ex
        return record

    def mark_running(self, transaction_id: str) -> TransactionRecord:
        """
        Move a freshly acquired record to RUNNING.

        Raises:
            RegistryError: no record for this id (caller bug)
        """
        record = self._records.get(transaction_id)
        if record is None:
            log.error("mark_running() for a transaction that is not locked", transaction=transaction_id)
            raise RegistryError(f"Transaction {transaction_id} is not locked")
        record.state = TransactionState.RUNNING
        record.running_since = time.time()
        return record

    def release(self, transaction_id: str) -> bool:
        """
        Remove the record for `transaction_id`.

        Returns False (and changes nothing) when the id is not locked.
        """
        record = self._records.pop(transaction_id, None)
        if record is None:
            log.debug("Release of unlocked transaction ignored", transaction=transaction_id)
            return False
        record.state = TransactionState.FINISHED
        log.info(f"Unlocking snapshot {transaction_id}...")
        return True

    def is_empty(self) -> bool:
        return not self._records

    def get(self, transaction_id: str) -> Optional[TransactionRecord]:
        return self._records.get(transaction_id)

    def snapshot(self) -> List[TransactionRecord]:
        """Copies of all records, safe to hand outside the serializer."""
        return [replace(r) for r in self._records.values()]

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._records

    def __len__(self) -> int:
        return len(self._records)
