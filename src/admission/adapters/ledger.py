"""
In-memory, append-only log of saga transactions.

One ledger is created by the application entrypoint and shared by every
coordinator call; tests build their own. Writes go through a re-entrant lock
so concurrent transactions can log without corrupting each other's records.
Nothing is evicted unless ``cleanup_old_logs`` is called. Readers get
snapshots; only the ledger methods change a stored record.
"""

from __future__ import annotations
import logging
import random
import string
import time
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Optional

import config
from admission.domain.exceptions import DuplicateTransactionError
from admission.domain.transaction import FINAL_STATUSES, TransactionRecord, TransactionStatus
from shared.services.sanitizer import sanitize

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class TransactionLedger:

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = RLock()
        self._records: Dict[str, TransactionRecord] = {}

    @staticmethod
    def generate_id() -> str:
        """Return an id of the form ``tx_<unix millis>_<9 base36 chars>``."""
        suffix = "".join(random.choices(_BASE36, k=9))
        return f"tx_{int(time.time() * 1000)}_{suffix}"

    def begin(self, transaction_id: str, transaction_type: str, initial_data: Any = None) -> TransactionRecord:
        with self._lock:
            if transaction_id in self._records:
                raise DuplicateTransactionError(f"Transazione {transaction_id} già esistente")

            record = TransactionRecord(
                id=transaction_id,
                type=transaction_type,
                initial_data=sanitize(initial_data if initial_data is not None else {}),
                created_at=self.clock(),
            )
            self._records[transaction_id] = record
            snapshot = record.snapshot()

        logger.info(f"Transaction {transaction_id} started: {transaction_type}")
        return snapshot

    def append_step(self, transaction_id: str, step: str, status, data: Any = None) -> None:
        with self._lock:
            record = self._records.get(transaction_id)
            if record is None:
                logger.error(f"Cannot log step {step} for unknown transaction {transaction_id}")
                return
            entry = record.add_step(step, status, sanitize(data))

        logger.info(f"Transaction {transaction_id} - step {step}: {entry.status}")

    def complete(self, transaction_id: str, final_status) -> None:
        final_status = TransactionStatus(final_status)
        if final_status not in FINAL_STATUSES:
            raise ValueError(f"Invalid final status for transaction: {final_status.value}")

        with self._lock:
            record = self._records.get(transaction_id)
            if record is None:
                logger.error(f"Cannot complete unknown transaction {transaction_id}")
                return
            if record.is_finished:
                logger.warning(
                    f"Transaction {transaction_id} already {record.status.value}, "
                    f"ignoring transition to {final_status.value}"
                )
                return
            record.complete(final_status)

        logger.info(f"Transaction {transaction_id} finished with status: {final_status.value}")

    def get(self, transaction_id: str) -> Optional[TransactionRecord]:
        with self._lock:
            record = self._records.get(transaction_id)
            return record.snapshot() if record is not None else None

    def list(self) -> List[TransactionRecord]:
        with self._lock:
            records = sorted(self._records.values(), key=lambda record: record.created_at)
            return [record.snapshot() for record in records]

    def stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        oldest = newest = None

        with self._lock:
            records = list(self._records.values())

        for record in records:
            status = record.status.value
            by_status[status] = by_status.get(status, 0) + 1
            by_type[record.type] = by_type.get(record.type, 0) + 1
            if oldest is None or record.created_at < oldest:
                oldest = record.created_at
            if newest is None or record.created_at > newest:
                newest = record.created_at

        return {
            "total": len(records),
            "by_status": by_status,
            "by_type": by_type,
            "oldest_log": oldest,
            "newest_log": newest,
        }

    def cleanup_old_logs(self, max_age: Optional[timedelta] = None) -> int:
        """Remove records created more than ``max_age`` ago. Returns how many went."""
        max_age = max_age if max_age is not None else config.get_ledger_retention()
        cutoff = self.clock() - max_age

        with self._lock:
            expired = [tid for tid, record in self._records.items() if record.created_at < cutoff]
            for transaction_id in expired:
                del self._records[transaction_id]

        if expired:
            logger.info(f"Transaction log cleanup: {len(expired)} records removed")
        return len(expired)

    def collect_new_events(self) -> Iterator:
        with self._lock:
            records = list(self._records.values())
        for record in records:
            while record.events:
                yield record.events.pop(0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
