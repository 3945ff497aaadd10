"""Record store used by the payments module.

The relational database is an external collaborator; the payments module
only sees this table/where/values interface.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

Record = dict[str, Any]

PAYMENT_WEBHOOKS = "payment_webhooks"
PAYMENTS = "payments"
REFUNDS = "refunds"


class RecordStore(Protocol):
    def insert(self, table: str, values: Record) -> Record:
        """Insert a row and return it, including its generated id."""
        ...

    def update(self, table: str, where: Record, values: Record) -> int:
        """Update every row matching all `where` fields. Returns rows changed."""
        ...

    def find(self, table: str, where: Record) -> list[Record]:
        ...


def _matches(record: Record, where: Record) -> bool:
    return all(record.get(k) == v for k, v in where.items())


class InMemoryRecordStore:
    """Thread-safe dict-of-lists store for development and tests."""

    def __init__(self) -> None:
        self._tables: dict[str, list[Record]] = {}
        self._lock = threading.Lock()

    def insert(self, table: str, values: Record) -> Record:
        now = datetime.now(timezone.utc)
        record = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now}
        record.update(values)
        with self._lock:
            self._tables.setdefault(table, []).append(record)
        return copy.deepcopy(record)

    def update(self, table: str, where: Record, values: Record) -> int:
        changed = 0
        with self._lock:
            for record in self._tables.get(table, []):
                if _matches(record, where):
                    record.update(values)
                    changed += 1
        return changed

    def find(self, table: str, where: Record) -> list[Record]:
        with self._lock:
            rows = [r for r in self._tables.get(table, []) if _matches(r, where)]
            return copy.deepcopy(rows)
