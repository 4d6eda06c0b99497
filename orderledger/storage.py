"""
In-memory record store.

Records are kept as plain dicts keyed by their internal UUID. Every write goes
through a re-entrant lock; ``unit_of_work`` holds that lock for the whole block
and restores the touched collections if the block raises, which gives the
payment and dispatch flows all-or-nothing semantics.
"""
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional
from uuid import UUID

import structlog

from .exceptions import ConflictError

logger = structlog.get_logger(__name__)

_TRANSACTIONAL_COLLECTIONS = ("orders", "transactions", "dispatches")


class InMemoryStorage:
    def __init__(self):
        self.actors: dict[UUID, dict] = {}
        self.distributers: dict[UUID, dict] = {}
        self.orders: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.dispatches: dict[UUID, dict] = {}
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def unit_of_work(self) -> Iterator["InMemoryStorage"]:
        with self._lock:
            if self._depth:
                # Nested units join the outermost one.
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = {
                name: {key: dict(record) for key, record in getattr(self, name).items()}
                for name in _TRANSACTIONAL_COLLECTIONS
            }
            self._depth = 1
            try:
                yield self
            except BaseException as exc:
                for name, records in snapshot.items():
                    setattr(self, name, records)
                logger.warning("unit_of_work_rolled_back", error=repr(exc))
                raise
            finally:
                self._depth = 0

    # Directory

    def insert_actor(self, data: dict) -> dict:
        with self._lock:
            self._ensure_unique(self.actors, "employee_id", data["employee_id"])
            self.actors[data["id"]] = dict(data)
            return dict(data)

    def get_actor(self, actor_id: UUID) -> Optional[dict]:
        record = self.actors.get(actor_id)
        return dict(record) if record else None

    def save_actor(self, data: dict) -> dict:
        with self._lock:
            self.actors[data["id"]] = dict(data)
            return dict(data)

    def insert_distributer(self, data: dict) -> dict:
        with self._lock:
            self._ensure_unique(self.distributers, "distributer_id", data["distributer_id"])
            self.distributers[data["id"]] = dict(data)
            return dict(data)

    def get_distributer(self, distributer_id: UUID) -> Optional[dict]:
        record = self.distributers.get(distributer_id)
        return dict(record) if record else None

    def save_distributer(self, data: dict) -> dict:
        with self._lock:
            self.distributers[data["id"]] = dict(data)
            return dict(data)

    def find_distributers(self, predicate: Callable[[dict], bool]) -> list[dict]:
        with self._lock:
            return [dict(d) for d in self.distributers.values() if predicate(d)]

    def employee_ids(self) -> list[str]:
        with self._lock:
            return [a["employee_id"] for a in self.actors.values()]

    def distributer_ids(self) -> list[str]:
        with self._lock:
            return [d["distributer_id"] for d in self.distributers.values()]

    # Orders

    def insert_order(self, data: dict) -> dict:
        with self._lock:
            self._ensure_unique(self.orders, "order_id", data["order_id"])
            self.orders[data["id"]] = dict(data)
            return dict(data)

    def get_order(self, order_id: UUID) -> Optional[dict]:
        record = self.orders.get(order_id)
        return dict(record) if record else None

    def save_order(self, data: dict) -> dict:
        with self._lock:
            self.orders[data["id"]] = dict(data)
            return dict(data)

    def update_order_fields(self, order_id: UUID, **fields) -> Optional[dict]:
        """Set only ``fields`` on the stored order; other fields keep their committed values."""
        with self._lock:
            record = self.orders.get(order_id)
            if record is None:
                return None
            record.update(fields)
            return dict(record)

    def order_ids(self) -> list[str]:
        with self._lock:
            return [o["order_id"] for o in self.orders.values()]

    def find_orders(self, predicate: Callable[[dict], bool]) -> list[dict]:
        with self._lock:
            return [dict(o) for o in self.orders.values() if predicate(o)]

    # Ledger

    def insert_transaction(self, data: dict) -> dict:
        with self._lock:
            self.transactions[data["id"]] = dict(data)
            return dict(data)

    def find_transactions(self, predicate: Callable[[dict], bool]) -> list[dict]:
        with self._lock:
            return [dict(t) for t in self.transactions.values() if predicate(t)]

    def insert_dispatch(self, data: dict) -> dict:
        with self._lock:
            self.dispatches[data["id"]] = dict(data)
            return dict(data)

    def find_dispatches(self, predicate: Callable[[dict], bool]) -> list[dict]:
        with self._lock:
            return [dict(d) for d in self.dispatches.values() if predicate(d)]

    @staticmethod
    def _ensure_unique(collection: dict, field: str, value: str) -> None:
        if any(record[field] == value for record in collection.values()):
            raise ConflictError(f"{field} {value} already exists")
