"""Process-scoped advisory record of local pickups."""

from __future__ import annotations

from functools import lru_cache
from threading import Lock
from typing import Dict, Optional

from models.records import PickupEvent


class PickupRegistry:
    """Last pickup event per batch, held in memory only.

    Entries are lost on restart. They back human-readable status and are
    never consulted for anchoring; the store and ledger stay authoritative.
    """

    def __init__(self) -> None:
        self._events: Dict[str, PickupEvent] = {}
        self._lock = Lock()

    def record(self, event: PickupEvent) -> None:
        with self._lock:
            self._events[event.batch_id] = event

    def get(self, batch_id: str) -> Optional[PickupEvent]:
        with self._lock:
            return self._events.get(batch_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


@lru_cache
def build_default_pickup_registry() -> PickupRegistry:
    return PickupRegistry()
