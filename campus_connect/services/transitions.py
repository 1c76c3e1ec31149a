# Legal status transitions for batches and orders.
# Every status write in the services is checked against these tables first.

from __future__ import annotations
from typing import Dict, FrozenSet

from campus_connect.errors import ConflictError
from campus_connect.models import BatchStatus, OrderStatus

BATCH_TRANSITIONS: Dict[BatchStatus, FrozenSet[BatchStatus]] = {
    BatchStatus.OPEN: frozenset({BatchStatus.LOCKED, BatchStatus.CANCELLED}),
    BatchStatus.LOCKED: frozenset({BatchStatus.IN_TRANSIT, BatchStatus.CANCELLED}),
    BatchStatus.IN_TRANSIT: frozenset({BatchStatus.COMPLETED, BatchStatus.CANCELLED}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.NEW: frozenset({OrderStatus.BATCHED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.BATCHED: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition_batch(current: BatchStatus, target: BatchStatus) -> bool:
    return target in BATCH_TRANSITIONS[current]

def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]

def ensure_batch_transition(current: BatchStatus, target: BatchStatus) -> None:
    if not can_transition_batch(current, target):
        raise ConflictError(f"Cannot move batch from {current.value} to {target.value}")

def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition_order(current, target):
        raise ConflictError(f"Cannot move order from {current.value} to {target.value}")

def order_sources(target: OrderStatus) -> FrozenSet[OrderStatus]:
    """Statuses an order may legally be in to move to `target` (used for bulk updates)."""
    return frozenset(s for s, nexts in ORDER_TRANSITIONS.items() if target in nexts)
