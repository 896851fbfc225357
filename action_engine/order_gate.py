# action_engine/order_gate.py
"""
Order State Gate

Decides, from order status alone, whether the customer's orders may still be
changed. Pure functions, no I/O.

- PENDING is the only modifiable status.
- The most recent non-cancelled order decides the table-wide verdict.
- The verdict is advisory for the AI prompt and authoritative for the
  action validator.

The transition table is exposed for the order-commit collaborator, which
should compare-and-set on the current status when it applies an action.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    CANCELLED = "CANCELLED"


NOTHING_TO_MODIFY = "There is nothing to modify yet"

_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
    OrderStatus.PREPARING: [OrderStatus.READY],
    OrderStatus.READY: [OrderStatus.SERVED],
    OrderStatus.SERVED: [],
    OrderStatus.CANCELLED: [],
}


class _HasStatus(Protocol):
    status: OrderStatus


class GateVerdict(BaseModel):
    """
    Table-wide modifiability verdict.

    blocking_status is set only when an existing order is the reason for the
    refusal; an empty order list refuses without one.
    """
    model_config = ConfigDict(frozen=True)

    can_modify: bool
    reason: str
    blocking_status: Optional[OrderStatus] = None

    @property
    def has_locked_order(self) -> bool:
        return self.blocking_status is not None


def is_modifiable(status: OrderStatus) -> bool:
    return OrderStatus(status) is OrderStatus.PENDING


def modifiability_by_status() -> Dict[str, bool]:
    return {status.value: is_modifiable(status) for status in OrderStatus}


def allowed_transitions(status: OrderStatus) -> List[OrderStatus]:
    return list(_TRANSITIONS.get(OrderStatus(status), []))


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Forward-only lifecycle check for whoever commits status changes."""
    return OrderStatus(target) in _TRANSITIONS.get(OrderStatus(current), [])


def evaluate(orders: Sequence[_HasStatus]) -> GateVerdict:
    """
    Compute the verdict for a table.

    `orders` must be ordered most-recent-first. Cancelled orders are skipped.
    """
    active = [o for o in orders if OrderStatus(o.status) is not OrderStatus.CANCELLED]
    if not active:
        return GateVerdict(can_modify=False, reason=NOTHING_TO_MODIFY)

    latest = OrderStatus(active[0].status)
    if is_modifiable(latest):
        return GateVerdict(can_modify=True, reason="Your order has not been started yet")

    return GateVerdict(
        can_modify=False,
        reason=f"Your order is already {latest.value.lower()}",
        blocking_status=latest,
    )
