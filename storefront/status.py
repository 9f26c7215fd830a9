"""Admin-driven order status transitions."""
from typing import Dict, FrozenSet

from shared.constants import OrderStatus
from shared.utils import ConflictException

S = OrderStatus

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.BAKING, S.CANCELLED}),
    S.BAKING: frozenset({S.OUT_FOR_DELIVERY}),
    S.OUT_FOR_DELIVERY: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.REDELIVERING}),
    S.REDELIVERING: frozenset({S.OUT_FOR_DELIVERY, S.DELIVERED}),
    S.CANCELLED: frozenset(),
}

def redelivery_requested(order: dict) -> bool:
    return bool(order.get("issue_reported")) and bool(order.get("request_redelivery"))

def can_transition(order: dict, target: OrderStatus) -> bool:
    current = OrderStatus(order["order_status"])
    if current == target:
        return True
    if target not in ALLOWED_TRANSITIONS[current]:
        return False
    if target == S.REDELIVERING:
        return redelivery_requested(order)
    return True

def check_transition(order: dict, target: OrderStatus, enforce: bool):
    """Raise ``ConflictException`` for a disallowed move when ``enforce`` is set.

    With ``enforce`` off any status may overwrite any other.
    """
    if enforce and not can_transition(order, target):
        raise ConflictException(
            f"Cannot move order from {OrderStatus(order['order_status']).value} to {target.value}"
        )
