from __future__ import annotations

from typing import FrozenSet, Tuple


REQUISITION_STATUSES: Tuple[str, ...] = (
    "draft",
    "pending_approval",
    "approved",
    "rejected",
    "in_quotation",
    "quotation_received",
    "budget_approved",
    "budget_rejected",
    "in_purchase",
    "purchased",
    "cancelled",
    "returned",
)

REQUISITION_TERMINAL: FrozenSet[str] = frozenset({"rejected", "cancelled", "purchased"})

# Parent statuses that budget transitions are allowed to move.
QUOTATION_STAGE: FrozenSet[str] = frozenset(
    {"in_quotation", "quotation_received", "budget_approved", "budget_rejected"}
)

BUDGET_STATUSES: Tuple[str, ...] = ("pending", "approved", "rejected", "returned", "cancelled")
BUDGET_OPEN: FrozenSet[str] = frozenset({"pending", "returned"})

DELIVERY_STATUSES: Tuple[str, ...] = ("pending", "in_transit", "delivered")

PRIORITIES: Tuple[str, ...] = ("low", "normal", "high", "urgent")
DEFAULT_PRIORITY = "normal"

ROLES: FrozenSet[str] = frozenset({"admin", "approver", "buyer", "requester"})
DEFAULT_ROLE = "requester"


def is_terminal_requisition_status(status: str | None) -> bool:
    return str(status or "") in REQUISITION_TERMINAL
