"""How a budget transition moves the owning requisition.

Kept as one pure function so the propagation rule can be tested without a
database. The caller applies the result through the requisition workflow's
system setter, which also appends the history entry.
"""

from __future__ import annotations

from typing import Iterable

from compras.domain.statuses import QUOTATION_STAGE


def project_parent_status(
    parent_status: str,
    budget_status: str,
    sibling_statuses: Iterable[str] = (),
) -> str | None:
    """Return the requisition's next status, or None when it stays put.

    ``sibling_statuses`` are the statuses of the requisition's other budgets.
    Only requisitions still in the quotation stage are moved; once purchasing
    started (or the requisition closed) budget changes no longer propagate.
    """
    if parent_status not in QUOTATION_STAGE:
        return None

    sibling_approved = "approved" in set(sibling_statuses)

    if budget_status == "approved":
        target = "budget_approved"
    elif budget_status == "rejected":
        if parent_status == "budget_approved" or sibling_approved:
            return None
        target = "budget_rejected"
    elif budget_status == "returned":
        target = "budget_approved" if sibling_approved else "quotation_received"
    else:
        return None

    return None if target == parent_status else target
