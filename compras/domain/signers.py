"""Who may sign (approve, reject or return) a budget.

A budget has two kinds of signer: the requester, signing as the customer
who accepts the quote, and a financial approver whose authority is bounded
by a value band. Both drive the same transition, so the workflow receives a
``Signer`` value instead of branching on flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from compras.domain.money import in_range, to_money


@dataclass(frozen=True)
class RequesterSigner:
    user_id: int
    is_requester: bool = True
    approval_level: int | None = None

    def covers(self, amount: Decimal) -> bool:
        return True


@dataclass(frozen=True)
class FinancialApproverSigner:
    user_id: int
    approver_id: int
    approval_level: int
    min_value: Decimal
    max_value: Decimal
    is_requester: bool = False

    def covers(self, amount: Decimal) -> bool:
        return in_range(to_money(amount), self.min_value, self.max_value)


Signer = Union[RequesterSigner, FinancialApproverSigner]
