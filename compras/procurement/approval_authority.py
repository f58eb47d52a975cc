"""Monetary approval authority.

An approver may sign amounts inside the inclusive band
``min_value <= amount <= max_value`` of their single, active approver record.
The requester of a budget is a separate signer kind and is always accepted
for their own budget.
"""

from __future__ import annotations

from decimal import Decimal

from compras.domain.contracts import Approver
from compras.domain.money import to_money
from compras.domain.signers import FinancialApproverSigner, RequesterSigner, Signer
from compras.errors import ActorNotAllowed
from compras.procurement.user_directory import UserDirectory


class ApprovalAuthority:
    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    def active_approver(self, actor_id: int) -> Approver | None:
        approver = self.directory.find_approver_by_user_id(actor_id)
        if approver is None or not approver.is_active:
            return None
        return approver

    def can_approve(self, actor_id: int, amount) -> bool:
        approver = self.active_approver(actor_id)
        if approver is None:
            return False
        return self._signer_for(approver).covers(to_money(amount))

    def require_financial_signer(self, actor_id: int, amount) -> FinancialApproverSigner:
        approver = self.active_approver(actor_id)
        if approver is None:
            raise ActorNotAllowed(code="not_an_approver", details=f"usuario {actor_id} nao e aprovador ativo")
        signer = self._signer_for(approver)
        value = to_money(amount)
        if not signer.covers(value):
            raise ActorNotAllowed(
                code="value_outside_approver_range",
                details=f"valor {value} fora da faixa {approver.min_value}..{approver.max_value}",
                payload={
                    "amount": str(value),
                    "min_value": str(approver.min_value),
                    "max_value": str(approver.max_value),
                },
            )
        return signer

    def resolve_signer(self, actor_id: int, *, requester_id: int, amount: Decimal) -> Signer:
        """Signer for a budget decision: the requester first, otherwise a financial approver."""
        if int(actor_id) == int(requester_id):
            return RequesterSigner(user_id=int(actor_id))
        if self.active_approver(actor_id) is None:
            raise ActorNotAllowed(
                code="budget_signer_required",
                details=f"usuario {actor_id} nao e solicitante nem aprovador ativo",
            )
        return self.require_financial_signer(actor_id, amount)

    @staticmethod
    def _signer_for(approver: Approver) -> FinancialApproverSigner:
        return FinancialApproverSigner(
            user_id=approver.user_id,
            approver_id=approver.id,
            approval_level=approver.approval_level,
            min_value=approver.min_value,
            max_value=approver.max_value,
        )
