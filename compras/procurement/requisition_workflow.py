"""Requisition lifecycle.

Every command reads the aggregate and checks its guards first, then writes
inside one transaction with a compare-and-set on ``status``. Losing that race
raises ``ConflictError``; the status write, the history entry and any budget
cascade are committed together or not at all. Events go out after commit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from compras.core.event_bus import BudgetStatusChanged, EventBus, RequisitionStatusChanged, get_event_bus
from compras.domain.contracts import (
    Budget,
    HistoryEntry,
    Requisition,
    RequisitionCreateInput,
    RequisitionListFilters,
    RequisitionUpdateInput,
)
from compras.domain.money import sum_money
from compras.domain.statuses import BUDGET_OPEN, is_terminal_requisition_status
from compras.errors import ActorNotAllowed, ConflictError, NotFoundError, PreconditionFailed, ValidationError
from compras.infrastructure.repositories.base import utc_now_iso
from compras.infrastructure.repositories.budget_repository import BudgetRepository
from compras.infrastructure.repositories.requisition_repository import RequisitionRepository
from compras.policies import is_admin
from compras.procurement.approval_authority import ApprovalAuthority
from compras.procurement.flow_policy import REQUISITION, action_allowed, allowed_actions
from compras.procurement.history import HistoryRecorder
from compras.procurement.transitions import observed_transition, publish_after_commit, require_reason
from compras.procurement.user_directory import UserDirectory
from compras.ui_strings import history_note


logger = logging.getLogger("compras.procurement")

REQUISITION_HEADER_FIELDS = ("description", "cost_center", "justification", "priority", "needed_by_date", "notes")


class RequisitionWorkflow:
    def __init__(
        self,
        db,
        directory: UserDirectory,
        *,
        requisitions: RequisitionRepository | None = None,
        budgets: BudgetRepository | None = None,
        history: HistoryRecorder | None = None,
        event_bus: EventBus | None = None,
        number_prefix: str = "SC",
    ) -> None:
        self.db = db
        self.directory = directory
        self.requisitions = requisitions or RequisitionRepository()
        self.budgets = budgets or BudgetRepository()
        self.history = history or HistoryRecorder()
        self.event_bus = event_bus or get_event_bus()
        self.authority = ApprovalAuthority(directory)
        self.number_prefix = number_prefix

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, requisition_id: int) -> Requisition:
        requisition = self.requisitions.load(self.db, requisition_id)
        if requisition is None:
            raise NotFoundError(
                code="requisition_not_found",
                details=f"solicitacao {requisition_id} nao encontrada",
                payload={"requisition_id": requisition_id},
            )
        return requisition

    def list(self, filters: RequisitionListFilters) -> Tuple[List[Requisition], int]:
        return self.requisitions.list_page(self.db, filters)

    def buyer_queue(self, actor_id: int, status: str = "in_quotation") -> List[Requisition]:
        buyer = self.directory.find_buyer_by_user_id(actor_id)
        if buyer is None or not buyer.is_active:
            return []
        return self.requisitions.list_by_status(self.db, status, buyer_id=buyer.id)

    def approver_queue(self, actor_id: int) -> List[Requisition]:
        if self.authority.active_approver(actor_id) is None:
            return []
        return [
            requisition
            for requisition in self.requisitions.list_by_status(self.db, "pending_approval")
            if self.authority.can_approve(actor_id, requisition.total_value)
        ]

    def history_for(self, requisition_id: int) -> List[HistoryEntry]:
        self.get(requisition_id)
        return self.history.list_for(self.db, requisition_id)

    def statistics(self, *, start: str | None = None, end: str | None = None) -> Dict[str, Any]:
        rows = self.requisitions.summary_rows(self.db, start=start, end=end)
        by_status: Dict[str, int] = {}
        for row in rows:
            by_status[row["status"]] = by_status.get(row["status"], 0) + 1
        return {
            "total": len(rows),
            "by_status": by_status,
            "total_value": str(sum_money(row["total_value"] for row in rows)),
        }

    def is_assigned_buyer(self, requisition: Requisition, actor_id: int) -> bool:
        if requisition.buyer_id is None:
            return False
        buyer = self.directory.find_buyer_by_user_id(actor_id)
        return buyer is not None and buyer.is_active and buyer.id == requisition.buyer_id

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def create(self, actor_id: int, create_input: RequisitionCreateInput) -> Requisition:
        with observed_transition("requisition", "create"):
            if not create_input.items:
                raise ValidationError(code="requisition_items_required", details="solicitacao sem itens")
            with self.db.transaction():
                number = self.requisitions.next_number(
                    self.db,
                    prefix=self.number_prefix,
                    year=datetime.now(timezone.utc).year,
                )
                requisition_id = self.requisitions.create(
                    self.db,
                    number=number,
                    requester_id=actor_id,
                    description=create_input.description,
                    cost_center=create_input.cost_center,
                    justification=create_input.justification,
                    priority=create_input.priority,
                    needed_by_date=create_input.needed_by_date,
                    notes=create_input.notes,
                )
                self.requisitions.replace_items(self.db, requisition_id, create_input.items)
                self.requisitions.recompute_total(self.db, requisition_id)
            logger.info(
                "requisition_created",
                extra={"requisition_id": requisition_id, "number": number, "actor_id": actor_id},
            )
        return self.get(requisition_id)

    def update(self, actor_id: int, requisition_id: int, update_input: RequisitionUpdateInput) -> Requisition:
        with observed_transition("requisition", "update", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "edit_requisition", "requisition_not_draft")
            self._require_requester_or_admin(requisition, actor_id)
            if update_input.items is not None and not update_input.items:
                raise ValidationError(code="requisition_items_required", details="solicitacao sem itens")
            fields = {key: value for key, value in update_input.fields.items() if key in REQUISITION_HEADER_FIELDS}
            with self.db.transaction():
                if self.requisitions.update_fields(self.db, requisition_id, fields, expected_statuses=["draft"]) != 1:
                    raise self._conflict(requisition)
                if update_input.items is not None:
                    self.requisitions.replace_items(self.db, requisition_id, update_input.items)
                self.requisitions.recompute_total(self.db, requisition_id)
        return self.get(requisition_id)

    def delete(self, actor_id: int, requisition_id: int) -> None:
        with observed_transition("requisition", "delete", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "delete_requisition", "requisition_not_draft")
            self._require_requester_or_admin(requisition, actor_id)
            with self.db.transaction():
                if not self.requisitions.delete_draft(self.db, requisition_id):
                    raise self._conflict(requisition)
            logger.info("requisition_deleted", extra={"requisition_id": requisition_id, "actor_id": actor_id})

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, actor_id: int, requisition_id: int, note: str | None = None) -> Requisition:
        with observed_transition("requisition", "submit", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "submit", "requisition_not_draft")
            if int(actor_id) != requisition.requester_id:
                raise ActorNotAllowed(code="only_requester", details="apenas o solicitante envia a solicitacao")
            if not requisition.items:
                raise PreconditionFailed(code="requisition_items_required", details="solicitacao sem itens")
            with self.db.transaction():
                self._move(requisition, actor_id=actor_id, new_status="pending_approval", note=history_note("submitted", note))
        return self.get(requisition_id)

    def approve(self, actor_id: int, requisition_id: int, note: str | None = None) -> Requisition:
        with observed_transition("requisition", "approve", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "approve", "requisition_not_pending_approval")
            signer = self.authority.require_financial_signer(actor_id, requisition.total_value)
            with self.db.transaction():
                self._move(
                    requisition,
                    actor_id=actor_id,
                    new_status="approved",
                    note=history_note("approved", note),
                    fields={"approved_at": utc_now_iso()},
                )
            logger.info(
                "requisition_approved",
                extra={"requisition_id": requisition_id, "approval_level": signer.approval_level},
            )
        return self.get(requisition_id)

    def reject(self, actor_id: int, requisition_id: int, reason: str) -> Requisition:
        with observed_transition("requisition", "reject", requisition_id):
            require_reason(reason)
            requisition = self.get(requisition_id)
            self._require_action(requisition, "reject", "requisition_not_pending_approval")
            if self.authority.active_approver(actor_id) is None:
                raise ActorNotAllowed(code="not_an_approver", details=f"usuario {actor_id} nao e aprovador ativo")
            with self.db.transaction():
                self._move(
                    requisition,
                    actor_id=actor_id,
                    new_status="rejected",
                    note=history_note("rejected", reason),
                    fields={"rejected_at": utc_now_iso()},
                )
        return self.get(requisition_id)

    def assign_buyer(self, actor_id: int, requisition_id: int, buyer_id: int) -> Requisition:
        with observed_transition("requisition", "assign_buyer", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "assign_buyer", "requisition_not_approved")
            if not is_admin(self.directory.role_of(actor_id)):
                actor_buyer = self.directory.find_buyer_by_user_id(actor_id)
                if actor_buyer is None or not actor_buyer.is_active:
                    raise ActorNotAllowed(code="buyer_rights_required", details=f"usuario {actor_id} sem direitos de comprador")
            buyer = self.directory.find_buyer_by_id(buyer_id)
            if buyer is None or not buyer.is_active:
                raise NotFoundError(code="buyer_not_found", details=f"comprador {buyer_id} inexistente ou inativo")
            with self.db.transaction():
                self._move(
                    requisition,
                    actor_id=actor_id,
                    new_status="in_quotation",
                    note=history_note("buyer_assigned", f"comprador #{buyer.id}"),
                    fields={"buyer_id": buyer.id},
                    audience=(requisition.requester_id, buyer.user_id),
                )
        return self.get(requisition_id)

    def cancel(self, actor_id: int, requisition_id: int, reason: str | None = None) -> Requisition:
        with observed_transition("requisition", "cancel", requisition_id):
            requisition = self.get(requisition_id)
            if is_terminal_requisition_status(requisition.status):
                raise PreconditionFailed(
                    code="requisition_not_cancellable",
                    details=f"solicitacao {requisition_id} ja encerrada ({requisition.status})",
                )
            self._require_action(requisition, "cancel", "requisition_not_cancellable")
            self._require_requester_or_admin(requisition, actor_id)
            with self.db.transaction():
                self._move(
                    requisition,
                    actor_id=actor_id,
                    new_status="cancelled",
                    note=history_note("cancelled", reason),
                    fields={"cancelled_at": utc_now_iso()},
                )
                # Read after the status write: no budget can be created once the requisition is cancelled.
                for budget in self.budgets.list_by_requisition(self.db, requisition_id):
                    if budget.status in BUDGET_OPEN:
                        self._cancel_budget(budget, requisition, actor_id)
        return self.get(requisition_id)

    def start_purchase(self, actor_id: int, requisition_id: int, note: str | None = None) -> Requisition:
        with observed_transition("requisition", "start_purchase", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "start_purchase", "requisition_not_budget_approved")
            self._require_assigned_buyer_or_admin(requisition, actor_id)
            with self.db.transaction():
                self._move(requisition, actor_id=actor_id, new_status="in_purchase", note=history_note("purchase_started", note))
        return self.get(requisition_id)

    def mark_purchased(self, actor_id: int, requisition_id: int, note: str | None = None) -> Requisition:
        with observed_transition("requisition", "mark_purchased", requisition_id):
            requisition = self.get(requisition_id)
            self._require_action(requisition, "mark_purchased", "requisition_not_in_purchase")
            self._require_assigned_buyer_or_admin(requisition, actor_id)
            with self.db.transaction():
                self._move(requisition, actor_id=actor_id, new_status="purchased", note=history_note("purchased", note))
        return self.get(requisition_id)

    def apply_system_status(self, requisition: Requisition, new_status: str, *, actor_id: int | None, note: str) -> None:
        """Unguarded status write for changes driven by budget transitions.

        Runs inside the caller's transaction; still compare-and-set on status.
        """
        if requisition.status == new_status:
            return
        self._move(requisition, actor_id=actor_id, new_status=new_status, note=note)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move(
        self,
        requisition: Requisition,
        *,
        actor_id: int | None,
        new_status: str,
        note: str | None,
        fields: Dict[str, Any] | None = None,
        audience: Tuple[int, ...] | None = None,
    ) -> None:
        moved = self.requisitions.transition_status(
            self.db,
            requisition.id,
            expected_status=requisition.status,
            new_status=new_status,
            fields=fields,
        )
        if not moved:
            raise self._conflict(requisition)
        self.history.record(
            self.db,
            requisition_id=requisition.id,
            actor_id=actor_id,
            previous_status=requisition.status,
            new_status=new_status,
            note=note,
        )
        event = RequisitionStatusChanged(
            requisition_id=requisition.id,
            previous_status=requisition.status,
            new_status=new_status,
            actor_id=actor_id,
            audience=audience or self._audience(requisition),
        )
        publish_after_commit(self.db, self.event_bus, event)

    def _cancel_budget(self, budget: Budget, requisition: Requisition, actor_id: int) -> None:
        if self.budgets.update_fields(self.db, budget.id, {"status": "cancelled"}, expected_statuses=[budget.status]) != 1:
            raise ConflictError(
                details=f"orcamento {budget.id} mudou de status",
                payload={"budget_id": budget.id, "expected_status": budget.status},
            )
        event = BudgetStatusChanged(
            budget_id=budget.id,
            requisition_id=requisition.id,
            previous_status=budget.status,
            new_status="cancelled",
            actor_id=actor_id,
            audience=(budget.created_by,),
        )
        publish_after_commit(self.db, self.event_bus, event)

    def _audience(self, requisition: Requisition) -> Tuple[int, ...]:
        audience = [requisition.requester_id]
        if requisition.buyer_id is not None:
            buyer = self.directory.find_buyer_by_id(requisition.buyer_id)
            if buyer is not None and buyer.user_id not in audience:
                audience.append(buyer.user_id)
        return tuple(audience)

    def _require_action(self, requisition: Requisition, action: str, code: str) -> None:
        if action_allowed(REQUISITION, requisition.status, action):
            return
        raise PreconditionFailed(
            code=code,
            details=f"solicitacao {requisition.id} em status {requisition.status}",
            payload={
                "status": requisition.status,
                "action": action,
                "allowed_actions": allowed_actions(REQUISITION, requisition.status),
            },
        )

    def _require_requester_or_admin(self, requisition: Requisition, actor_id: int) -> None:
        if int(actor_id) == requisition.requester_id or is_admin(self.directory.role_of(actor_id)):
            return
        raise ActorNotAllowed(code="requester_or_admin_required", details=f"usuario {actor_id} nao e o solicitante")

    def _require_assigned_buyer_or_admin(self, requisition: Requisition, actor_id: int) -> None:
        if self.is_assigned_buyer(requisition, actor_id) or is_admin(self.directory.role_of(actor_id)):
            return
        raise ActorNotAllowed(code="only_assigned_buyer", details=f"usuario {actor_id} nao e o comprador atribuido")

    @staticmethod
    def _conflict(requisition: Requisition) -> ConflictError:
        return ConflictError(
            details=f"solicitacao {requisition.id} mudou de status",
            payload={"requisition_id": requisition.id, "expected_status": requisition.status},
        )