"""Supplier budget (orcamento) lifecycle and delivery handshake.

A budget is signed by either the requisition's requester or a financial
approver; whoever acts first decides. Each signed transition also writes a
``budget_signatures`` row and, through ``project_parent_status``, may move
the owning requisition in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Tuple

from compras.core.event_bus import BudgetStatusChanged, EventBus, get_event_bus
from compras.domain.contracts import (
    Budget,
    BudgetCreateInput,
    BudgetLineItemInput,
    BudgetSignature,
    BudgetUpdateInput,
    DeliveryUpdateInput,
    Requisition,
)
from compras.domain.statuses import QUOTATION_STAGE
from compras.errors import ActorNotAllowed, ConflictError, NotFoundError, PreconditionFailed, ValidationError
from compras.infrastructure.repositories.base import utc_now_iso
from compras.infrastructure.repositories.budget_repository import BudgetRepository
from compras.policies import is_admin
from compras.procurement.approval_authority import ApprovalAuthority
from compras.procurement.flow_policy import BUDGET, REQUISITION, action_allowed, allowed_actions, statuses_allowing
from compras.procurement.parent_status import project_parent_status
from compras.procurement.requisition_workflow import RequisitionWorkflow
from compras.procurement.transitions import observed_transition, publish_after_commit, require_reason
from compras.procurement.user_directory import UserDirectory
from compras.ui_strings import history_note


logger = logging.getLogger("compras.procurement")

BUDGET_EDIT_FIELDS = (
    "supplier_id",
    "supplier_name",
    "supplier_tax_id",
    "supplier_contact",
    "supplier_email",
    "supplier_phone",
    "quote_number",
    "quote_date",
    "validity_date",
    "payment_terms",
    "lead_time",
    "notes",
)
DELIVERY_FIELDS = ("expected_delivery_date", "actual_delivery_date", "delivery_status")


class BudgetWorkflow:
    def __init__(
        self,
        db,
        directory: UserDirectory,
        *,
        requisition_workflow: RequisitionWorkflow | None = None,
        budgets: BudgetRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.db = db
        self.directory = directory
        self.budgets = budgets or BudgetRepository()
        self.event_bus = event_bus or get_event_bus()
        self.requisition_workflow = requisition_workflow or RequisitionWorkflow(
            db,
            directory,
            budgets=self.budgets,
            event_bus=self.event_bus,
        )
        self.authority = ApprovalAuthority(directory)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, budget_id: int) -> Budget:
        budget = self.budgets.load(self.db, budget_id)
        if budget is None:
            raise NotFoundError(
                code="budget_not_found",
                details=f"orcamento {budget_id} nao encontrado",
                payload={"budget_id": budget_id},
            )
        return budget

    def list_for_requisition(self, requisition_id: int) -> List[Budget]:
        self.requisition_workflow.get(requisition_id)
        return self.budgets.list_by_requisition(self.db, requisition_id)

    def list(
        self,
        *,
        status: str | None = None,
        requisition_id: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Budget], int]:
        return self.budgets.list_page(self.db, status=status, requisition_id=requisition_id, page=page, limit=limit)

    def signatures(self, budget_id: int) -> List[BudgetSignature]:
        return self.budgets.list_signatures(self.db, budget_id)

    @staticmethod
    def delivery_confirmed(budget: Budget) -> bool:
        return budget.delivery_confirmed

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def create(self, actor_id: int, create_input: BudgetCreateInput) -> Budget:
        with observed_transition("budget", "create"):
            requisition = self.requisition_workflow.get(create_input.requisition_id)
            if not action_allowed(REQUISITION, requisition.status, "create_budget"):
                raise PreconditionFailed(
                    code="requisition_not_in_quotation",
                    details=f"solicitacao {requisition.id} em status {requisition.status}",
                    payload={"status": requisition.status},
                )
            self._require_assigned_buyer_or_admin(requisition, actor_id)
            self._validate_items(requisition, create_input.items)
            with self.db.transaction():
                # Guarded touch: fails if the requisition left the quotation stage since it was read.
                if self.requisition_workflow.requisitions.update_fields(
                    self.db, requisition.id, {}, expected_statuses=statuses_allowing(REQUISITION, "create_budget")
                ) != 1:
                    raise ConflictError(
                        details=f"solicitacao {requisition.id} mudou de status",
                        payload={"requisition_id": requisition.id, "expected_status": requisition.status},
                    )
                budget_id = self.budgets.create(self.db, created_by=actor_id, create_input=create_input)
                self.budgets.replace_items(self.db, budget_id, create_input.items)
                self.budgets.recompute_total(self.db, budget_id)
                self.requisition_workflow.apply_system_status(
                    self.requisition_workflow.get(requisition.id),
                    "quotation_received",
                    actor_id=actor_id,
                    note=history_note("budget_created", f"orcamento #{budget_id}"),
                )
                publish_after_commit(
                    self.db,
                    self.event_bus,
                    BudgetStatusChanged(
                        budget_id=budget_id,
                        requisition_id=requisition.id,
                        previous_status=None,
                        new_status="pending",
                        actor_id=actor_id,
                        audience=(requisition.requester_id,),
                    ),
                )
        return self.get(budget_id)

    def update(self, actor_id: int, budget_id: int, update_input: BudgetUpdateInput) -> Budget:
        with observed_transition("budget", "update", budget_id):
            budget = self.get(budget_id)
            self._require_action(budget, "edit_budget", "budget_not_editable")
            if int(actor_id) != budget.created_by and not is_admin(self.directory.role_of(actor_id)):
                raise ActorNotAllowed(code="only_budget_owner", details=f"usuario {actor_id} nao criou o orcamento")
            requisition = self._parent_in_quotation(budget)
            if update_input.items is not None:
                self._validate_items(requisition, update_input.items)
            fields = {key: value for key, value in update_input.fields.items() if key in BUDGET_EDIT_FIELDS}
            with self.db.transaction():
                if self.budgets.update_fields(self.db, budget_id, fields, expected_statuses=[budget.status]) != 1:
                    raise self._conflict(budget)
                if update_input.items is not None:
                    self.budgets.replace_items(self.db, budget_id, update_input.items)
                self.budgets.recompute_total(self.db, budget_id)
        return self.get(budget_id)

    def delete(self, actor_id: int, budget_id: int) -> None:
        """Remove an open budget with its items and signatures. The requisition keeps its status."""
        with observed_transition("budget", "delete", budget_id):
            budget = self.get(budget_id)
            self._require_action(budget, "delete_budget", "budget_not_deletable")
            if int(actor_id) != budget.created_by and not is_admin(self.directory.role_of(actor_id)):
                raise ActorNotAllowed(code="only_budget_owner", details=f"usuario {actor_id} nao criou o orcamento")
            with self.db.transaction():
                if not self.budgets.delete(self.db, budget_id, expected_status=budget.status):
                    raise self._conflict(budget)
            logger.info(
                "budget_deleted",
                extra={"budget_id": budget_id, "requisition_id": budget.requisition_id, "actor_id": actor_id},
            )

    # ------------------------------------------------------------------
    # Signed transitions
    # ------------------------------------------------------------------

    def approve(self, actor_id: int, budget_id: int, note: str | None = None) -> Budget:
        with observed_transition("budget", "approve", budget_id):
            budget = self.get(budget_id)
            self._require_action(budget, "approve_budget", "budget_not_signable")
            requisition = self._parent_in_quotation(budget)
            signer = self.authority.resolve_signer(
                actor_id,
                requester_id=requisition.requester_id,
                amount=budget.total_value,
            )
            with self.db.transaction():
                self._move(
                    budget,
                    requisition,
                    actor_id=actor_id,
                    new_status="approved",
                    fields={
                        "approved_by": actor_id,
                        "approved_at": utc_now_iso(),
                        "signed_by_requester": 1 if signer.is_requester else 0,
                    },
                )
                self._record_signature(
                    budget,
                    actor_id,
                    is_requester=signer.is_requester,
                    approval_level=signer.approval_level,
                    decision="approved",
                    note=note,
                )
                detail = f"orcamento #{budget.id}: {note}" if note else f"orcamento #{budget.id}"
                self._project_parent(budget, "approved", actor_id, history_note("budget_approved", detail))
        return self.get(budget_id)

    def reject(self, actor_id: int, budget_id: int, reason: str) -> Budget:
        with observed_transition("budget", "reject", budget_id):
            require_reason(reason)
            budget = self.get(budget_id)
            self._require_action(budget, "reject_budget", "budget_not_signable")
            requisition = self._parent_in_quotation(budget)
            signer = self.authority.resolve_signer(
                actor_id,
                requester_id=requisition.requester_id,
                amount=budget.total_value,
            )
            with self.db.transaction():
                self._move(
                    budget,
                    requisition,
                    actor_id=actor_id,
                    new_status="rejected",
                    fields={
                        "rejected_by": actor_id,
                        "rejected_at": utc_now_iso(),
                        "rejection_reason": reason,
                        "signed_by_requester": 1 if signer.is_requester else 0,
                    },
                )
                self._record_signature(
                    budget,
                    actor_id,
                    is_requester=signer.is_requester,
                    approval_level=signer.approval_level,
                    decision="rejected",
                    note=reason,
                )
                self._project_parent(
                    budget,
                    "rejected",
                    actor_id,
                    history_note("budget_rejected", f"orcamento #{budget.id}: {reason}"),
                )
        return self.get(budget_id)

    def return_for_correction(self, actor_id: int, budget_id: int, reason: str) -> Budget:
        with observed_transition("budget", "return", budget_id):
            require_reason(reason)
            budget = self.get(budget_id)
            self._require_action(budget, "return_budget", "budget_not_returnable")
            requisition = self._parent_in_quotation(budget)
            is_requester = int(actor_id) == requisition.requester_id
            approver = self.authority.active_approver(actor_id)
            if not is_requester and approver is None and not is_admin(self.directory.role_of(actor_id)):
                raise ActorNotAllowed(
                    code="budget_signer_required",
                    details=f"usuario {actor_id} nao pode devolver o orcamento",
                )
            with self.db.transaction():
                self._move(
                    budget,
                    requisition,
                    actor_id=actor_id,
                    new_status="returned",
                    fields={
                        "returned_by": actor_id,
                        "approved_by": None,
                        "approved_at": None,
                        "signed_by_requester": 0,
                    },
                )
                self._record_signature(
                    budget,
                    actor_id,
                    is_requester=is_requester,
                    approval_level=None if is_requester or approver is None else approver.approval_level,
                    decision="returned",
                    note=reason,
                )
                self._project_parent(
                    budget,
                    "returned",
                    actor_id,
                    history_note("budget_returned", f"orcamento #{budget.id}: {reason}"),
                )
        return self.get(budget_id)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def update_delivery(self, actor_id: int, budget_id: int, delivery_input: DeliveryUpdateInput) -> Budget:
        with observed_transition("budget", "update_delivery", budget_id):
            budget = self.get(budget_id)
            self._require_action(budget, "update_delivery", "budget_not_approved")
            requisition = self.requisition_workflow.get(budget.requisition_id)
            allowed = (
                int(actor_id) == requisition.requester_id
                or self.requisition_workflow.is_assigned_buyer(requisition, actor_id)
                or is_admin(self.directory.role_of(actor_id))
            )
            if not allowed:
                raise ActorNotAllowed(code="delivery_actor_required", details=f"usuario {actor_id} sem acesso a entrega")
            fields = {key: value for key, value in delivery_input.fields.items() if key in DELIVERY_FIELDS}
            with self.db.transaction():
                if self.budgets.update_fields(self.db, budget_id, fields, expected_statuses=["approved"]) != 1:
                    raise self._conflict(budget)
            logger.info("budget_delivery_updated", extra={"budget_id": budget_id, "fields": sorted(fields)})
        return self.get(budget_id)

    def confirm_delivery(self, actor_id: int, budget_id: int) -> Budget:
        """Record the actor's side of the two-party handshake; repeating it changes nothing."""
        with observed_transition("budget", "confirm_delivery", budget_id):
            budget = self.get(budget_id)
            self._require_action(budget, "confirm_delivery", "budget_not_approved")
            requisition = self.requisition_workflow.get(budget.requisition_id)
            parties = []
            if int(actor_id) == requisition.requester_id:
                parties.append("requester")
            if self.requisition_workflow.is_assigned_buyer(requisition, actor_id):
                parties.append("buyer")
            if not parties:
                raise ActorNotAllowed(
                    code="delivery_actor_required",
                    details=f"usuario {actor_id} nao e solicitante nem comprador atribuido",
                )
            with self.db.transaction():
                for party in parties:
                    if self.budgets.confirm_delivery_party(self.db, budget_id, party):
                        continue
                    current = self.get(budget_id)
                    if current.status != "approved":
                        raise self._conflict(budget)
            confirmed = self.get(budget_id)
            logger.info(
                "budget_delivery_confirmed",
                extra={
                    "budget_id": budget_id,
                    "parties": parties,
                    "delivery_confirmed": confirmed.delivery_confirmed,
                },
            )
        return confirmed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move(
        self,
        budget: Budget,
        requisition: Requisition,
        *,
        actor_id: int,
        new_status: str,
        fields: Dict[str, Any] | None = None,
    ) -> None:
        moved = self.budgets.transition_status(
            self.db,
            budget.id,
            expected_status=budget.status,
            new_status=new_status,
            fields=fields,
        )
        if not moved:
            raise self._conflict(budget)
        audience = tuple(dict.fromkeys((requisition.requester_id, budget.created_by)))
        publish_after_commit(
            self.db,
            self.event_bus,
            BudgetStatusChanged(
                budget_id=budget.id,
                requisition_id=requisition.id,
                previous_status=budget.status,
                new_status=new_status,
                actor_id=actor_id,
                audience=audience,
            ),
        )

    def _project_parent(self, budget: Budget, budget_status: str, actor_id: int, note: str) -> None:
        # Parent and sibling statuses are read inside the transaction.
        requisition = self.requisition_workflow.get(budget.requisition_id)
        siblings = self.budgets.statuses_for_requisition(
            self.db,
            budget.requisition_id,
            exclude_budget_id=budget.id,
        )
        target = project_parent_status(requisition.status, budget_status, siblings)
        if target is not None:
            self.requisition_workflow.apply_system_status(requisition, target, actor_id=actor_id, note=note)

    def _record_signature(
        self,
        budget: Budget,
        actor_id: int,
        *,
        is_requester: bool,
        approval_level: int | None,
        decision: str,
        note: str | None,
    ) -> None:
        self.budgets.add_signature(
            self.db,
            budget_id=budget.id,
            signer_id=actor_id,
            is_requester=is_requester,
            approval_level=approval_level,
            decision=decision,
            note=note,
        )

    def _parent_in_quotation(self, budget: Budget) -> Requisition:
        requisition = self.requisition_workflow.get(budget.requisition_id)
        if requisition.status not in QUOTATION_STAGE:
            raise PreconditionFailed(
                code="requisition_not_in_quotation",
                details=f"solicitacao {requisition.id} em status {requisition.status}",
                payload={"status": requisition.status},
            )
        return requisition

    def _require_assigned_buyer_or_admin(self, requisition: Requisition, actor_id: int) -> None:
        if self.requisition_workflow.is_assigned_buyer(requisition, actor_id):
            return
        if is_admin(self.directory.role_of(actor_id)):
            return
        raise ActorNotAllowed(code="only_assigned_buyer", details=f"usuario {actor_id} nao e o comprador atribuido")

    @staticmethod
    def _validate_items(requisition: Requisition, items: Iterable[BudgetLineItemInput]) -> None:
        items = list(items)
        if not items:
            raise ValidationError(code="budget_item_invalid", details="orcamento sem itens")
        valid_ids = requisition.item_ids()
        unknown = sorted({item.requisition_line_item_id for item in items} - valid_ids)
        if unknown:
            raise ValidationError(
                code="budget_item_invalid",
                details=f"itens fora da solicitacao {requisition.id}: {unknown}",
                payload={"unknown_item_ids": unknown},
            )

    def _require_action(self, budget: Budget, action: str, code: str) -> None:
        if action_allowed(BUDGET, budget.status, action):
            return
        raise PreconditionFailed(
            code=code,
            details=f"orcamento {budget.id} em status {budget.status}",
            payload={
                "status": budget.status,
                "action": action,
                "allowed_actions": allowed_actions(BUDGET, budget.status),
            },
        )

    @staticmethod
    def _conflict(budget: Budget) -> ConflictError:
        return ConflictError(
            details=f"orcamento {budget.id} mudou de status",
            payload={"budget_id": budget.id, "expected_status": budget.status},
        )
