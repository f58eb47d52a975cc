from __future__ import annotations

from typing import Any, Callable, Dict, List

from compras.core.event_bus import EventBus, get_event_bus
from compras.domain.contracts import (
    Budget,
    BudgetCreateInput,
    BudgetUpdateInput,
    DeliveryUpdateInput,
    Requisition,
    RequisitionCreateInput,
    RequisitionListFilters,
    RequisitionUpdateInput,
    ServiceOutput,
)
from compras.infrastructure.repositories.directory_repository import SqlUserDirectory
from compras.procurement.budget_workflow import BudgetWorkflow
from compras.procurement.flow_policy import BUDGET, REQUISITION, flow_meta
from compras.procurement.requisition_workflow import RequisitionWorkflow
from compras.procurement.user_directory import UserDirectory
from compras.ui_strings import status_label, success_message


DirectoryFactory = Callable[[Any], UserDirectory]


def serialize_requisition(requisition: Requisition) -> Dict[str, Any]:
    meta = flow_meta(REQUISITION, requisition.status)
    return {
        **requisition.to_dict(),
        "status_label": status_label("requisition", requisition.status),
        "allowed_actions": meta["allowed_actions"],
        "primary_action": meta["primary_action"],
    }


def serialize_budget(budget: Budget, signatures: List[dict] | None = None) -> Dict[str, Any]:
    meta = flow_meta(BUDGET, budget.status)
    payload = {
        **budget.to_dict(),
        "status_label": status_label("budget", budget.status),
        "delivery_status_label": status_label("delivery", budget.delivery_status),
        "allowed_actions": meta["allowed_actions"],
        "primary_action": meta["primary_action"],
    }
    if signatures is not None:
        payload["signatures"] = signatures
    return payload


class ProcurementService:
    """Per-request entry point used by the HTTP adapter.

    Each call builds the two workflows over the caller's connection and turns
    their results into ``ServiceOutput`` payloads. Domain errors propagate to the
    app's error handlers untouched.
    """

    def __init__(
        self,
        *,
        event_bus: EventBus | None = None,
        directory_factory: DirectoryFactory | None = None,
        number_prefix: str = "SC",
    ) -> None:
        self.event_bus = event_bus
        self.directory_factory = directory_factory or SqlUserDirectory
        self.number_prefix = number_prefix

    def workflows(self, db) -> tuple[RequisitionWorkflow, BudgetWorkflow]:
        bus = self.event_bus or get_event_bus()
        directory = self.directory_factory(db)
        requisitions = RequisitionWorkflow(db, directory, event_bus=bus, number_prefix=self.number_prefix)
        budgets = BudgetWorkflow(
            db,
            directory,
            requisition_workflow=requisitions,
            budgets=requisitions.budgets,
            event_bus=bus,
        )
        return requisitions, budgets

    # ------------------------------------------------------------------
    # Requisitions
    # ------------------------------------------------------------------

    def create_requisition(self, db, *, actor_id: int, create_input: RequisitionCreateInput) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        requisition = workflow.create(actor_id, create_input)
        return self._requisition_output(requisition, "requisition_created", status_code=201)

    def update_requisition(
        self,
        db,
        *,
        actor_id: int,
        requisition_id: int,
        update_input: RequisitionUpdateInput,
    ) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        return self._requisition_output(workflow.update(actor_id, requisition_id, update_input))

    def delete_requisition(self, db, *, actor_id: int, requisition_id: int) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        workflow.delete(actor_id, requisition_id)
        return ServiceOutput(payload={"deleted": True, "requisition_id": requisition_id}, status_code=200)

    def get_requisition(self, db, *, requisition_id: int) -> ServiceOutput:
        workflow, budgets = self.workflows(db)
        requisition = workflow.get(requisition_id)
        payload = serialize_requisition(requisition)
        payload["budgets"] = [serialize_budget(budget) for budget in budgets.list_for_requisition(requisition_id)]
        return ServiceOutput(payload=payload, status_code=200)

    def list_requisitions(self, db, *, filters: RequisitionListFilters) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        requisitions, total = workflow.list(filters)
        return ServiceOutput(
            payload={
                "items": [serialize_requisition(requisition) for requisition in requisitions],
                "total": total,
                "page": filters.page,
                "limit": filters.limit,
            },
            status_code=200,
        )

    def transition_requisition(
        self,
        db,
        *,
        actor_id: int,
        requisition_id: int,
        action: str,
        reason: str | None = None,
        buyer_id: int | None = None,
        note: str | None = None,
    ) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        if action == "submit":
            requisition, message_key = workflow.submit(actor_id, requisition_id, note), "requisition_submitted"
        elif action == "approve":
            requisition, message_key = workflow.approve(actor_id, requisition_id, note), "requisition_approved"
        elif action == "reject":
            requisition, message_key = workflow.reject(actor_id, requisition_id, reason or ""), "requisition_rejected"
        elif action == "assign_buyer":
            requisition, message_key = workflow.assign_buyer(actor_id, requisition_id, int(buyer_id or 0)), "buyer_assigned"
        elif action == "cancel":
            requisition, message_key = workflow.cancel(actor_id, requisition_id, reason), "requisition_cancelled"
        elif action == "start_purchase":
            requisition, message_key = workflow.start_purchase(actor_id, requisition_id, note), "purchase_started"
        elif action == "mark_purchased":
            requisition, message_key = workflow.mark_purchased(actor_id, requisition_id, note), "requisition_purchased"
        else:
            raise ValueError(f"unknown requisition action: {action}")
        return self._requisition_output(requisition, message_key)

    def requisition_history(self, db, *, requisition_id: int) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        entries = workflow.history_for(requisition_id)
        return ServiceOutput(
            payload={"requisition_id": requisition_id, "items": [entry.to_dict() for entry in entries]},
            status_code=200,
        )

    def buyer_queue(self, db, *, actor_id: int, status: str = "in_quotation") -> ServiceOutput:
        workflow, _ = self.workflows(db)
        items = workflow.buyer_queue(actor_id, status)
        return ServiceOutput(payload={"items": [serialize_requisition(item) for item in items]}, status_code=200)

    def approver_queue(self, db, *, actor_id: int) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        items = workflow.approver_queue(actor_id)
        return ServiceOutput(payload={"items": [serialize_requisition(item) for item in items]}, status_code=200)

    def statistics(self, db, *, start: str | None = None, end: str | None = None) -> ServiceOutput:
        workflow, _ = self.workflows(db)
        return ServiceOutput(payload=workflow.statistics(start=start, end=end), status_code=200)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def create_budget(self, db, *, actor_id: int, create_input: BudgetCreateInput) -> ServiceOutput:
        _, workflow = self.workflows(db)
        budget = workflow.create(actor_id, create_input)
        return self._budget_output(workflow, budget, "budget_created", status_code=201)

    def update_budget(self, db, *, actor_id: int, budget_id: int, update_input: BudgetUpdateInput) -> ServiceOutput:
        _, workflow = self.workflows(db)
        return self._budget_output(workflow, workflow.update(actor_id, budget_id, update_input))

    def delete_budget(self, db, *, actor_id: int, budget_id: int) -> ServiceOutput:
        _, workflow = self.workflows(db)
        workflow.delete(actor_id, budget_id)
        return ServiceOutput(
            payload={"deleted": True, "budget_id": budget_id, "message": success_message("budget_deleted")},
            status_code=200,
        )

    def get_budget(self, db, *, budget_id: int) -> ServiceOutput:
        _, workflow = self.workflows(db)
        return self._budget_output(workflow, workflow.get(budget_id))

    def list_budgets(
        self,
        db,
        *,
        status: str | None = None,
        requisition_id: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ServiceOutput:
        _, workflow = self.workflows(db)
        budgets, total = workflow.list(status=status, requisition_id=requisition_id, page=page, limit=limit)
        return ServiceOutput(
            payload={
                "items": [serialize_budget(budget) for budget in budgets],
                "total": total,
                "page": page,
                "limit": limit,
            },
            status_code=200,
        )

    def requisition_budgets(self, db, *, requisition_id: int) -> ServiceOutput:
        _, workflow = self.workflows(db)
        budgets = workflow.list_for_requisition(requisition_id)
        return ServiceOutput(
            payload={"requisition_id": requisition_id, "items": [serialize_budget(budget) for budget in budgets]},
            status_code=200,
        )

    def transition_budget(
        self,
        db,
        *,
        actor_id: int,
        budget_id: int,
        action: str,
        reason: str | None = None,
        delivery_input: DeliveryUpdateInput | None = None,
        note: str | None = None,
    ) -> ServiceOutput:
        _, workflow = self.workflows(db)
        if action == "approve":
            budget, message_key = workflow.approve(actor_id, budget_id, note), "budget_approved"
        elif action == "reject":
            budget, message_key = workflow.reject(actor_id, budget_id, reason or ""), "budget_rejected"
        elif action == "return":
            budget, message_key = workflow.return_for_correction(actor_id, budget_id, reason or ""), "budget_returned"
        elif action == "delivery":
            budget = workflow.update_delivery(actor_id, budget_id, delivery_input or DeliveryUpdateInput())
            message_key = "delivery_updated"
        elif action == "confirm_delivery":
            budget, message_key = workflow.confirm_delivery(actor_id, budget_id), "delivery_confirmed"
        else:
            raise ValueError(f"unknown budget action: {action}")
        return self._budget_output(workflow, budget, message_key)

    # ------------------------------------------------------------------

    @staticmethod
    def _requisition_output(requisition: Requisition, message_key: str | None = None, *, status_code: int = 200) -> ServiceOutput:
        payload = serialize_requisition(requisition)
        if message_key:
            payload["message"] = success_message(message_key)
        return ServiceOutput(payload=payload, status_code=status_code)

    @staticmethod
    def _budget_output(
        workflow: BudgetWorkflow,
        budget: Budget,
        message_key: str | None = None,
        *,
        status_code: int = 200,
    ) -> ServiceOutput:
        signatures = [signature.to_dict() for signature in workflow.signatures(budget.id)]
        payload = serialize_budget(budget, signatures)
        if message_key:
            payload["message"] = success_message(message_key)
        return ServiceOutput(payload=payload, status_code=status_code)
