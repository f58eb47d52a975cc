from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from compras.application.procurement_service import ProcurementService
from compras.db import get_db
from compras.domain.statuses import BUDGET_STATUSES
from compras.errors import ActorNotAllowed, UserActionError, ValidationError
from compras.infrastructure.repositories.directory_repository import SqlUserDirectory
from compras.policies import has_any_role
from compras.procurement.validation import (
    parse_budget_create,
    parse_budget_update,
    parse_buyer_id,
    parse_delivery_update,
    parse_list_filters,
    parse_note,
    parse_reason,
    parse_requisition_create,
    parse_requisition_update,
)


procurement_bp = Blueprint("procurement", __name__, url_prefix="/api/compras")

_REQUISITION_ACTIONS = {
    "submit": "submit",
    "approve": "approve",
    "reject": "reject",
    "assign-buyer": "assign_buyer",
    "cancel": "cancel",
    "start-purchase": "start_purchase",
    "mark-purchased": "mark_purchased",
}

_BUDGET_ACTIONS = {
    "approve": "approve",
    "reject": "reject",
    "return": "return",
    "delivery": "delivery",
    "confirm-delivery": "confirm_delivery",
}


def _service() -> ProcurementService:
    return current_app.extensions["compras.service"]


def _default_unit() -> str:
    return current_app.config.get("DEFAULT_UNIT", "UN")


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _actor_id() -> int:
    raw = str(request.headers.get("X-User-Id") or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise UserActionError(code="actor_required", http_status=401, details="cabecalho X-User-Id ausente")
    return int(raw)


def _require_roles(actor_id: int, *allowed_roles: str) -> None:
    role = SqlUserDirectory(get_db()).role_of(actor_id)
    if not has_any_role(role, allowed_roles):
        raise ActorNotAllowed(code="permission_denied", payload={"role": role, "allowed_roles": sorted(allowed_roles)})


def _page_args() -> tuple[int, int]:
    filters = parse_list_filters(
        {"page": request.args.get("page"), "limit": request.args.get("limit")},
        default_limit=int(current_app.config.get("LIST_PAGE_SIZE", 20)),
        max_limit=int(current_app.config.get("LIST_PAGE_SIZE_MAX", 100)),
    )
    return filters.page, filters.limit


def _respond(result):
    return jsonify(result.payload), result.status_code


# ----------------------------------------------------------------------
# Requisitions
# ----------------------------------------------------------------------


@procurement_bp.route("/requisitions", methods=["GET", "POST"])
def requisitions_api():
    db = get_db()
    if request.method == "POST":
        actor_id = _actor_id()
        create_input = parse_requisition_create(_payload(), default_unit=_default_unit())
        return _respond(_service().create_requisition(db, actor_id=actor_id, create_input=create_input))

    filters = parse_list_filters(
        request.args,
        default_limit=int(current_app.config.get("LIST_PAGE_SIZE", 20)),
        max_limit=int(current_app.config.get("LIST_PAGE_SIZE_MAX", 100)),
    )
    return _respond(_service().list_requisitions(db, filters=filters))


@procurement_bp.route("/requisitions/<int:requisition_id>", methods=["GET", "PUT", "DELETE"])
def requisition_detail_api(requisition_id: int):
    db = get_db()
    if request.method == "GET":
        return _respond(_service().get_requisition(db, requisition_id=requisition_id))

    actor_id = _actor_id()
    if request.method == "DELETE":
        return _respond(_service().delete_requisition(db, actor_id=actor_id, requisition_id=requisition_id))

    update_input = parse_requisition_update(_payload(), default_unit=_default_unit())
    return _respond(
        _service().update_requisition(
            db,
            actor_id=actor_id,
            requisition_id=requisition_id,
            update_input=update_input,
        )
    )


@procurement_bp.route("/requisitions/<int:requisition_id>/<string:action>", methods=["POST"])
def requisition_action_api(requisition_id: int, action: str):
    workflow_action = _REQUISITION_ACTIONS.get(action)
    if workflow_action is None:
        raise ValidationError(code="action_invalid", http_status=404, payload={"action": action})

    actor_id = _actor_id()
    payload = _payload()
    reason = None
    buyer_id = None
    note = None
    if workflow_action == "reject":
        reason = parse_reason(payload)
    elif workflow_action == "cancel":
        reason = parse_reason(payload, required=False)
    elif workflow_action == "assign_buyer":
        buyer_id = parse_buyer_id(payload)
    else:
        note = parse_note(payload)

    return _respond(
        _service().transition_requisition(
            get_db(),
            actor_id=actor_id,
            requisition_id=requisition_id,
            action=workflow_action,
            reason=reason,
            buyer_id=buyer_id,
            note=note,
        )
    )


@procurement_bp.route("/requisitions/<int:requisition_id>/history", methods=["GET"])
def requisition_history_api(requisition_id: int):
    return _respond(_service().requisition_history(get_db(), requisition_id=requisition_id))


@procurement_bp.route("/requisitions/<int:requisition_id>/budgets", methods=["GET"])
def requisition_budgets_api(requisition_id: int):
    return _respond(_service().requisition_budgets(get_db(), requisition_id=requisition_id))


@procurement_bp.route("/queues/buyer", methods=["GET"])
def buyer_queue_api():
    status = (request.args.get("status") or "in_quotation").strip()
    return _respond(_service().buyer_queue(get_db(), actor_id=_actor_id(), status=status))


@procurement_bp.route("/queues/approver", methods=["GET"])
def approver_queue_api():
    return _respond(_service().approver_queue(get_db(), actor_id=_actor_id()))


@procurement_bp.route("/statistics", methods=["GET"])
def statistics_api():
    _require_roles(_actor_id(), "admin", "approver", "buyer")
    start = (request.args.get("start") or "").strip() or None
    end = (request.args.get("end") or "").strip() or None
    return _respond(_service().statistics(get_db(), start=start, end=end))


# ----------------------------------------------------------------------
# Budgets
# ----------------------------------------------------------------------


@procurement_bp.route("/budgets", methods=["GET", "POST"])
def budgets_api():
    db = get_db()
    if request.method == "POST":
        actor_id = _actor_id()
        create_input = parse_budget_create(_payload(), default_unit=_default_unit())
        return _respond(_service().create_budget(db, actor_id=actor_id, create_input=create_input))

    status = (request.args.get("status") or "").strip() or None
    if status is not None and status not in BUDGET_STATUSES:
        raise ValidationError(payload={"details": [{"field": "status", "error": "invalid_choice"}]})
    raw_requisition_id = (request.args.get("requisition_id") or "").strip()
    requisition_id = int(raw_requisition_id) if raw_requisition_id.isdigit() else None
    page, limit = _page_args()
    return _respond(
        _service().list_budgets(db, status=status, requisition_id=requisition_id, page=page, limit=limit)
    )


@procurement_bp.route("/budgets/<int:budget_id>", methods=["GET", "PUT", "DELETE"])
def budget_detail_api(budget_id: int):
    db = get_db()
    if request.method == "GET":
        return _respond(_service().get_budget(db, budget_id=budget_id))

    actor_id = _actor_id()
    if request.method == "DELETE":
        return _respond(_service().delete_budget(db, actor_id=actor_id, budget_id=budget_id))

    update_input = parse_budget_update(_payload(), default_unit=_default_unit())
    return _respond(_service().update_budget(db, actor_id=actor_id, budget_id=budget_id, update_input=update_input))


@procurement_bp.route("/budgets/<int:budget_id>/<string:action>", methods=["POST"])
def budget_action_api(budget_id: int, action: str):
    workflow_action = _BUDGET_ACTIONS.get(action)
    if workflow_action is None:
        raise ValidationError(code="action_invalid", http_status=404, payload={"action": action})

    actor_id = _actor_id()
    payload = _payload()
    reason = None
    delivery_input = None
    note = None
    if workflow_action == "approve":
        note = parse_note(payload)
    elif workflow_action in ("reject", "return"):
        reason = parse_reason(payload)
    elif workflow_action == "delivery":
        delivery_input = parse_delivery_update(payload)

    return _respond(
        _service().transition_budget(
            get_db(),
            actor_id=actor_id,
            budget_id=budget_id,
            action=workflow_action,
            reason=reason,
            delivery_input=delivery_input,
            note=note,
        )
    )
