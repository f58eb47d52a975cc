from __future__ import annotations

from typing import Dict, List


REQUISITION = "requisicao"
BUDGET = "orcamento"


ACTION_LABELS: Dict[str, str] = {
    "edit_requisition": "Editar solicitacao",
    "delete_requisition": "Excluir rascunho",
    "submit": "Enviar para aprovacao",
    "approve": "Aprovar",
    "reject": "Reprovar",
    "assign_buyer": "Designar comprador",
    "cancel": "Cancelar solicitacao",
    "create_budget": "Registrar orcamento",
    "view_budgets": "Ver orcamentos",
    "start_purchase": "Iniciar compra",
    "mark_purchased": "Concluir compra",
    "view_history": "Ver historico",
    "edit_budget": "Editar orcamento",
    "delete_budget": "Excluir orcamento",
    "approve_budget": "Aprovar orcamento",
    "reject_budget": "Reprovar orcamento",
    "return_budget": "Devolver para correcao",
    "update_delivery": "Atualizar entrega",
    "confirm_delivery": "Confirmar entrega",
}


FLOW_POLICY: Dict[str, Dict[str, Dict[str, object]]] = {
    REQUISITION: {
        "draft": {
            "allowed_actions": ["edit_requisition", "delete_requisition", "submit", "cancel", "view_history"],
            "primary_action": "submit",
        },
        "pending_approval": {
            "allowed_actions": ["approve", "reject", "cancel", "view_history"],
            "primary_action": "approve",
        },
        "approved": {
            "allowed_actions": ["assign_buyer", "cancel", "view_history"],
            "primary_action": "assign_buyer",
        },
        "rejected": {
            "allowed_actions": ["view_history"],
            "primary_action": "view_history",
        },
        "in_quotation": {
            "allowed_actions": ["create_budget", "view_budgets", "cancel", "view_history"],
            "primary_action": "create_budget",
        },
        "quotation_received": {
            "allowed_actions": ["create_budget", "view_budgets", "cancel", "view_history"],
            "primary_action": "view_budgets",
        },
        "budget_approved": {
            "allowed_actions": ["start_purchase", "view_budgets", "cancel", "view_history"],
            "primary_action": "start_purchase",
        },
        "budget_rejected": {
            "allowed_actions": ["view_budgets", "cancel", "view_history"],
            "primary_action": "view_budgets",
        },
        "in_purchase": {
            "allowed_actions": ["mark_purchased", "view_budgets", "cancel", "view_history"],
            "primary_action": "mark_purchased",
        },
        "purchased": {
            "allowed_actions": ["view_budgets", "view_history"],
            "primary_action": "view_history",
        },
        "returned": {
            "allowed_actions": ["cancel", "view_history"],
            "primary_action": "view_history",
        },
        "cancelled": {
            "allowed_actions": ["view_history"],
            "primary_action": "view_history",
        },
    },
    BUDGET: {
        "pending": {
            "allowed_actions": ["edit_budget", "delete_budget", "approve_budget", "reject_budget", "return_budget"],
            "primary_action": "approve_budget",
        },
        "returned": {
            "allowed_actions": ["edit_budget", "delete_budget", "approve_budget", "reject_budget"],
            "primary_action": "edit_budget",
        },
        "approved": {
            "allowed_actions": ["return_budget", "update_delivery", "confirm_delivery"],
            "primary_action": "confirm_delivery",
        },
        "rejected": {
            "allowed_actions": [],
            "primary_action": None,
        },
        "cancelled": {
            "allowed_actions": [],
            "primary_action": None,
        },
    },
}


def _fallback_policy() -> Dict[str, object]:
    return {"allowed_actions": [], "primary_action": None}


def status_policy(entity: str, status: str | None) -> Dict[str, object]:
    if not status:
        return _fallback_policy()
    return FLOW_POLICY.get(entity, {}).get(str(status), _fallback_policy())


def allowed_actions(entity: str, status: str | None) -> List[str]:
    actions = status_policy(entity, status).get("allowed_actions") or []
    if not isinstance(actions, list):
        return []
    return [str(action) for action in actions]


def primary_action(entity: str, status: str | None) -> str | None:
    action = status_policy(entity, status).get("primary_action")
    if not action:
        return None
    return str(action)


def action_allowed(entity: str, status: str | None, action: str) -> bool:
    if not action:
        return False
    return action in set(allowed_actions(entity, status))


def statuses_allowing(entity: str, action: str) -> List[str]:
    return [status for status, policy in FLOW_POLICY.get(entity, {}).items() if action in (policy.get("allowed_actions") or [])]


def action_label(action: str, fallback: str | None = None) -> str:
    label = ACTION_LABELS.get(action)
    if label:
        return label
    if fallback is not None:
        return fallback
    return action


def flow_meta(entity: str, status: str | None) -> Dict[str, object]:
    return {
        "entity": entity,
        "status": status,
        "allowed_actions": allowed_actions(entity, status),
        "primary_action": primary_action(entity, status),
    }
