from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Compras",
    "requisition": "Solicitacao de compra",
    "budget": "Orcamento",
    "approver": "Aprovador",
    "buyer": "Comprador",
    "supplier": "Fornecedor",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "requisition": [
        {"key": "draft", "label": "Rascunho", "description": "Solicitacao em edicao pelo solicitante."},
        {
            "key": "pending_approval",
            "label": "Pendente de aprovacao",
            "description": "Aguardando um aprovador com alcada para o valor.",
        },
        {"key": "approved", "label": "Aprovada", "description": "Aprovada, aguardando atribuicao de comprador."},
        {"key": "rejected", "label": "Rejeitada", "description": "Rejeitada pelo aprovador. Encerrada."},
        {"key": "in_quotation", "label": "Em cotacao", "description": "Comprador coletando orcamentos."},
        {
            "key": "quotation_received",
            "label": "Cotacao recebida",
            "description": "Orcamento devolvido ou aguardando nova assinatura.",
        },
        {"key": "budget_approved", "label": "Orcamento aprovado", "description": "Um orcamento foi aprovado."},
        {"key": "budget_rejected", "label": "Orcamento rejeitado", "description": "O orcamento foi rejeitado."},
        {"key": "in_purchase", "label": "Em compra", "description": "Compra em andamento com o fornecedor."},
        {"key": "purchased", "label": "Comprada", "description": "Compra concluida. Encerrada."},
        {"key": "cancelled", "label": "Cancelada", "description": "Solicitacao encerrada sem continuidade."},
        {"key": "returned", "label": "Devolvida", "description": "Devolvida ao solicitante."},
    ],
    "budget": [
        {"key": "pending", "label": "Pendente", "description": "Aguardando assinatura do solicitante ou aprovador."},
        {"key": "approved", "label": "Aprovado", "description": "Orcamento aceito. Entrega em acompanhamento."},
        {"key": "rejected", "label": "Rejeitado", "description": "Orcamento recusado."},
        {"key": "returned", "label": "Devolvido", "description": "Devolvido ao comprador para correcao."},
        {"key": "cancelled", "label": "Cancelado", "description": "Cancelado junto com a solicitacao."},
    ],
    "delivery": [
        {"key": "pending", "label": "Pendente", "description": "Entrega ainda nao iniciada."},
        {"key": "in_transit", "label": "Em transito", "description": "Mercadoria a caminho."},
        {"key": "delivered", "label": "Entregue", "description": "Mercadoria entregue."},
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "action_invalid": "Acao invalida.",
        "validation_error": "Dados invalidos.",
        "not_found": "Registro nao encontrado.",
        "requisition_not_found": "Solicitacao nao encontrada.",
        "budget_not_found": "Orcamento nao encontrado.",
        "buyer_not_found": "Comprador nao encontrado ou inativo.",
        "actor_required": "Usuario nao identificado.",
        "precondition_failed": "A operacao nao e permitida no estado atual.",
        "permission_denied": "Voce nao tem permissao para esta acao.",
        "status_conflict": "O registro foi alterado por outro usuario. Recarregue e tente novamente.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "requisition_not_draft": "Apenas rascunhos podem ser editados ou excluidos.",
        "requisition_items_required": "Informe ao menos um item na solicitacao.",
        "requisition_not_pending_approval": "Solicitacao nao esta pendente de aprovacao.",
        "requisition_not_approved": "Apenas solicitacoes aprovadas podem ter comprador atribuido.",
        "requisition_not_in_quotation": "Solicitacao nao esta em cotacao.",
        "requisition_not_cancellable": "Solicitacao nao pode ser cancelada neste status.",
        "requisition_not_budget_approved": "A compra so pode iniciar com orcamento aprovado.",
        "requisition_not_in_purchase": "Solicitacao nao esta em compra.",
        "only_requester": "Apenas o solicitante pode executar esta acao.",
        "requester_or_admin_required": "Apenas o solicitante ou um administrador pode executar esta acao.",
        "not_an_approver": "Usuario nao e um aprovador ativo.",
        "value_outside_approver_range": "Valor fora do limite de aprovacao.",
        "buyer_rights_required": "Apenas administradores ou compradores podem atribuir comprador.",
        "only_assigned_buyer": "Apenas o comprador atribuido pode executar esta acao.",
        "only_budget_owner": "Apenas o comprador que criou o orcamento pode edita-lo.",
        "budget_not_editable": "Apenas orcamentos pendentes ou devolvidos podem ser editados.",
        "budget_not_deletable": "Apenas orcamentos pendentes ou devolvidos podem ser excluidos.",
        "budget_not_signable": "Orcamento nao esta pendente de aprovacao.",
        "budget_not_returnable": "Orcamento nao pode ser devolvido neste status.",
        "budget_not_approved": "Apenas orcamentos aprovados podem ter entrega atualizada.",
        "budget_item_invalid": "Item do orcamento nao pertence a solicitacao.",
        "budget_signer_required": "Apenas o solicitante ou um aprovador pode assinar este orcamento.",
        "delivery_actor_required": "Sem permissao para atualizar a entrega deste orcamento.",
        "reason_required": "Informe o motivo.",
    },
    "success": {
        "requisition_created": "Solicitacao criada.",
        "requisition_submitted": "Solicitacao enviada para aprovacao.",
        "requisition_approved": "Solicitacao aprovada.",
        "requisition_rejected": "Solicitacao rejeitada.",
        "buyer_assigned": "Comprador atribuido.",
        "requisition_cancelled": "Solicitacao cancelada.",
        "purchase_started": "Compra iniciada.",
        "requisition_purchased": "Compra concluida.",
        "budget_created": "Orcamento criado.",
        "budget_deleted": "Orcamento excluido.",
        "budget_approved": "Orcamento aprovado.",
        "budget_rejected": "Orcamento rejeitado.",
        "budget_returned": "Orcamento devolvido para correcao.",
        "delivery_updated": "Entrega atualizada.",
        "delivery_confirmed": "Entrega confirmada.",
    },
}


HISTORY_NOTES: Dict[str, str] = {
    "submitted": "Solicitacao enviada para aprovacao",
    "approved": "Solicitacao aprovada",
    "rejected": "Solicitacao rejeitada",
    "buyer_assigned": "Comprador atribuido a solicitacao",
    "cancelled": "Solicitacao cancelada",
    "purchase_started": "Compra iniciada",
    "purchased": "Compra concluida",
    "budget_created": "Orcamento recebido",
    "budget_approved": "Orcamento aprovado",
    "budget_rejected": "Orcamento rejeitado",
    "budget_returned": "Orcamento devolvido para correcao",
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def history_note(key: str, detail: str | None = None) -> str:
    base = HISTORY_NOTES.get(key, key)
    detail = (detail or "").strip()
    if detail:
        return f"{base}: {detail}"
    return base
