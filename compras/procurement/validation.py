"""JSON payload -> typed input DTOs.

Every rule violation in a payload is collected and reported together in a
single ``ValidationError`` (``payload["details"]``); the workflows only ever
see fully validated values.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from compras.domain.contracts import (
    BudgetCreateInput,
    BudgetLineItemInput,
    BudgetUpdateInput,
    DeliveryUpdateInput,
    LineItemInput,
    RequisitionCreateInput,
    RequisitionListFilters,
    RequisitionUpdateInput,
)
from compras.domain.money import ZERO, parse_money, parse_quantity
from compras.domain.statuses import DEFAULT_PRIORITY, DELIVERY_STATUSES, PRIORITIES, REQUISITION_STATUSES
from compras.errors import ValidationError


class _Errors:
    def __init__(self) -> None:
        self.items: List[Dict[str, str]] = []

    def add(self, field: str, error: str) -> None:
        self.items.append({"field": field, "error": error})

    def raise_if_any(self) -> None:
        if not self.items:
            return
        fields = ", ".join(item["field"] for item in self.items)
        raise ValidationError(
            code="validation_error",
            details=f"campos invalidos: {fields}",
            payload={"details": list(self.items)},
        )


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text(
    errors: _Errors,
    payload: Mapping[str, Any],
    field: str,
    *,
    required: bool = False,
    min_len: int = 0,
    max_len: int | None = None,
    prefix: str = "",
) -> str | None:
    value = _clean(payload.get(field))
    name = f"{prefix}{field}"
    if value is None:
        if required:
            errors.add(name, "required")
        return None
    if len(value) < min_len:
        errors.add(name, f"min_length_{min_len}")
    if max_len is not None and len(value) > max_len:
        errors.add(name, f"max_length_{max_len}")
    return value


def _iso_date(errors: _Errors, payload: Mapping[str, Any], field: str) -> str | None:
    value = _clean(payload.get(field))
    if value is None:
        return None
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        errors.add(field, "invalid_date")
        return None


def _positive_int(errors: _Errors, value: Any, field: str) -> int | None:
    if isinstance(value, bool):
        errors.add(field, "invalid_integer")
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        errors.add(field, "invalid_integer")
        return None
    if number <= 0:
        errors.add(field, "must_be_positive")
        return None
    return number


def _amounts(errors: _Errors, raw: Mapping[str, Any], prefix: str) -> tuple[Decimal, Decimal]:
    quantity = parse_quantity(raw.get("quantity"))
    if quantity is None:
        errors.add(f"{prefix}quantity", "invalid_number")
        quantity = ZERO
    elif quantity <= 0:
        errors.add(f"{prefix}quantity", "must_be_positive")
    unit_price = parse_money(raw.get("unit_price"))
    if unit_price is None:
        errors.add(f"{prefix}unit_price", "invalid_number")
        unit_price = ZERO
    elif unit_price < 0:
        errors.add(f"{prefix}unit_price", "must_not_be_negative")
    return quantity, unit_price


def _item_list(errors: _Errors, payload: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        errors.add("items", "required")
        return []
    valid: List[Mapping[str, Any]] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            errors.add(f"items[{index}]", "invalid_item")
            continue
        valid.append(raw)
    return valid


def _requisition_items(errors: _Errors, payload: Mapping[str, Any], default_unit: str) -> List[LineItemInput]:
    items: List[LineItemInput] = []
    for index, raw in enumerate(_item_list(errors, payload)):
        prefix = f"items[{index}]."
        description = _text(errors, raw, "description", required=True, min_len=3, max_len=500, prefix=prefix)
        unit = _text(errors, raw, "unit", max_len=20, prefix=prefix) or default_unit
        quantity, unit_price = _amounts(errors, raw, prefix)
        items.append(
            LineItemInput(
                description=description or "",
                quantity=quantity,
                unit_price=unit_price,
                unit=unit,
                notes=_clean(raw.get("notes")),
            )
        )
    return items


def _budget_items(errors: _Errors, payload: Mapping[str, Any], default_unit: str) -> List[BudgetLineItemInput]:
    items: List[BudgetLineItemInput] = []
    for index, raw in enumerate(_item_list(errors, payload)):
        prefix = f"items[{index}]."
        line_item_id = _positive_int(errors, raw.get("requisition_line_item_id"), f"{prefix}requisition_line_item_id")
        description = _text(errors, raw, "description", required=True, min_len=3, max_len=500, prefix=prefix)
        unit = _text(errors, raw, "unit", max_len=20, prefix=prefix) or default_unit
        quantity, unit_price = _amounts(errors, raw, prefix)
        items.append(
            BudgetLineItemInput(
                requisition_line_item_id=line_item_id or 0,
                description=description or "",
                quantity=quantity,
                unit_price=unit_price,
                unit=unit,
                notes=_clean(raw.get("notes")),
            )
        )
    return items


def _requisition_header(errors: _Errors, payload: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "description" in payload:
        fields["description"] = _text(errors, payload, "description", required=True, min_len=3, max_len=1000)
    if not partial or "justification" in payload:
        fields["justification"] = _text(errors, payload, "justification", max_len=2000)
    if not partial or "cost_center" in payload:
        fields["cost_center"] = _text(errors, payload, "cost_center", max_len=100)
    if not partial or "notes" in payload:
        fields["notes"] = _clean(payload.get("notes"))
    if not partial or "needed_by_date" in payload:
        fields["needed_by_date"] = _iso_date(errors, payload, "needed_by_date")
    if not partial or "priority" in payload:
        priority = (_clean(payload.get("priority")) or DEFAULT_PRIORITY).lower()
        if priority not in PRIORITIES:
            errors.add("priority", "invalid_choice")
        fields["priority"] = priority
    return fields


def parse_requisition_create(payload: Mapping[str, Any], *, default_unit: str = "UN") -> RequisitionCreateInput:
    errors = _Errors()
    fields = _requisition_header(errors, payload, partial=False)
    items = _requisition_items(errors, payload, default_unit)
    errors.raise_if_any()
    return RequisitionCreateInput(items=items, **fields)


def parse_requisition_update(payload: Mapping[str, Any], *, default_unit: str = "UN") -> RequisitionUpdateInput:
    errors = _Errors()
    fields = _requisition_header(errors, payload, partial=True)
    items = _requisition_items(errors, payload, default_unit) if "items" in payload else None
    errors.raise_if_any()
    return RequisitionUpdateInput(fields=fields, items=items)


def _supplier_fields(errors: _Errors, payload: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}

    def wanted(field: str) -> bool:
        return not partial or field in payload

    if wanted("supplier_name"):
        fields["supplier_name"] = _text(errors, payload, "supplier_name", required=True, min_len=3, max_len=255)
    if wanted("supplier_email"):
        email = _text(errors, payload, "supplier_email", max_len=255)
        if email is not None and "@" not in email:
            errors.add("supplier_email", "invalid_email")
        fields["supplier_email"] = email
    if wanted("supplier_id"):
        raw_id = payload.get("supplier_id")
        fields["supplier_id"] = None if _clean(raw_id) is None else _positive_int(errors, raw_id, "supplier_id")
    for field in ("supplier_tax_id", "supplier_contact", "supplier_phone", "quote_number", "payment_terms", "lead_time"):
        if wanted(field):
            fields[field] = _text(errors, payload, field, max_len=255)
    for field in ("quote_date", "validity_date"):
        if wanted(field):
            fields[field] = _iso_date(errors, payload, field)
    if wanted("notes"):
        fields["notes"] = _clean(payload.get("notes"))
    return fields


def parse_budget_create(payload: Mapping[str, Any], *, default_unit: str = "UN") -> BudgetCreateInput:
    errors = _Errors()
    requisition_id = _positive_int(errors, payload.get("requisition_id"), "requisition_id")
    fields = _supplier_fields(errors, payload, partial=False)
    items = _budget_items(errors, payload, default_unit)
    errors.raise_if_any()
    return BudgetCreateInput(requisition_id=requisition_id or 0, items=items, **fields)


def parse_budget_update(payload: Mapping[str, Any], *, default_unit: str = "UN") -> BudgetUpdateInput:
    errors = _Errors()
    fields = _supplier_fields(errors, payload, partial=True)
    items = _budget_items(errors, payload, default_unit) if "items" in payload else None
    errors.raise_if_any()
    return BudgetUpdateInput(fields=fields, items=items)


def parse_delivery_update(payload: Mapping[str, Any]) -> DeliveryUpdateInput:
    errors = _Errors()
    fields: Dict[str, Any] = {}
    for field in ("expected_delivery_date", "actual_delivery_date"):
        if field in payload:
            fields[field] = _iso_date(errors, payload, field)
    if "delivery_status" in payload:
        status = (_clean(payload.get("delivery_status")) or "").lower()
        if status not in DELIVERY_STATUSES:
            errors.add("delivery_status", "invalid_choice")
        fields["delivery_status"] = status
    if not fields:
        errors.add("delivery", "no_changes")
    errors.raise_if_any()
    return DeliveryUpdateInput(fields=fields)


def parse_reason(payload: Mapping[str, Any], *, required: bool = True, field: str = "reason") -> str | None:
    errors = _Errors()
    reason = _text(errors, payload, field, required=required, min_len=3 if required else 0, max_len=1000)
    errors.raise_if_any()
    return reason


def parse_note(payload: Mapping[str, Any]) -> str | None:
    """Optional free-text note for a transition; ``observacoes`` is accepted as an alias."""
    errors = _Errors()
    field = "note" if _clean(payload.get("note")) is not None else "observacoes"
    note = _text(errors, payload, field, max_len=1000)
    errors.raise_if_any()
    return note


def parse_buyer_id(payload: Mapping[str, Any]) -> int:
    errors = _Errors()
    buyer_id = _positive_int(errors, payload.get("buyer_id"), "buyer_id")
    errors.raise_if_any()
    return int(buyer_id or 0)


def parse_list_filters(args: Mapping[str, Any], *, default_limit: int = 20, max_limit: int = 100) -> RequisitionListFilters:
    errors = _Errors()
    status = _clean(args.get("status"))
    if status is not None and status not in REQUISITION_STATUSES:
        errors.add("status", "invalid_choice")
    requester_id = None if _clean(args.get("requester_id")) is None else _positive_int(errors, args.get("requester_id"), "requester_id")
    buyer_id = None if _clean(args.get("buyer_id")) is None else _positive_int(errors, args.get("buyer_id"), "buyer_id")
    page = 1 if _clean(args.get("page")) is None else _positive_int(errors, args.get("page"), "page")
    limit = default_limit if _clean(args.get("limit")) is None else _positive_int(errors, args.get("limit"), "limit")
    errors.raise_if_any()
    return RequisitionListFilters(
        status=status,
        requester_id=requester_id,
        buyer_id=buyer_id,
        search=_clean(args.get("search")),
        page=int(page or 1),
        limit=min(int(limit or default_limit), max_limit),
    )
