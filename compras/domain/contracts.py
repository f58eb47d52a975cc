from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Tuple

from compras.domain.money import ZERO, to_money, to_quantity


def _money_or_zero(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    return to_money(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


# ---------------------------------------------------------------------------
# Inputs (validated at the boundary, see compras.procurement.validation)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemInput:
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit: str = "UN"
    notes: str | None = None


@dataclass(frozen=True)
class RequisitionCreateInput:
    description: str
    items: List[LineItemInput]
    cost_center: str | None = None
    justification: str | None = None
    priority: str = "normal"
    needed_by_date: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RequisitionUpdateInput:
    fields: Dict[str, Any] = field(default_factory=dict)
    items: List[LineItemInput] | None = None


@dataclass(frozen=True)
class BudgetLineItemInput:
    requisition_line_item_id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit: str = "UN"
    notes: str | None = None


@dataclass(frozen=True)
class BudgetCreateInput:
    requisition_id: int
    supplier_name: str
    items: List[BudgetLineItemInput]
    supplier_id: int | None = None
    supplier_tax_id: str | None = None
    supplier_contact: str | None = None
    supplier_email: str | None = None
    supplier_phone: str | None = None
    quote_number: str | None = None
    quote_date: str | None = None
    validity_date: str | None = None
    payment_terms: str | None = None
    lead_time: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BudgetUpdateInput:
    fields: Dict[str, Any] = field(default_factory=dict)
    items: List[BudgetLineItemInput] | None = None


@dataclass(frozen=True)
class DeliveryUpdateInput:
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequisitionListFilters:
    status: str | None = None
    requester_id: int | None = None
    buyer_id: int | None = None
    search: str | None = None
    page: int = 1
    limit: int = 20


# ---------------------------------------------------------------------------
# Aggregates (read back from the repositories)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItem:
    id: int
    requisition_id: int
    item_number: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal
    notes: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LineItem":
        return cls(
            id=int(row["id"]),
            requisition_id=int(row["requisition_id"]),
            item_number=int(row["item_number"]),
            description=row["description"],
            quantity=to_quantity(row["quantity"]),
            unit=row["unit"],
            unit_price=to_money(row["unit_price"]),
            line_total=to_money(row["line_total"]),
            notes=row.get("notes"),
        )


@dataclass(frozen=True)
class Requisition:
    id: int
    number: str
    requester_id: int
    description: str
    priority: str
    status: str
    total_value: Decimal
    cost_center: str | None = None
    justification: str | None = None
    needed_by_date: str | None = None
    notes: str | None = None
    buyer_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    approved_at: str | None = None
    rejected_at: str | None = None
    cancelled_at: str | None = None
    items: Tuple[LineItem, ...] = ()

    @classmethod
    def from_row(cls, row: Mapping[str, Any], items: List[Mapping[str, Any]] | None = None) -> "Requisition":
        return cls(
            id=int(row["id"]),
            number=row["number"],
            requester_id=int(row["requester_id"]),
            description=row["description"],
            priority=row["priority"],
            status=row["status"],
            total_value=_money_or_zero(row.get("total_value")),
            cost_center=row.get("cost_center"),
            justification=row.get("justification"),
            needed_by_date=row.get("needed_by_date"),
            notes=row.get("notes"),
            buyer_id=int(row["buyer_id"]) if row.get("buyer_id") is not None else None,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            approved_at=row.get("approved_at"),
            rejected_at=row.get("rejected_at"),
            cancelled_at=row.get("cancelled_at"),
            items=tuple(LineItem.from_row(item) for item in (items or [])),
        )

    def item_ids(self) -> set[int]:
        return {item.id for item in self.items}

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class BudgetLineItem:
    id: int
    budget_id: int
    requisition_line_item_id: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal
    notes: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BudgetLineItem":
        return cls(
            id=int(row["id"]),
            budget_id=int(row["budget_id"]),
            requisition_line_item_id=int(row["requisition_line_item_id"]),
            description=row["description"],
            quantity=to_quantity(row["quantity"]),
            unit=row["unit"],
            unit_price=to_money(row["unit_price"]),
            line_total=to_money(row["line_total"]),
            notes=row.get("notes"),
        )


@dataclass(frozen=True)
class Budget:
    id: int
    requisition_id: int
    supplier_name: str
    status: str
    total_value: Decimal
    created_by: int
    supplier_id: int | None = None
    supplier_tax_id: str | None = None
    supplier_contact: str | None = None
    supplier_email: str | None = None
    supplier_phone: str | None = None
    quote_number: str | None = None
    quote_date: str | None = None
    validity_date: str | None = None
    payment_terms: str | None = None
    lead_time: str | None = None
    notes: str | None = None
    rejection_reason: str | None = None
    approved_by: int | None = None
    rejected_by: int | None = None
    returned_by: int | None = None
    signed_by_requester: bool = False
    approved_at: str | None = None
    rejected_at: str | None = None
    expected_delivery_date: str | None = None
    actual_delivery_date: str | None = None
    delivery_status: str = "pending"
    requester_confirmed: bool = False
    requester_confirmed_at: str | None = None
    buyer_confirmed: bool = False
    buyer_confirmed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    items: Tuple[BudgetLineItem, ...] = ()

    @classmethod
    def from_row(cls, row: Mapping[str, Any], items: List[Mapping[str, Any]] | None = None) -> "Budget":
        def _optional_int(key: str) -> int | None:
            value = row.get(key)
            return int(value) if value is not None else None

        return cls(
            id=int(row["id"]),
            requisition_id=int(row["requisition_id"]),
            supplier_name=row["supplier_name"],
            status=row["status"],
            total_value=_money_or_zero(row.get("total_value")),
            created_by=int(row["created_by"]),
            supplier_id=_optional_int("supplier_id"),
            supplier_tax_id=row.get("supplier_tax_id"),
            supplier_contact=row.get("supplier_contact"),
            supplier_email=row.get("supplier_email"),
            supplier_phone=row.get("supplier_phone"),
            quote_number=row.get("quote_number"),
            quote_date=row.get("quote_date"),
            validity_date=row.get("validity_date"),
            payment_terms=row.get("payment_terms"),
            lead_time=row.get("lead_time"),
            notes=row.get("notes"),
            rejection_reason=row.get("rejection_reason"),
            approved_by=_optional_int("approved_by"),
            rejected_by=_optional_int("rejected_by"),
            returned_by=_optional_int("returned_by"),
            signed_by_requester=bool(row.get("signed_by_requester")),
            approved_at=row.get("approved_at"),
            rejected_at=row.get("rejected_at"),
            expected_delivery_date=row.get("expected_delivery_date"),
            actual_delivery_date=row.get("actual_delivery_date"),
            delivery_status=row.get("delivery_status") or "pending",
            requester_confirmed=bool(row.get("requester_confirmed")),
            requester_confirmed_at=row.get("requester_confirmed_at"),
            buyer_confirmed=bool(row.get("buyer_confirmed")),
            buyer_confirmed_at=row.get("buyer_confirmed_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            items=tuple(BudgetLineItem.from_row(item) for item in (items or [])),
        )

    @property
    def delivery_confirmed(self) -> bool:
        return self.requester_confirmed and self.buyer_confirmed

    def to_dict(self) -> Dict[str, Any]:
        payload = _jsonable(asdict(self))
        payload["delivery_confirmed"] = self.delivery_confirmed
        return payload


@dataclass(frozen=True)
class Approver:
    id: int
    user_id: int
    approval_level: int
    min_value: Decimal
    max_value: Decimal
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Approver":
        return cls(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            approval_level=int(row.get("approval_level") or 1),
            min_value=to_money(row["min_value"]),
            max_value=to_money(row["max_value"]),
            is_active=bool(row.get("is_active", 1)),
        )


@dataclass(frozen=True)
class Buyer:
    id: int
    user_id: int
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Buyer":
        return cls(id=int(row["id"]), user_id=int(row["user_id"]), is_active=bool(row.get("is_active", 1)))


@dataclass(frozen=True)
class HistoryEntry:
    id: int
    requisition_id: int
    actor_id: int | None
    previous_status: str | None
    new_status: str
    note: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "HistoryEntry":
        actor_id = row.get("actor_id")
        return cls(
            id=int(row["id"]),
            requisition_id=int(row["requisition_id"]),
            actor_id=int(actor_id) if actor_id is not None else None,
            previous_status=row.get("previous_status"),
            new_status=row["new_status"],
            note=row.get("note"),
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BudgetSignature:
    id: int
    budget_id: int
    signer_id: int
    is_requester: bool
    approval_level: int | None
    decision: str
    note: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BudgetSignature":
        level = row.get("approval_level")
        return cls(
            id=int(row["id"]),
            budget_id=int(row["budget_id"]),
            signer_id=int(row["signer_id"]),
            is_requester=bool(row.get("is_requester")),
            approval_level=int(level) if level is not None else None,
            decision=row["decision"],
            note=row.get("note"),
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
