import unittest
from decimal import Decimal

from compras.errors import ValidationError
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


def _fields(ctx) -> list:
    return [(item["field"], item["error"]) for item in ctx.exception.payload["details"]]


class RequisitionPayloadTest(unittest.TestCase):
    def test_valid_payload_applies_defaults(self) -> None:
        parsed = parse_requisition_create(
            {
                "description": "  Material de limpeza ",
                "needed_by_date": "2026-11-30T00:00:00",
                "items": [{"description": "Detergente", "quantity": "4", "unit_price": "3.455"}],
            }
        )

        self.assertEqual(parsed.description, "Material de limpeza")
        self.assertEqual(parsed.priority, "normal")
        self.assertEqual(parsed.needed_by_date, "2026-11-30")
        item = parsed.items[0]
        self.assertEqual((item.unit, item.quantity, item.unit_price), ("UN", Decimal("4.000"), Decimal("3.46")))

    def test_all_errors_are_reported_together(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_requisition_create(
                {
                    "description": "ab",
                    "priority": "asap",
                    "needed_by_date": "amanha",
                    "items": [
                        {"description": "Cabo HDMI", "quantity": "0", "unit_price": "-1"},
                        "nao e um item",
                    ],
                }
            )

        self.assertEqual(ctx.exception.code, "validation_error")
        self.assertEqual(ctx.exception.http_status, 400)
        self.assertEqual(
            _fields(ctx),
            [
                ("description", "min_length_3"),
                ("needed_by_date", "invalid_date"),
                ("priority", "invalid_choice"),
                ("items[1]", "invalid_item"),
                ("items[0].quantity", "must_be_positive"),
                ("items[0].unit_price", "must_not_be_negative"),
            ],
        )

    def test_missing_items_and_unparseable_numbers(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_requisition_create({"description": "Cadeiras"})
        self.assertIn(("items", "required"), _fields(ctx))

        with self.assertRaises(ValidationError) as ctx:
            parse_requisition_create(
                {"description": "Cadeiras", "items": [{"description": "Cadeira", "quantity": "dois", "unit_price": "NaN"}]}
            )
        self.assertEqual(
            _fields(ctx),
            [("items[0].quantity", "invalid_number"), ("items[0].unit_price", "invalid_number")],
        )

    def test_partial_update_only_carries_sent_fields(self) -> None:
        parsed = parse_requisition_update({"notes": "urgente", "priority": "HIGH"})
        self.assertEqual(parsed.fields, {"notes": "urgente", "priority": "high"})
        self.assertIsNone(parsed.items)


class BudgetPayloadTest(unittest.TestCase):
    def test_create_requires_requisition_and_supplier(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_budget_create(
                {
                    "requisition_id": "abc",
                    "supplier_email": "vendas.fornecedor",
                    "items": [{"requisition_line_item_id": 0, "description": "Papel A4", "quantity": 1, "unit_price": 10}],
                }
            )
        fields = _fields(ctx)
        self.assertIn(("requisition_id", "invalid_integer"), fields)
        self.assertIn(("supplier_name", "required"), fields)
        self.assertIn(("supplier_email", "invalid_email"), fields)
        self.assertIn(("items[0].requisition_line_item_id", "must_be_positive"), fields)

    def test_create_with_valid_payload(self) -> None:
        parsed = parse_budget_create(
            {
                "requisition_id": 7,
                "supplier_name": "Papelaria Central",
                "items": [{"requisition_line_item_id": 3, "description": "Papel A4", "quantity": 10, "unit_price": "22.90", "unit": "CX"}],
            },
            default_unit="PC",
        )
        self.assertEqual(parsed.requisition_id, 7)
        self.assertEqual(parsed.items[0].unit, "CX")
        self.assertEqual(parsed.items[0].unit_price, Decimal("22.90"))

    def test_update_ignores_absent_fields(self) -> None:
        parsed = parse_budget_update({"payment_terms": "28 dias"})
        self.assertEqual(parsed.fields, {"payment_terms": "28 dias"})
        self.assertIsNone(parsed.items)

    def test_delivery_update(self) -> None:
        parsed = parse_delivery_update({"delivery_status": "Delivered", "actual_delivery_date": "2026-10-30"})
        self.assertEqual(parsed.fields, {"actual_delivery_date": "2026-10-30", "delivery_status": "delivered"})

        with self.assertRaises(ValidationError) as ctx:
            parse_delivery_update({"delivery_status": "lost"})
        self.assertEqual(_fields(ctx), [("delivery_status", "invalid_choice")])

        with self.assertRaises(ValidationError) as ctx:
            parse_delivery_update({})
        self.assertEqual(_fields(ctx), [("delivery", "no_changes")])


class ActionPayloadTest(unittest.TestCase):
    def test_reason(self) -> None:
        self.assertEqual(parse_reason({"reason": "  fora do orcamento "}), "fora do orcamento")
        self.assertIsNone(parse_reason({}, required=False))
        with self.assertRaises(ValidationError) as ctx:
            parse_reason({"reason": " "})
        self.assertEqual(_fields(ctx), [("reason", "required")])

    def test_note_accepts_legacy_field(self) -> None:
        self.assertEqual(parse_note({"note": " conferido "}), "conferido")
        self.assertEqual(parse_note({"observacoes": "sem ressalvas"}), "sem ressalvas")
        self.assertIsNone(parse_note({}))
        with self.assertRaises(ValidationError) as ctx:
            parse_note({"note": "x" * 1001})
        self.assertEqual(_fields(ctx), [("note", "max_length_1000")])

    def test_buyer_id(self) -> None:
        self.assertEqual(parse_buyer_id({"buyer_id": "12"}), 12)
        with self.assertRaises(ValidationError):
            parse_buyer_id({"buyer_id": True})

    def test_list_filters_cap_limit(self) -> None:
        filters = parse_list_filters({"status": "draft", "page": "2", "limit": "500"}, max_limit=100)
        self.assertEqual((filters.status, filters.page, filters.limit), ("draft", 2, 100))

        with self.assertRaises(ValidationError) as ctx:
            parse_list_filters({"status": "archived", "page": "0"})
        self.assertEqual(_fields(ctx), [("status", "invalid_choice"), ("page", "must_be_positive")])


if __name__ == "__main__":
    unittest.main()
