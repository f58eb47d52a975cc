import unittest

from compras.domain.statuses import BUDGET_STATUSES, REQUISITION_STATUSES
from compras.procurement.flow_policy import (
    ACTION_LABELS,
    BUDGET,
    FLOW_POLICY,
    REQUISITION,
    action_allowed,
    action_label,
    flow_meta,
    statuses_allowing,
)


class FlowPolicyTest(unittest.TestCase):
    def test_every_status_has_a_policy(self) -> None:
        self.assertEqual(set(FLOW_POLICY[REQUISITION]), set(REQUISITION_STATUSES))
        self.assertEqual(set(FLOW_POLICY[BUDGET]), set(BUDGET_STATUSES))

    def test_primary_action_is_in_allowed_actions(self) -> None:
        for entity, status_map in FLOW_POLICY.items():
            for status_name, policy in status_map.items():
                primary_action = policy.get("primary_action")
                allowed = policy.get("allowed_actions") or []
                if primary_action:
                    self.assertIn(primary_action, allowed, f"primary fora de allowed em {entity}:{status_name}")

    def test_every_action_has_a_label(self) -> None:
        for status_map in FLOW_POLICY.values():
            for policy in status_map.values():
                for action in policy.get("allowed_actions") or []:
                    self.assertIn(action, ACTION_LABELS)
        self.assertEqual(action_label("nao_existe", "fallback"), "fallback")

    def test_terminal_requisition_statuses_only_allow_viewing(self) -> None:
        for status in ("rejected", "cancelled", "purchased"):
            self.assertFalse(action_allowed(REQUISITION, status, "cancel"), status)
            self.assertFalse(action_allowed(REQUISITION, status, "edit_requisition"), status)

    def test_assign_buyer_only_from_approved(self) -> None:
        self.assertEqual(statuses_allowing(REQUISITION, "assign_buyer"), ["approved"])
        self.assertEqual(statuses_allowing(REQUISITION, "create_budget"), ["in_quotation", "quotation_received"])

    def test_budget_edit_and_sign_statuses(self) -> None:
        self.assertEqual(sorted(statuses_allowing(BUDGET, "edit_budget")), ["pending", "returned"])
        self.assertEqual(sorted(statuses_allowing(BUDGET, "approve_budget")), ["pending", "returned"])
        self.assertEqual(sorted(statuses_allowing(BUDGET, "return_budget")), ["approved", "pending"])
        self.assertEqual(sorted(statuses_allowing(BUDGET, "delete_budget")), ["pending", "returned"])

    def test_unknown_status_has_no_actions(self) -> None:
        meta = flow_meta(REQUISITION, "inexistente")
        self.assertEqual(meta["allowed_actions"], [])
        self.assertIsNone(meta["primary_action"])


if __name__ == "__main__":
    unittest.main()
