import unittest
from decimal import Decimal

from compras.domain.contracts import Approver
from compras.domain.signers import FinancialApproverSigner, RequesterSigner
from compras.errors import ActorNotAllowed
from compras.procurement.approval_authority import ApprovalAuthority


class _Directory:
    def __init__(self, approvers):
        self.approvers = {approver.user_id: approver for approver in approvers}

    def find_approver_by_user_id(self, user_id):
        return self.approvers.get(user_id)

    def find_buyer_by_user_id(self, user_id):
        return None

    def find_buyer_by_id(self, buyer_id):
        return None

    def role_of(self, user_id):
        return "approver" if user_id in self.approvers else "requester"


def _approver(user_id: int, min_value: str, max_value: str, *, is_active: bool = True) -> Approver:
    return Approver(
        id=user_id * 10,
        user_id=user_id,
        approval_level=1,
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        is_active=is_active,
    )


class ApprovalAuthorityTest(unittest.TestCase):
    def setUp(self) -> None:
        self.authority = ApprovalAuthority(
            _Directory(
                [
                    _approver(3, "1000.00", "5000.00"),
                    _approver(8, "0.00", "100000.00", is_active=False),
                ]
            )
        )

    def test_band_is_inclusive(self) -> None:
        self.assertTrue(self.authority.can_approve(3, Decimal("5000")))
        self.assertTrue(self.authority.can_approve(3, Decimal("1000.00")))
        self.assertFalse(self.authority.can_approve(3, Decimal("5001")))
        self.assertFalse(self.authority.can_approve(3, Decimal("999.99")))

    def test_out_of_range_raises_with_band_payload(self) -> None:
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.authority.require_financial_signer(3, Decimal("5001"))
        self.assertEqual(ctx.exception.code, "value_outside_approver_range")
        self.assertEqual(ctx.exception.http_status, 403)
        self.assertEqual(ctx.exception.payload["max_value"], "5000.00")
        self.assertEqual(ctx.exception.payload["amount"], "5001.00")

    def test_inactive_approver_cannot_approve(self) -> None:
        self.assertFalse(self.authority.can_approve(8, Decimal("10")))
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.authority.require_financial_signer(8, Decimal("10"))
        self.assertEqual(ctx.exception.code, "not_an_approver")

    def test_unknown_user_cannot_approve(self) -> None:
        self.assertFalse(self.authority.can_approve(42, Decimal("1")))

    def test_requester_signs_regardless_of_amount(self) -> None:
        signer = self.authority.resolve_signer(42, requester_id=42, amount=Decimal("999999"))
        self.assertIsInstance(signer, RequesterSigner)
        self.assertTrue(signer.is_requester)
        self.assertIsNone(signer.approval_level)

    def test_financial_signer_resolved_for_approver(self) -> None:
        signer = self.authority.resolve_signer(3, requester_id=42, amount=Decimal("5000"))
        self.assertIsInstance(signer, FinancialApproverSigner)
        self.assertFalse(signer.is_requester)
        self.assertEqual(signer.approver_id, 30)

    def test_neither_requester_nor_approver_is_refused(self) -> None:
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.authority.resolve_signer(50, requester_id=42, amount=Decimal("10"))
        self.assertEqual(ctx.exception.code, "budget_signer_required")


if __name__ == "__main__":
    unittest.main()
