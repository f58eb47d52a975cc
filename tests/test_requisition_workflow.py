import unittest
from datetime import datetime, timezone
from decimal import Decimal

from compras.domain.contracts import RequisitionListFilters, RequisitionUpdateInput
from compras.errors import ActorNotAllowed, NotFoundError, PreconditionFailed, ValidationError
from compras.infrastructure.repositories.directory_repository import DirectoryRepository
from compras.observability import reset_metrics_for_tests, transition_count
from tests.helpers.procurement_fixtures import (
    ADMIN,
    APPROVER,
    BAND_APPROVER,
    BUYER_USER,
    OUTSIDER,
    REQUESTER,
    ProcurementFixture,
    line,
)
from tests.helpers.temp_db import TempDbSandbox


class RequisitionWorkflowTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="requisition_workflow")
        self.db = self._temp_db.connect()
        self.fixture = ProcurementFixture(self.db)
        self.workflow = self.fixture.requisitions

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def _history_statuses(self, requisition_id: int):
        return [(entry.previous_status, entry.new_status) for entry in self.workflow.history_for(requisition_id)]

    def test_create_numbers_items_and_computes_total(self) -> None:
        requisition = self.fixture.draft()

        year = datetime.now(timezone.utc).year
        self.assertEqual(requisition.number, f"SC-{year}-001")
        self.assertEqual(requisition.status, "draft")
        self.assertEqual(requisition.total_value, Decimal("25.00"))
        self.assertEqual([item.item_number for item in requisition.items], [1, 2])
        self.assertEqual([item.line_total for item in requisition.items], [Decimal("20.00"), Decimal("5.00")])
        self.assertEqual(self.workflow.history_for(requisition.id), [])
        self.assertEqual(self.fixture.draft().number, f"SC-{year}-002")

    def test_submit_and_approve_records_two_history_entries(self) -> None:
        requisition = self.fixture.draft()
        self.workflow.submit(REQUESTER, requisition.id)
        approved = self.workflow.approve(APPROVER, requisition.id)

        self.assertEqual(approved.status, "approved")
        self.assertIsNotNone(approved.approved_at)
        self.assertEqual(
            self._history_statuses(requisition.id),
            [("draft", "pending_approval"), ("pending_approval", "approved")],
        )
        entries = self.workflow.history_for(requisition.id)
        self.assertEqual([entry.actor_id for entry in entries], [REQUESTER, APPROVER])
        self.assertEqual(transition_count("requisition", "approve", "applied"), 1)

    def test_only_requester_submits(self) -> None:
        requisition = self.fixture.draft()
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.submit(ADMIN, requisition.id)
        self.assertEqual(ctx.exception.code, "only_requester")
        self.assertEqual(self.workflow.get(requisition.id).status, "draft")

    def test_approver_outside_band_is_refused_without_side_effects(self) -> None:
        requisition = self.fixture.pending()

        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.approve(BAND_APPROVER, requisition.id)

        self.assertEqual(ctx.exception.code, "value_outside_approver_range")
        self.assertEqual(self.workflow.get(requisition.id).status, "pending_approval")
        self.assertEqual(len(self.workflow.history_for(requisition.id)), 1)
        self.assertEqual(transition_count("requisition", "approve", "precondition_failed"), 1)

    def test_band_approver_signs_value_inside_band(self) -> None:
        requisition = self.fixture.pending([line("Notebook", "1", "5000.00")])
        approved = self.workflow.approve(BAND_APPROVER, requisition.id)
        self.assertEqual(approved.status, "approved")

        over = self.fixture.pending([line("Notebook", "1", "5000.01")])
        with self.assertRaises(ActorNotAllowed):
            self.workflow.approve(BAND_APPROVER, over.id)

    def test_non_approver_cannot_approve(self) -> None:
        requisition = self.fixture.pending()
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.approve(OUTSIDER, requisition.id)
        self.assertEqual(ctx.exception.code, "not_an_approver")

    def test_deactivated_approver_loses_authority(self) -> None:
        requisition = self.fixture.pending()
        DirectoryRepository().set_approver_active(self.db, APPROVER, False)

        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.approve(APPROVER, requisition.id)
        self.assertEqual(ctx.exception.code, "not_an_approver")
        self.assertEqual(self.workflow.approver_queue(APPROVER), [])

    def test_approve_requires_pending_approval(self) -> None:
        requisition = self.fixture.draft()
        with self.assertRaises(PreconditionFailed) as ctx:
            self.workflow.approve(APPROVER, requisition.id)
        self.assertEqual(ctx.exception.code, "requisition_not_pending_approval")
        self.assertEqual(ctx.exception.payload["status"], "draft")

    def test_reject_requires_reason_and_stores_it_in_history(self) -> None:
        requisition = self.fixture.pending()
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.reject(APPROVER, requisition.id, "  ")
        self.assertEqual(ctx.exception.code, "reason_required")

        rejected = self.workflow.reject(APPROVER, requisition.id, "sem verba no trimestre")

        self.assertEqual(rejected.status, "rejected")
        self.assertIsNotNone(rejected.rejected_at)
        last = self.workflow.history_for(requisition.id)[-1]
        self.assertIn("sem verba no trimestre", last.note)

    def test_cannot_skip_from_pending_approval_to_in_quotation(self) -> None:
        requisition = self.fixture.pending()
        with self.assertRaises(PreconditionFailed) as ctx:
            self.workflow.assign_buyer(ADMIN, requisition.id, self.fixture.buyer_id)
        self.assertEqual(ctx.exception.code, "requisition_not_approved")

    def test_assign_buyer_guards(self) -> None:
        requisition = self.fixture.pending()
        self.workflow.approve(APPROVER, requisition.id)

        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.assign_buyer(OUTSIDER, requisition.id, self.fixture.buyer_id)
        self.assertEqual(ctx.exception.code, "buyer_rights_required")

        with self.assertRaises(NotFoundError) as ctx:
            self.workflow.assign_buyer(ADMIN, requisition.id, 999)
        self.assertEqual(ctx.exception.code, "buyer_not_found")

        assigned = self.workflow.assign_buyer(BUYER_USER, requisition.id, self.fixture.buyer_id)
        self.assertEqual(assigned.status, "in_quotation")
        self.assertEqual(assigned.buyer_id, self.fixture.buyer_id)
        self.assertEqual(
            self._history_statuses(requisition.id)[-1],
            ("approved", "in_quotation"),
        )

    def test_update_draft_replaces_items_and_recomputes_total(self) -> None:
        requisition = self.fixture.draft()
        updated = self.workflow.update(
            REQUESTER,
            requisition.id,
            RequisitionUpdateInput(
                fields={"description": "Toner e papel", "priority": "high", "status": "approved"},
                items=[line("Toner", "3", "120.50")],
            ),
        )

        self.assertEqual(updated.description, "Toner e papel")
        self.assertEqual(updated.priority, "high")
        self.assertEqual(updated.status, "draft")
        self.assertEqual(updated.total_value, Decimal("361.50"))
        self.assertEqual(len(updated.items), 1)
        self.assertEqual(self.workflow.history_for(requisition.id), [])

    def test_update_is_limited_to_drafts_and_owner(self) -> None:
        requisition = self.fixture.draft()
        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.update(OUTSIDER, requisition.id, RequisitionUpdateInput(fields={"notes": "x"}))
        self.assertEqual(ctx.exception.code, "requester_or_admin_required")

        self.workflow.update(ADMIN, requisition.id, RequisitionUpdateInput(fields={"notes": "revisado"}))
        self.workflow.submit(REQUESTER, requisition.id)
        with self.assertRaises(PreconditionFailed) as ctx:
            self.workflow.update(REQUESTER, requisition.id, RequisitionUpdateInput(fields={"notes": "tarde"}))
        self.assertEqual(ctx.exception.code, "requisition_not_draft")

    def test_delete_only_in_draft(self) -> None:
        submitted = self.fixture.pending()
        with self.assertRaises(PreconditionFailed):
            self.workflow.delete(REQUESTER, submitted.id)

        draft = self.fixture.draft()
        self.workflow.delete(REQUESTER, draft.id)
        with self.assertRaises(NotFoundError):
            self.workflow.get(draft.id)
        row = self.db.execute(
            "SELECT COUNT(*) AS total FROM requisition_line_items WHERE requisition_id = ?",
            (draft.id,),
        ).fetchone()
        self.assertEqual(int(row["total"]), 0)

    def test_cancel_rules(self) -> None:
        requisition = self.fixture.pending()
        with self.assertRaises(ActorNotAllowed):
            self.workflow.cancel(OUTSIDER, requisition.id)

        cancelled = self.workflow.cancel(REQUESTER, requisition.id, "compra desnecessaria")
        self.assertEqual(cancelled.status, "cancelled")
        self.assertIsNotNone(cancelled.cancelled_at)

        with self.assertRaises(PreconditionFailed) as ctx:
            self.workflow.cancel(ADMIN, requisition.id)
        self.assertEqual(ctx.exception.code, "requisition_not_cancellable")

    def test_cancel_cascades_to_open_budgets(self) -> None:
        budget = self.fixture.budget()

        self.workflow.cancel(ADMIN, budget.requisition_id)

        self.assertEqual(self.fixture.budgets.get(budget.id).status, "cancelled")
        self.assertEqual(self.workflow.get(budget.requisition_id).status, "cancelled")

    def test_purchase_stage_after_budget_approval(self) -> None:
        budget = self.fixture.budget()
        self.fixture.budgets.approve(REQUESTER, budget.id)
        requisition_id = budget.requisition_id

        with self.assertRaises(ActorNotAllowed) as ctx:
            self.workflow.start_purchase(REQUESTER, requisition_id)
        self.assertEqual(ctx.exception.code, "only_assigned_buyer")

        self.assertEqual(self.workflow.start_purchase(BUYER_USER, requisition_id).status, "in_purchase")
        self.assertEqual(self.workflow.mark_purchased(BUYER_USER, requisition_id).status, "purchased")
        with self.assertRaises(PreconditionFailed):
            self.workflow.cancel(ADMIN, requisition_id)

    def test_start_purchase_requires_approved_budget(self) -> None:
        requisition = self.fixture.in_quotation()
        with self.assertRaises(PreconditionFailed) as ctx:
            self.workflow.start_purchase(BUYER_USER, requisition.id)
        self.assertEqual(ctx.exception.code, "requisition_not_budget_approved")

    def test_missing_requisition_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self.workflow.submit(REQUESTER, 404)
        self.assertEqual(ctx.exception.code, "requisition_not_found")
        self.assertEqual(transition_count("requisition", "submit", "not_found"), 1)

    def test_list_filters_and_queues(self) -> None:
        first = self.fixture.in_quotation()
        second = self.fixture.pending([line("Cadeira ergonomica", "2", "1500.00")])

        items, total = self.workflow.list(RequisitionListFilters(status="pending_approval"))
        self.assertEqual(total, 1)
        self.assertEqual(items[0].id, second.id)

        items, total = self.workflow.list(RequisitionListFilters(search=first.number))
        self.assertEqual([item.id for item in items], [first.id])

        self.assertEqual([item.id for item in self.workflow.buyer_queue(BUYER_USER)], [first.id])
        self.assertEqual(self.workflow.buyer_queue(OUTSIDER), [])
        self.assertEqual([item.id for item in self.workflow.approver_queue(BAND_APPROVER)], [second.id])
        self.assertEqual(self.workflow.approver_queue(OUTSIDER), [])

    def test_statistics_sum_totals_by_status(self) -> None:
        self.fixture.draft()
        self.fixture.pending([line("Monitor", "2", "800.00")])

        stats = self.workflow.statistics()

        self.assertEqual(stats["total"], 2)
        self.assertEqual(stats["by_status"], {"draft": 1, "pending_approval": 1})
        self.assertEqual(stats["total_value"], "1625.00")


if __name__ == "__main__":
    unittest.main()
