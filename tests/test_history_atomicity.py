import unittest

from compras.core.event_bus import EventBus, RequisitionStatusChanged
from compras.infrastructure.repositories.directory_repository import SqlUserDirectory
from compras.observability import reset_metrics_for_tests, transition_count
from compras.procurement.budget_workflow import BudgetWorkflow
from compras.procurement.history import HistoryRecorder
from compras.procurement.requisition_workflow import RequisitionWorkflow
from tests.helpers.procurement_fixtures import APPROVER, BUYER_USER, REQUESTER, ProcurementFixture
from tests.helpers.temp_db import TempDbSandbox


class _BrokenHistory(HistoryRecorder):
    def record(self, db, **kwargs) -> int:
        raise RuntimeError("history table unavailable")


class HistoryAtomicityTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="history_atomicity")
        self.db = self._temp_db.connect()
        self.fixture = ProcurementFixture(self.db)
        self.bus = EventBus()
        self.published = []
        self.bus.subscribe(RequisitionStatusChanged, self.published.append)
        self.broken = RequisitionWorkflow(
            self.db,
            SqlUserDirectory(self.db),
            history=_BrokenHistory(),
            event_bus=self.bus,
        )

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def test_failed_history_append_rolls_back_the_status_write(self) -> None:
        requisition = self.fixture.draft()

        with self.assertRaises(RuntimeError):
            self.broken.submit(REQUESTER, requisition.id)

        self.assertEqual(self.fixture.requisitions.get(requisition.id).status, "draft")
        self.assertEqual(self.fixture.requisitions.history_for(requisition.id), [])
        self.assertEqual(self.published, [])
        self.assertEqual(transition_count("requisition", "submit", "error"), 1)
        self.assertFalse(self.db.in_transaction)

    def test_failed_parent_history_rolls_back_budget_decision(self) -> None:
        budget = self.fixture.budget()
        workflow = BudgetWorkflow(
            self.db,
            SqlUserDirectory(self.db),
            requisition_workflow=self.broken,
            event_bus=self.bus,
        )

        with self.assertRaises(RuntimeError):
            workflow.approve(APPROVER, budget.id)

        self.assertEqual(self.fixture.budgets.get(budget.id).status, "pending")
        self.assertEqual(self.fixture.budgets.signatures(budget.id), [])
        self.assertEqual(self.fixture.requisitions.get(budget.requisition_id).status, "quotation_received")
        self.assertEqual(transition_count("budget", "approve", "error"), 1)

    def test_failed_parent_history_rolls_back_budget_creation(self) -> None:
        requisition = self.fixture.in_quotation()
        workflow = BudgetWorkflow(
            self.db,
            SqlUserDirectory(self.db),
            requisition_workflow=self.broken,
            event_bus=self.bus,
        )

        with self.assertRaises(RuntimeError):
            workflow.create(BUYER_USER, self.fixture.budget_input(requisition))

        self.assertEqual(self.fixture.budgets.list_for_requisition(requisition.id), [])
        self.assertEqual(self.fixture.requisitions.get(requisition.id).status, "in_quotation")
        self.assertEqual(transition_count("budget", "create", "error"), 1)
        self.assertFalse(self.db.in_transaction)

    def test_connection_is_reusable_after_rollback(self) -> None:
        requisition = self.fixture.draft()
        with self.assertRaises(RuntimeError):
            self.broken.submit(REQUESTER, requisition.id)

        submitted = self.fixture.requisitions.submit(REQUESTER, requisition.id)

        self.assertEqual(submitted.status, "pending_approval")
        self.assertEqual(len(self.fixture.requisitions.history_for(requisition.id)), 1)


if __name__ == "__main__":
    unittest.main()
