import unittest

from compras.core.event_bus import BudgetStatusChanged, EventBus, RequisitionStatusChanged
from compras.observability import metrics_snapshot, reset_metrics_for_tests
from compras.procurement.notifier import NotifierSubscriber
from tests.helpers.procurement_fixtures import APPROVER, REQUESTER, ProcurementFixture
from tests.helpers.temp_db import TempDbSandbox


class _RecordingNotifier:
    def __init__(self) -> None:
        self.calls = []

    def notify_status_change(self, entity_id, previous_status, new_status, audience_user_ids, *, entity="requisition"):
        self.calls.append((entity, entity_id, previous_status, new_status, tuple(audience_user_ids)))


class _BrokenNotifier:
    def notify_status_change(self, *args, **kwargs):
        raise RuntimeError("smtp fora do ar")


class EventBusTest(unittest.TestCase):
    def test_handler_execution_order_is_predictable(self) -> None:
        bus = EventBus()
        trace = []
        bus.subscribe(RequisitionStatusChanged, lambda _event: trace.append("first"))
        bus.subscribe(RequisitionStatusChanged, lambda _event: trace.append("second"))

        bus.publish(RequisitionStatusChanged(requisition_id=1, previous_status="draft", new_status="pending_approval"))

        self.assertEqual(trace, ["first", "second"])

    def test_failing_handler_does_not_stop_the_others(self) -> None:
        bus = EventBus()
        received = []

        def broken(_event):
            raise ValueError("boom")

        bus.subscribe(BudgetStatusChanged, broken)
        bus.subscribe(BudgetStatusChanged, received.append)
        with self.assertLogs("compras", level="ERROR"):
            bus.publish(BudgetStatusChanged(budget_id=1, requisition_id=1, previous_status=None, new_status="pending"))

        self.assertEqual(len(received), 1)

    def test_events_get_ids_and_utc_timestamps(self) -> None:
        event = RequisitionStatusChanged(requisition_id=1, previous_status=None, new_status="draft", event_id="  ")
        self.assertTrue(event.event_id)
        self.assertEqual(event.occurred_at.utcoffset().total_seconds(), 0)


class NotifierSubscriberTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self._temp_db = TempDbSandbox(prefix="notifier")
        self.db = self._temp_db.connect()
        self.fixture = ProcurementFixture(self.db)

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def test_transition_notifies_requester_after_commit(self) -> None:
        notifier = _RecordingNotifier()
        NotifierSubscriber(notifier).attach(self.fixture.bus)

        requisition = self.fixture.pending()
        self.fixture.requisitions.approve(APPROVER, requisition.id)

        self.assertEqual(
            notifier.calls,
            [
                ("requisition", requisition.id, "draft", "pending_approval", (REQUESTER,)),
                ("requisition", requisition.id, "pending_approval", "approved", (REQUESTER,)),
            ],
        )

    def test_notifier_failure_does_not_undo_the_transition(self) -> None:
        NotifierSubscriber(_BrokenNotifier()).attach(self.fixture.bus)

        with self.assertLogs("compras.notifier", level="ERROR") as logs:
            requisition = self.fixture.pending()

        self.assertEqual(self.fixture.requisitions.get(requisition.id).status, "pending_approval")
        self.assertTrue(any("notifier_failed" in line for line in logs.output))
        self.assertEqual(metrics_snapshot()["notifier_failed_total"], 1)

    def test_nothing_is_published_when_the_transaction_rolls_back(self) -> None:
        notifier = _RecordingNotifier()
        NotifierSubscriber(notifier).attach(self.fixture.bus)
        requisition = self.fixture.draft()

        class _FailingHistory:
            def record(self, *args, **kwargs):
                raise RuntimeError("disco cheio")

        self.fixture.requisitions.history = _FailingHistory()
        with self.assertRaises(RuntimeError):
            self.fixture.requisitions.submit(REQUESTER, requisition.id)

        self.assertEqual(notifier.calls, [])


if __name__ == "__main__":
    unittest.main()
