from __future__ import annotations

import logging
from typing import Protocol, Sequence

from compras.core.event_bus import BudgetStatusChanged, EventBus, RequisitionStatusChanged
from compras.observability import observe_notifier_failure


logger = logging.getLogger("compras.notifier")


class Notifier(Protocol):
    def notify_status_change(
        self,
        entity_id: int,
        previous_status: str | None,
        new_status: str,
        audience_user_ids: Sequence[int],
        *,
        entity: str = "requisition",
    ) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the change to the log instead of delivering it."""

    def notify_status_change(
        self,
        entity_id: int,
        previous_status: str | None,
        new_status: str,
        audience_user_ids: Sequence[int],
        *,
        entity: str = "requisition",
    ) -> None:
        logger.info(
            "status_change_notification",
            extra={
                "entity": entity,
                "entity_id": entity_id,
                "previous_status": previous_status,
                "new_status": new_status,
                "audience": list(audience_user_ids),
            },
        )


class NotifierSubscriber:
    """Forwards committed status changes to a ``Notifier``.

    Delivery failures are logged and counted; they never reach the workflow.
    """

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier = notifier or LoggingNotifier()

    def attach(self, bus: EventBus) -> "NotifierSubscriber":
        bus.subscribe(RequisitionStatusChanged, self.on_requisition_status_changed)
        bus.subscribe(BudgetStatusChanged, self.on_budget_status_changed)
        return self

    def on_requisition_status_changed(self, event: RequisitionStatusChanged) -> None:
        self._deliver(
            "requisition",
            event.requisition_id,
            event.previous_status,
            event.new_status,
            event.audience,
        )

    def on_budget_status_changed(self, event: BudgetStatusChanged) -> None:
        self._deliver("budget", event.budget_id, event.previous_status, event.new_status, event.audience)

    def _deliver(
        self,
        entity: str,
        entity_id: int,
        previous_status: str | None,
        new_status: str,
        audience: Sequence[int],
    ) -> None:
        try:
            self.notifier.notify_status_change(
                entity_id,
                previous_status,
                new_status,
                list(audience),
                entity=entity,
            )
        except Exception:  # noqa: BLE001
            observe_notifier_failure()
            logger.exception(
                "notifier_failed",
                extra={"entity": entity, "entity_id": entity_id, "new_status": new_status},
            )
