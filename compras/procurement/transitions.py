from __future__ import annotations

import contextlib
import logging
from dataclasses import asdict

from compras.core.event_bus import BudgetStatusChanged, DomainEvent, EventBus
from compras.errors import ConflictError, NotFoundError, PreconditionFailed, ValidationError
from compras.observability import observe_transition


logger = logging.getLogger("compras.procurement")


@contextlib.contextmanager
def observed_transition(entity: str, event: str, entity_id: int | None = None):
    """Count the outcome of one workflow operation and log refused ones."""
    extra = {"entity": entity, "event": event, "entity_id": entity_id}
    try:
        yield
    except ConflictError as exc:
        observe_transition(entity, event, "conflict")
        logger.warning(f"{entity}_conflict", extra={**extra, "error": exc.code})
        raise
    except NotFoundError:
        observe_transition(entity, event, "not_found")
        raise
    except (PreconditionFailed, ValidationError) as exc:
        observe_transition(entity, event, "precondition_failed")
        logger.info(f"{entity}_guard_failed", extra={**extra, "error": exc.code})
        raise
    except Exception:
        observe_transition(entity, event, "error")
        raise
    observe_transition(entity, event, "applied")


def publish_after_commit(db, bus: EventBus, event: DomainEvent) -> None:
    """Log and publish a status change once ``db`` commits; nothing happens on rollback."""

    def _publish() -> None:
        message = "budget_transition" if isinstance(event, BudgetStatusChanged) else "requisition_transition"
        extra = {key: value for key, value in asdict(event).items() if key not in ("event_id", "occurred_at", "audience")}
        logger.info(message, extra=extra)
        bus.publish(event)

    db.on_commit(_publish)


def require_reason(reason: str | None) -> None:
    if not str(reason or "").strip():
        raise ValidationError(code="reason_required", details="motivo obrigatorio")
