from compras.core.event_bus import (
    BudgetStatusChanged,
    DomainEvent,
    EventBus,
    RequisitionStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "RequisitionStatusChanged",
    "BudgetStatusChanged",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
