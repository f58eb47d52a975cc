from __future__ import annotations

from typing import List

from compras.domain.contracts import HistoryEntry
from compras.infrastructure.repositories.history_repository import HistoryRepository


class HistoryRecorder:
    """Append-only audit trail of requisition status changes.

    ``record`` must run inside the caller's transaction so a failed append
    rolls back the status write it documents.
    """

    def __init__(self, repository: HistoryRepository | None = None) -> None:
        self.repository = repository or HistoryRepository()

    def record(
        self,
        db,
        *,
        requisition_id: int,
        actor_id: int | None,
        previous_status: str | None,
        new_status: str,
        note: str | None = None,
    ) -> int:
        return self.repository.add(
            db,
            requisition_id=requisition_id,
            actor_id=actor_id,
            previous_status=previous_status,
            new_status=new_status,
            note=note,
        )

    def list_for(self, db, requisition_id: int) -> List[HistoryEntry]:
        """Oldest first. Each call re-reads the table."""
        return [HistoryEntry.from_row(row) for row in self.repository.list_for_requisition(db, requisition_id)]
