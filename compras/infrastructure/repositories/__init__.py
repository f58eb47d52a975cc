from compras.infrastructure.repositories.budget_repository import BudgetRepository
from compras.infrastructure.repositories.directory_repository import DirectoryRepository, SqlUserDirectory
from compras.infrastructure.repositories.history_repository import HistoryRepository
from compras.infrastructure.repositories.requisition_repository import RequisitionRepository

__all__ = [
    "BudgetRepository",
    "DirectoryRepository",
    "HistoryRepository",
    "RequisitionRepository",
    "SqlUserDirectory",
]
