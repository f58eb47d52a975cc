from __future__ import annotations

from typing import Protocol

from compras.domain.contracts import Approver, Buyer


class UserDirectory(Protocol):
    """Read-only view of who a user is, resolved on every call."""

    def find_approver_by_user_id(self, user_id: int) -> Approver | None: ...

    def find_buyer_by_user_id(self, user_id: int) -> Buyer | None: ...

    def find_buyer_by_id(self, buyer_id: int) -> Buyer | None: ...

    def role_of(self, user_id: int) -> str: ...
