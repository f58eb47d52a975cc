from __future__ import annotations

from typing import Iterable, Set

from compras.domain.statuses import DEFAULT_ROLE, ROLES


def normalize_role(role: str | None, default: str = DEFAULT_ROLE) -> str:
    normalized = str(role or "").strip().lower()
    if normalized in ROLES:
        return normalized
    return default if default in ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role, default="")
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role)
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalized_role in allowed


def is_admin(role: str | None) -> bool:
    return normalize_role(role) == "admin"
