"""
Access control policy for form instances and storage folders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from dokasah.errors import Forbidden

ADMIN = "admin"
USER = "user"

Action = Literal["read", "write", "submit", "status", "admin"]


@dataclass(frozen=True)
class Principal:
    """Caller identity decoded from a bearer token."""

    id: int
    email: str
    role: str = USER
    name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def can_access(
    principal: Principal, resource_owner_email: Optional[str], action: Action = "read"
) -> bool:
    """
    Decide whether `principal` may perform `action` on a resource owned by
    `resource_owner_email`. Never raises.
    """
    is_owner = (
        resource_owner_email is not None and principal.email == resource_owner_email
    )
    if action == "submit":
        return is_owner
    if action == "admin":
        return principal.is_admin
    return principal.is_admin or is_owner


def require_access(
    principal: Principal, resource_owner_email: Optional[str], action: Action = "read"
) -> None:
    if not can_access(principal, resource_owner_email, action):
        raise Forbidden("Access denied")


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise Forbidden("Forbidden")
