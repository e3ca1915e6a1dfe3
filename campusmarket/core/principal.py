"""Authenticated principals.

Admin-only operations take an ``AdminPrincipal``. The only way to get one is
``Principal.as_admin()``, so holding the object is the proof of the capability
and callers never compare role strings themselves.

Recording a sale works the same way through ``SystemPrincipal``: the checkout
integration holds a SYSTEM key, and admins may record sales by hand.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from campusmarket.core.errors import AuthorizationError


class Role(str, enum.Enum):
    SELLER = "SELLER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def can_record_sales(self) -> bool:
        return self.role in (Role.SYSTEM, Role.ADMIN)

    def as_admin(self) -> AdminPrincipal:
        if not self.is_admin:
            raise AuthorizationError("Admin role required")
        return AdminPrincipal(user_id=self.user_id, role=self.role)

    def as_system(self) -> SystemPrincipal:
        if not self.can_record_sales:
            raise AuthorizationError("System role required")
        return SystemPrincipal(user_id=self.user_id, role=self.role)


@dataclass(frozen=True)
class AdminPrincipal(Principal):

    def __post_init__(self) -> None:
        if self.role is not Role.ADMIN:
            raise AuthorizationError("Admin role required")


@dataclass(frozen=True)
class SystemPrincipal(Principal):

    def __post_init__(self) -> None:
        if self.role not in (Role.SYSTEM, Role.ADMIN):
            raise AuthorizationError("System role required")


def ensure_admin(principal: Principal) -> AdminPrincipal:
    if isinstance(principal, AdminPrincipal):
        return principal
    return principal.as_admin()


def ensure_system(principal: Principal) -> SystemPrincipal:
    if isinstance(principal, SystemPrincipal):
        return principal
    return principal.as_system()
