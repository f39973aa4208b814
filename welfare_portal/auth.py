from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, Request

from welfare_portal.errors import Forbidden, Unauthorized


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class Principal:
    id: int
    name: str
    email: str
    role: Role
    department_id: int


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise Unauthorized()
    return principal


def is_admin(principal: Principal) -> bool:
    return principal.role == Role.ADMIN


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise Forbidden()
        return principal

    return _dep


def can_access_record(principal: Principal, *, owner_id: int, department_id: int) -> bool:
    # Admins, the owning user, and members of the record's department.
    if is_admin(principal):
        return True
    return principal.id == owner_id or principal.department_id == department_id


def assert_record_access(principal: Principal, *, owner_id: int, department_id: int) -> None:
    if not can_access_record(principal, owner_id=owner_id, department_id=department_id):
        raise Forbidden()


def assert_admin(principal: Principal) -> None:
    if not is_admin(principal):
        raise Forbidden()


def assert_self_or_admin(principal: Principal, user_id: int) -> None:
    if principal.id != user_id and not is_admin(principal):
        raise Forbidden()
