"""Role-based access control for the CRM.

Roles map to a static set of permissions; every check below is a lookup in
``ROLE_PERMISSIONS`` plus, for user records, an ownership comparison between
the acting principal and the target user id. A missing principal is denied
everything, and an unknown role holds no permissions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Literal


class Permission(str, Enum):
    # User permissions
    CREATE_USER = "create_user"
    READ_USER = "read_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    READ_ALL_USERS = "read_all_users"

    # Profile permissions
    UPDATE_OWN_PROFILE = "update_own_profile"
    READ_OWN_PROFILE = "read_own_profile"

    # System permissions
    VIEW_AUDIT_LOGS = "view_audit_logs"
    MANAGE_SYSTEM = "manage_system"

    # CRM permissions
    MANAGE_COMPANIES = "manage_companies"
    MANAGE_DEALS = "manage_deals"
    MANAGE_LEADS = "manage_leads"
    VIEW_REPORTS = "view_reports"


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.MANAGER: frozenset(
        {
            Permission.CREATE_USER,
            Permission.READ_USER,
            Permission.UPDATE_USER,
            Permission.READ_ALL_USERS,
            Permission.UPDATE_OWN_PROFILE,
            Permission.READ_OWN_PROFILE,
            Permission.MANAGE_COMPANIES,
            Permission.MANAGE_DEALS,
            Permission.MANAGE_LEADS,
            Permission.VIEW_REPORTS,
        }
    ),
    Role.USER: frozenset(
        {
            Permission.READ_USER,
            Permission.UPDATE_OWN_PROFILE,
            Permission.READ_OWN_PROFILE,
        }
    ),
}

ROLE_LEVELS: dict[Role, int] = {
    Role.ADMIN: 3,
    Role.MANAGER: 2,
    Role.USER: 1,
}

BASE_USER_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "role",
    "department",
    "phone",
    "is_active",
    "created_at",
    "updated_at",
)
SENSITIVE_USER_FIELDS: tuple[str, ...] = ("id",)
ADMIN_USER_FIELDS: tuple[str, ...] = ("password",)
PUBLIC_USER_FIELDS: tuple[str, ...] = ("name", "email", "department")

Action = Literal["create", "read", "update", "delete"]


@dataclass(frozen=True)
class Principal:
    """The authenticated account a request acts on behalf of."""

    id: int
    email: str
    role: str
    name: str = ""


def _as_role(role: str | Role | None) -> Role | None:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def get_user_permissions(role: str | Role | None) -> frozenset[Permission]:
    resolved = _as_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS[resolved]


def has_permission(role: str | Role | None, permission: Permission) -> bool:
    return permission in get_user_permissions(role)


def has_any_permission(role: str | Role | None, permissions: Iterable[Permission]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: str | Role | None, permissions: Iterable[Permission]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def can_access_user(principal: Principal | None, target_user_id: int) -> bool:
    """Admins and managers may read anyone; others only themselves."""
    if principal is None:
        return False
    if has_permission(principal.role, Permission.READ_ALL_USERS):
        return True
    return principal.id == target_user_id


def can_modify_user(principal: Principal | None, target_user_id: int) -> bool:
    if principal is None:
        return False
    if has_permission(principal.role, Permission.UPDATE_USER):
        return True
    return principal.id == target_user_id and has_permission(
        principal.role, Permission.UPDATE_OWN_PROFILE
    )


def can_delete_user(principal: Principal | None, target_user_id: int) -> bool:
    """Only admins delete, and never their own account."""
    if principal is None or principal.id == target_user_id:
        return False
    return has_permission(principal.role, Permission.DELETE_USER)


def can_create_user(principal: Principal | None) -> bool:
    if principal is None:
        return False
    return has_permission(principal.role, Permission.CREATE_USER)


def validate_role_hierarchy(current_role: str | Role | None, target_role: str | Role | None) -> bool:
    """True when ``current_role`` ranks at or above ``target_role``."""
    current = _as_role(current_role)
    target = _as_role(target_role)
    current_level = ROLE_LEVELS.get(current, 0) if current else 0
    target_level = ROLE_LEVELS.get(target, 0) if target else 0
    return current_level >= target_level


def can_assign_role(current_role: str | Role | None, target_role: str | Role | None) -> bool:
    if not has_permission(current_role, Permission.CREATE_USER):
        return False
    return validate_role_hierarchy(current_role, target_role)


def can_update_user_role(principal: Principal | None, target_user_id: int, new_role: str) -> bool:
    """Nobody changes their own role; others need to be able to assign ``new_role``."""
    if principal is None or principal.id == target_user_id:
        return False
    return can_assign_role(principal.role, new_role)


def can_deactivate_user(principal: Principal | None, target_user_id: int) -> bool:
    if principal is None or principal.id == target_user_id:
        return False
    return has_permission(principal.role, Permission.UPDATE_USER)


def can_access_resource(
    principal: Principal | None,
    resource: str,
    action: Action,
    resource_owner_id: int | None = None,
) -> bool:
    """Dispatch a resource/action pair to the specific checks above."""
    if principal is None:
        return False

    if resource == "user":
        if action == "create":
            return can_create_user(principal)
        if action == "read":
            if resource_owner_id is not None:
                return can_access_user(principal, resource_owner_id)
            return has_permission(principal.role, Permission.READ_ALL_USERS)
        if action == "update":
            return resource_owner_id is not None and can_modify_user(principal, resource_owner_id)
        if action == "delete":
            return resource_owner_id is not None and can_delete_user(principal, resource_owner_id)
        return False

    if resource == "audit_logs":
        return has_permission(principal.role, Permission.VIEW_AUDIT_LOGS)

    return False


def get_accessible_fields(role: str | Role | None, is_owner: bool = False) -> tuple[str, ...]:
    """Fields of a user record the given role may see."""
    resolved = _as_role(role)
    if resolved is Role.ADMIN:
        return BASE_USER_FIELDS + SENSITIVE_USER_FIELDS + ADMIN_USER_FIELDS
    if resolved is Role.MANAGER:
        return BASE_USER_FIELDS + SENSITIVE_USER_FIELDS
    if resolved is Role.USER:
        return BASE_USER_FIELDS if is_owner else PUBLIC_USER_FIELDS
    return ()
