"""Unit tests for the static role/permission table."""

import pytest

from app.core.permissions import (
    Permission,
    Principal,
    Role,
    can_access_resource,
    can_access_user,
    can_assign_role,
    can_create_user,
    can_deactivate_user,
    can_delete_user,
    can_modify_user,
    can_update_user_role,
    get_accessible_fields,
    get_user_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    validate_role_hierarchy,
)

ADMIN = Principal(id=1, email="admin@example.com", role="admin")
MANAGER = Principal(id=2, email="manager@example.com", role="manager")
USER = Principal(id=3, email="user@example.com", role="user")
STRANGER = Principal(id=4, email="ghost@example.com", role="superuser")


class TestPermissionTable:
    def test_admin_has_every_permission(self):
        assert get_user_permissions("admin") == frozenset(Permission)

    def test_manager_permissions(self):
        perms = get_user_permissions(Role.MANAGER)
        assert Permission.CREATE_USER in perms
        assert Permission.READ_ALL_USERS in perms
        assert Permission.VIEW_REPORTS in perms
        assert Permission.DELETE_USER not in perms
        assert Permission.VIEW_AUDIT_LOGS not in perms
        assert Permission.MANAGE_SYSTEM not in perms

    def test_user_permissions(self):
        assert get_user_permissions("user") == {
            Permission.READ_USER,
            Permission.UPDATE_OWN_PROFILE,
            Permission.READ_OWN_PROFILE,
        }

    @pytest.mark.parametrize("role", ["superuser", "", None])
    def test_unknown_role_has_nothing(self, role):
        assert get_user_permissions(role) == frozenset()
        assert has_permission(role, Permission.READ_USER) is False

    def test_any_and_all(self):
        assert has_any_permission("user", [Permission.DELETE_USER, Permission.READ_USER]) is True
        assert has_all_permissions("user", [Permission.DELETE_USER, Permission.READ_USER]) is False
        assert has_all_permissions("admin", list(Permission)) is True


class TestUserChecks:
    def test_access_user(self):
        assert can_access_user(MANAGER, 99) is True
        assert can_access_user(USER, USER.id) is True
        assert can_access_user(USER, 99) is False
        assert can_access_user(None, 1) is False

    def test_modify_user(self):
        assert can_modify_user(MANAGER, 99) is True
        assert can_modify_user(USER, USER.id) is True
        assert can_modify_user(USER, 99) is False

    def test_nobody_deletes_themselves(self):
        assert can_delete_user(ADMIN, ADMIN.id) is False
        assert can_delete_user(ADMIN, 99) is True
        assert can_delete_user(MANAGER, 99) is False

    def test_create_user(self):
        assert can_create_user(ADMIN) is True
        assert can_create_user(MANAGER) is True
        assert can_create_user(USER) is False
        assert can_create_user(None) is False

    @pytest.mark.parametrize(
        "current, target, expected",
        [
            ("admin", "admin", True),
            ("admin", "user", True),
            ("manager", "manager", True),
            ("manager", "admin", False),
            ("user", "manager", False),
            ("superuser", "user", False),
            ("admin", "superuser", True),
        ],
    )
    def test_role_hierarchy(self, current, target, expected):
        assert validate_role_hierarchy(current, target) is expected

    def test_assign_role_needs_create_permission(self):
        assert can_assign_role("manager", "user") is True
        assert can_assign_role("manager", "admin") is False
        # Hierarchy holds but users cannot create accounts at all
        assert can_assign_role("user", "user") is False

    def test_update_role(self):
        assert can_update_user_role(ADMIN, ADMIN.id, "user") is False
        assert can_update_user_role(ADMIN, 99, "manager") is True
        assert can_update_user_role(MANAGER, 99, "admin") is False

    def test_deactivate(self):
        assert can_deactivate_user(MANAGER, MANAGER.id) is False
        assert can_deactivate_user(MANAGER, 99) is True
        assert can_deactivate_user(USER, 99) is False


class TestResourceDispatch:
    def test_user_resource(self):
        assert can_access_resource(MANAGER, "user", "read") is True
        assert can_access_resource(USER, "user", "read") is False
        assert can_access_resource(USER, "user", "read", USER.id) is True
        assert can_access_resource(USER, "user", "create") is False

    def test_update_and_delete_require_owner(self):
        assert can_access_resource(ADMIN, "user", "update") is False
        assert can_access_resource(ADMIN, "user", "delete") is False
        assert can_access_resource(ADMIN, "user", "delete", 99) is True

    def test_audit_logs(self):
        assert can_access_resource(ADMIN, "audit_logs", "read") is True
        assert can_access_resource(MANAGER, "audit_logs", "read") is False

    def test_unknown_resource_and_missing_principal(self):
        assert can_access_resource(ADMIN, "invoices", "read") is False
        assert can_access_resource(None, "user", "read") is False


class TestAccessibleFields:
    def test_admin_sees_id_and_password_reset_field(self):
        fields = get_accessible_fields("admin")
        assert "id" in fields
        assert "password" in fields

    def test_manager_sees_id(self):
        fields = get_accessible_fields("manager")
        assert "id" in fields
        assert "password" not in fields

    def test_user_field_visibility_depends_on_ownership(self):
        assert set(get_accessible_fields("user")) == {"name", "email", "department"}
        owner_fields = get_accessible_fields("user", is_owner=True)
        assert "role" in owner_fields
        assert "id" not in owner_fields

    def test_unknown_role_sees_nothing(self):
        assert get_accessible_fields("superuser") == ()
