from __future__ import annotations

import uuid

from app.core.auth import (
    RequestUserContext,
    can_manage_project_metadata,
    can_manage_project_resources,
    has_role,
)
from app.models.entities import UserRole


def _context(role: UserRole) -> RequestUserContext:
    return RequestUserContext(
        user_id=uuid.uuid4(),
        microsoft_oid=f"oid-{role.value}",
        email=f"{role.value}@test.local",
        display_name=role.value.title(),
        status="active",
        role=role,
    )


def test_has_role_matches_expected_roles() -> None:
    context = _context(UserRole.MANAGER)

    assert has_role(context, {UserRole.MANAGER}) is True
    assert has_role(context, {UserRole.SUPER_ADMIN, UserRole.HR}) is False


def test_global_viewers_are_super_admin_and_hr() -> None:
    assert _context(UserRole.SUPER_ADMIN).is_global_viewer is True
    assert _context(UserRole.HR).is_global_viewer is True
    assert _context(UserRole.MANAGER).is_global_viewer is False
    assert _context(UserRole.EMPLOYEE).is_global_viewer is False


def test_project_metadata_editors() -> None:
    manager = _context(UserRole.MANAGER)

    assert can_manage_project_metadata(_context(UserRole.SUPER_ADMIN), manager_id=uuid.uuid4()) is True
    assert can_manage_project_metadata(_context(UserRole.HR), manager_id=uuid.uuid4()) is True
    assert can_manage_project_metadata(manager) is True
    assert can_manage_project_metadata(manager, manager_id=manager.user_id) is True
    assert can_manage_project_metadata(manager, manager_id=uuid.uuid4()) is False
    assert can_manage_project_metadata(_context(UserRole.EMPLOYEE)) is False


def test_project_resources_are_owned_by_project_manager() -> None:
    employee = _context(UserRole.EMPLOYEE)

    assert can_manage_project_resources(employee, manager_id=employee.user_id) is True
    assert can_manage_project_resources(employee, manager_id=uuid.uuid4()) is False
    assert can_manage_project_resources(_context(UserRole.HR), manager_id=uuid.uuid4()) is False
    assert can_manage_project_resources(_context(UserRole.SUPER_ADMIN), manager_id=uuid.uuid4()) is True
