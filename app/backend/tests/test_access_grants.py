from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ProjectNotActiveError, ProtectedRoleViolationError, ValidationError
from app.models.entities import AccessLevel, ProjectModule, ProjectStatus, UserRole
from app.repositories.hierarchy_repository import HierarchyRepository
from app.services.access_service import AccessGrantService
from app.services.project_service import (
    ProjectCreateData,
    ProjectService,
    ProjectUpdateData,
    ResourceCreateData,
    ResourceUpdateData,
)
from conftest import context_for


@pytest.fixture()
def hierarchy(db_session: Session, make_user):
    """Project with M1 -> T1 -> A1 and a sibling module M2, all shared with Alice."""

    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    alice = make_user("Alice Analyst", manager=manager)
    bob = make_user("Bob Builder", manager=manager)
    context = context_for(manager)
    service = ProjectService(db_session)

    project = service.create_project(context=context, data=ProjectCreateData(name="CRM", manager_id=manager.id))
    m1 = service.create_module(
        context=context, project_id=project.id, data=ResourceCreateData(name="M1", assignee_ids=[alice.id])
    )
    m2 = service.create_module(
        context=context, project_id=project.id, data=ResourceCreateData(name="M2", assignee_ids=[alice.id])
    )
    t1 = service.create_task(context=context, module_id=m1.id, data=ResourceCreateData(name="T1", assignee_ids=[alice.id]))
    a1 = service.create_activity(
        context=context, task_id=t1.id, data=ResourceCreateData(name="A1", assignee_ids=[alice.id])
    )
    return {
        "manager": manager,
        "alice": alice,
        "bob": bob,
        "project": project,
        "m1": m1,
        "m2": m2,
        "t1": t1,
        "a1": a1,
        "service": service,
    }


def test_module_revoke_cascades_only_within_the_module(db_session: Session, hierarchy) -> None:
    alice, manager = hierarchy["alice"], hierarchy["manager"]
    repo = HierarchyRepository(db_session)

    snapshot = AccessGrantService(db_session).revoke_access(
        AccessLevel.MODULE, hierarchy["m1"].id, alice.id, manager.id
    )

    assert [holder.user_id for holder in snapshot.holders] == [manager.id]
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.MODULE, hierarchy["m1"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.TASK, hierarchy["t1"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.ACTIVITY, hierarchy["a1"].id)
    assert alice.id in repo.list_grant_user_ids(AccessLevel.MODULE, hierarchy["m2"].id)


def test_task_revoke_keeps_module_grant(db_session: Session, hierarchy) -> None:
    alice, manager = hierarchy["alice"], hierarchy["manager"]
    repo = HierarchyRepository(db_session)

    AccessGrantService(db_session).revoke_access(AccessLevel.TASK, hierarchy["t1"].id, alice.id, manager.id)

    assert alice.id in repo.list_grant_user_ids(AccessLevel.MODULE, hierarchy["m1"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.TASK, hierarchy["t1"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.ACTIVITY, hierarchy["a1"].id)


def test_project_level_revoke_removes_member_and_all_grants(db_session: Session, hierarchy) -> None:
    alice, manager = hierarchy["alice"], hierarchy["manager"]
    repo = HierarchyRepository(db_session)

    AccessGrantService(db_session).revoke_access(AccessLevel.PROJECT, hierarchy["project"].id, alice.id, manager.id)

    assert alice.id not in repo.list_member_ids(hierarchy["project"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.MODULE, hierarchy["m2"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.ACTIVITY, hierarchy["a1"].id)


def test_project_manager_cannot_be_revoked(db_session: Session, hierarchy) -> None:
    manager = hierarchy["manager"]
    service = AccessGrantService(db_session)

    for level, resource in (
        (AccessLevel.PROJECT, hierarchy["project"]),
        (AccessLevel.MODULE, hierarchy["m1"]),
        (AccessLevel.TASK, hierarchy["t1"]),
        (AccessLevel.ACTIVITY, hierarchy["a1"]),
    ):
        with pytest.raises(ProtectedRoleViolationError):
            service.revoke_access(level, resource.id, manager.id, manager.id)

    assert manager.id in HierarchyRepository(db_session).list_grant_user_ids(AccessLevel.MODULE, hierarchy["m1"].id)


def test_grant_is_idempotent_and_rejects_project_level(db_session: Session, hierarchy) -> None:
    bob, manager = hierarchy["bob"], hierarchy["manager"]
    service = AccessGrantService(db_session)

    service.grant_access(AccessLevel.MODULE, hierarchy["m1"].id, bob.id, manager.id)
    service.grant_access(AccessLevel.TASK, hierarchy["t1"].id, bob.id, manager.id)
    snapshot = service.grant_access(AccessLevel.TASK, hierarchy["t1"].id, bob.id, manager.id)

    assert [holder.user_id for holder in snapshot.holders].count(bob.id) == 1
    with pytest.raises(ValidationError):
        service.grant_access(AccessLevel.PROJECT, hierarchy["project"].id, bob.id, manager.id)


def test_grant_on_missing_resource_is_not_found(db_session: Session, hierarchy) -> None:
    with pytest.raises(NotFoundError):
        AccessGrantService(db_session).grant_access(
            AccessLevel.MODULE, hierarchy["a1"].id, hierarchy["bob"].id, hierarchy["manager"].id
        )


def test_mutations_on_inactive_project_are_rejected(db_session: Session, hierarchy) -> None:
    manager, bob = hierarchy["manager"], hierarchy["bob"]
    hierarchy["service"].update_project(
        context=context_for(manager),
        project_id=hierarchy["project"].id,
        data=ProjectUpdateData(status=ProjectStatus.ON_HOLD),
    )
    service = AccessGrantService(db_session)

    with pytest.raises(ProjectNotActiveError):
        service.grant_access(AccessLevel.MODULE, hierarchy["m1"].id, bob.id, manager.id)
    with pytest.raises(ProjectNotActiveError):
        service.revoke_access(AccessLevel.MODULE, hierarchy["m1"].id, hierarchy["alice"].id, manager.id)


def test_snapshot_lists_manager_first_then_by_name(db_session: Session, hierarchy) -> None:
    manager, alice, bob = hierarchy["manager"], hierarchy["alice"], hierarchy["bob"]
    service = AccessGrantService(db_session)
    service.grant_access(AccessLevel.MODULE, hierarchy["m1"].id, bob.id, manager.id)

    holders = service.grant_snapshot(AccessLevel.MODULE, hierarchy["m1"].id).holders

    assert [holder.user_id for holder in holders] == [manager.id, alice.id, bob.id]
    assert holders[0].is_manager is True
    assert holders[1].initials == "AA"


def test_access_list_for_task_and_activity_uses_parent_holders(db_session: Session, hierarchy) -> None:
    manager, alice, bob = hierarchy["manager"], hierarchy["alice"], hierarchy["bob"]
    service = AccessGrantService(db_session)
    service.grant_access(AccessLevel.MODULE, hierarchy["m1"].id, bob.id, manager.id)

    task_choices = {holder.user_id for holder in service.list_access(AccessLevel.TASK, hierarchy["t1"].id)}
    activity_choices = {holder.user_id for holder in service.list_access(AccessLevel.ACTIVITY, hierarchy["a1"].id)}
    team = {holder.user_id for holder in service.list_access(AccessLevel.PROJECT, hierarchy["project"].id)}

    assert task_choices == {manager.id, alice.id, bob.id}
    assert activity_choices == {manager.id, alice.id}
    assert team == {manager.id, alice.id, bob.id}


def test_replacing_assignees_cascades_removed_users(db_session: Session, hierarchy) -> None:
    manager, alice, bob = hierarchy["manager"], hierarchy["alice"], hierarchy["bob"]
    repo = HierarchyRepository(db_session)

    hierarchy["service"].update_module(
        context=context_for(manager),
        module_id=hierarchy["m1"].id,
        data=ResourceUpdateData(assignee_ids=[bob.id]),
    )

    assert repo.list_grant_user_ids(AccessLevel.MODULE, hierarchy["m1"].id) == {manager.id, bob.id}
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.TASK, hierarchy["t1"].id)
    assert alice.id not in repo.list_grant_user_ids(AccessLevel.ACTIVITY, hierarchy["a1"].id)


def test_grant_rejects_users_outside_the_team(db_session: Session, make_user, hierarchy) -> None:
    outsider = make_user("Xavier Outsider")
    manager = hierarchy["manager"]
    repo = HierarchyRepository(db_session)

    for level, resource in (
        (AccessLevel.MODULE, hierarchy["m1"]),
        (AccessLevel.TASK, hierarchy["t1"]),
        (AccessLevel.ACTIVITY, hierarchy["a1"]),
    ):
        with pytest.raises(ValidationError):
            AccessGrantService(db_session).grant_access(level, resource.id, outsider.id, manager.id)
        assert outsider.id not in repo.list_grant_user_ids(level, resource.id)


def test_child_grant_requires_parent_grant(db_session: Session, hierarchy) -> None:
    manager, bob = hierarchy["manager"], hierarchy["bob"]
    service = AccessGrantService(db_session)
    repo = HierarchyRepository(db_session)

    with pytest.raises(ValidationError):
        service.grant_access(AccessLevel.TASK, hierarchy["t1"].id, bob.id, manager.id)

    service.grant_access(AccessLevel.MODULE, hierarchy["m1"].id, bob.id, manager.id)
    with pytest.raises(ValidationError):
        service.grant_access(AccessLevel.ACTIVITY, hierarchy["a1"].id, bob.id, manager.id)

    service.grant_access(AccessLevel.TASK, hierarchy["t1"].id, bob.id, manager.id)
    service.grant_access(AccessLevel.ACTIVITY, hierarchy["a1"].id, bob.id, manager.id)
    assert bob.id in repo.list_grant_user_ids(AccessLevel.ACTIVITY, hierarchy["a1"].id)


def test_assigning_outsider_on_create_rolls_back(db_session: Session, make_user, hierarchy) -> None:
    outsider = make_user("Xavier Outsider")

    with pytest.raises(ValidationError):
        hierarchy["service"].create_module(
            context=context_for(hierarchy["manager"]),
            project_id=hierarchy["project"].id,
            data=ResourceCreateData(name="M3", assignee_ids=[outsider.id]),
        )

    names = db_session.scalars(
        select(ProjectModule.name).where(ProjectModule.project_id == hierarchy["project"].id)
    ).all()
    assert sorted(names) == ["M1", "M2"]
