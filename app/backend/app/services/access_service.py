"""Level-scoped access grants with cascading revocation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, can_manage_project_resources
from app.core.errors import (
    NotFoundError,
    ProjectNotActiveError,
    ProtectedRoleViolationError,
    UnauthorizedError,
    ValidationError,
)
from app.db.unit_of_work import UnitOfWork, unit_of_work
from app.models.entities import AccessLevel, ProjectStatus, User
from app.repositories.hierarchy_repository import HierarchyRepository, OwnerChain
from app.services.team_sync_service import revoke_project_grants

logger = logging.getLogger(__name__)

RESOURCE_NAMES = {
    AccessLevel.PROJECT: "Project",
    AccessLevel.MODULE: "Module",
    AccessLevel.TASK: "Task",
    AccessLevel.ACTIVITY: "Activity",
}


@dataclass(frozen=True, slots=True)
class GrantHolder:
    user_id: UUID
    display_name: str
    initials: str
    email: str
    emp_id: str | None
    is_manager: bool


@dataclass(frozen=True, slots=True)
class GrantListSnapshot:
    level: AccessLevel
    resource_id: UUID
    holders: list[GrantHolder]


def require_owner_chain(repo: HierarchyRepository, level: AccessLevel, resource_id: UUID) -> OwnerChain:
    chain = repo.owner_chain(level, resource_id)
    if chain is None:
        raise NotFoundError(RESOURCE_NAMES[level], resource_id)
    return chain


def ensure_project_active(chain: OwnerChain) -> None:
    if chain.project_status is not ProjectStatus.ACTIVE:
        raise ProjectNotActiveError(chain.project_id, chain.project_status.value)


def _holders(users: Iterable[User], manager_id: UUID) -> list[GrantHolder]:
    holders = [
        GrantHolder(
            user_id=user.id,
            display_name=user.display_name,
            initials=user.initials,
            email=user.email,
            emp_id=user.emp_id,
            is_manager=user.id == manager_id,
        )
        for user in users
    ]
    holders.sort(key=lambda holder: (not holder.is_manager, holder.display_name.lower()))
    return holders


def ensure_grantable(
    repo: HierarchyRepository,
    chain: OwnerChain,
    level: AccessLevel,
    user_ids: Iterable[UUID],
) -> None:
    """Grants go to project members only; below module level also to holders of the parent."""

    candidates = set(user_ids) - {chain.manager_id}
    if not candidates:
        return

    outsiders = candidates - repo.list_member_ids(chain.project_id)
    if outsiders:
        raise ValidationError(f"User {min(outsiders)} is not a member of project {chain.project_id}.")

    if level is AccessLevel.TASK:
        parent_level, parent_id = AccessLevel.MODULE, chain.module_id
    elif level is AccessLevel.ACTIVITY:
        parent_level, parent_id = AccessLevel.TASK, chain.task_id
    else:
        return
    without_parent = candidates - repo.list_grant_user_ids(parent_level, parent_id)
    if without_parent:
        raise ValidationError(
            f"User {min(without_parent)} needs {parent_level.value} access before {level.value} access can be granted."
        )


def revoke_with_cascade(uow: UnitOfWork, level: AccessLevel, resource_id: UUID, user_ids: set[UUID]) -> None:
    """Delete the users' grant on a resource and on everything beneath it."""

    repo = uow.repo
    if level is AccessLevel.MODULE:
        repo.delete_grants(AccessLevel.ACTIVITY, repo.activity_ids_in_module(resource_id), user_ids)
        repo.delete_grants(AccessLevel.TASK, repo.task_ids_in_module(resource_id), user_ids)
    elif level is AccessLevel.TASK:
        repo.delete_grants(AccessLevel.ACTIVITY, repo.activity_ids_in_task(resource_id), user_ids)
    repo.delete_grants(level, [resource_id], user_ids)


class AccessGrantService:
    """Grant and revoke access on modules, tasks and activities."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = HierarchyRepository(db)

    # ---------- Scope ----------
    def owner_chain(self, level: AccessLevel, resource_id: UUID) -> OwnerChain:
        return require_owner_chain(self.repo, level, resource_id)

    def ensure_can_manage(
        self,
        *,
        context: RequestUserContext,
        level: AccessLevel,
        resource_id: UUID,
    ) -> OwnerChain:
        chain = self.owner_chain(level, resource_id)
        if not can_manage_project_resources(context, manager_id=chain.manager_id):
            raise UnauthorizedError("Only the project manager can manage access for this resource.")
        return chain

    def ensure_can_view(
        self,
        *,
        context: RequestUserContext,
        level: AccessLevel,
        resource_id: UUID,
    ) -> OwnerChain:
        chain = self.owner_chain(level, resource_id)
        if context.is_global_viewer or context.user_id == chain.manager_id:
            return chain
        visible = {project.id for project in self.repo.list_projects_visible_to(context.user_id)}
        if chain.project_id not in visible:
            raise NotFoundError(RESOURCE_NAMES[level], resource_id)
        return chain

    # ---------- Grant / revoke ----------
    def grant_access(
        self,
        level: AccessLevel,
        resource_id: UUID,
        user_id: UUID,
        granted_by: UUID,
    ) -> GrantListSnapshot:
        if level is AccessLevel.PROJECT:
            raise ValidationError("Project membership follows the reporting hierarchy and cannot be granted.")

        with unit_of_work(self.db) as uow:
            chain = require_owner_chain(uow.repo, level, resource_id)
            ensure_project_active(chain)
            if uow.repo.get_user(user_id) is None:
                raise NotFoundError("User", user_id)
            ensure_grantable(uow.repo, chain, level, [user_id])
            self.apply_grants(uow, level, resource_id, [user_id], granted_by=granted_by)

        return self.grant_snapshot(level, resource_id)

    def revoke_access(
        self,
        level: AccessLevel,
        resource_id: UUID,
        user_id: UUID,
        requested_by: UUID,
    ) -> GrantListSnapshot:
        with unit_of_work(self.db) as uow:
            chain = require_owner_chain(uow.repo, level, resource_id)
            ensure_project_active(chain)
            if user_id == chain.manager_id:
                logger.warning(
                    "Blocked revoke of project manager %s from %s %s (requested by %s)",
                    user_id,
                    level.value,
                    resource_id,
                    requested_by,
                )
                raise ProtectedRoleViolationError(level.value, resource_id, user_id)

            if level is AccessLevel.PROJECT:
                uow.repo.delete_members(resource_id, {user_id})
                revoke_project_grants(uow, resource_id, {user_id})
            else:
                revoke_with_cascade(uow, level, resource_id, {user_id})
            logger.info("Revoked %s %s access of user %s (requested by %s)", level.value, resource_id, user_id, requested_by)

        return self.grant_snapshot(level, resource_id)

    def apply_grants(
        self,
        uow: UnitOfWork,
        level: AccessLevel,
        resource_id: UUID,
        user_ids: Iterable[UUID],
        *,
        granted_by: UUID | None,
    ) -> None:
        for user_id in set(user_ids):
            uow.repo.add_grants(level, [resource_id], user_id, granted_by=granted_by)

    def replace_grants(
        self,
        uow: UnitOfWork,
        chain: OwnerChain,
        level: AccessLevel,
        resource_id: UUID,
        user_ids: Iterable[UUID],
        *,
        granted_by: UUID | None,
    ) -> None:
        """Make the resource's grant set equal ``user_ids`` plus the project manager."""

        desired = set(user_ids) | {chain.manager_id}
        missing_users = desired - {user.id for user in uow.repo.list_users(desired)}
        if missing_users:
            raise NotFoundError("User", next(iter(missing_users)))
        ensure_grantable(uow.repo, chain, level, desired)

        current = uow.repo.list_grant_user_ids(level, resource_id)
        removed = current - desired
        if removed:
            revoke_with_cascade(uow, level, resource_id, removed)
            logger.info("Removed %d users from %s %s with cascade", len(removed), level.value, resource_id)
        self.apply_grants(uow, level, resource_id, desired - current, granted_by=granted_by)

    # ---------- Read models ----------
    def grant_snapshot(self, level: AccessLevel, resource_id: UUID) -> GrantListSnapshot:
        """Current holders of a resource, project manager first."""

        chain = self.repo.owner_chain(level, resource_id)
        if chain is None:
            return GrantListSnapshot(level=level, resource_id=resource_id, holders=[])

        if level is AccessLevel.PROJECT:
            user_ids = self.repo.list_member_ids(resource_id)
        else:
            user_ids = self.repo.list_grant_user_ids(level, resource_id)
        user_ids.add(chain.manager_id)
        users = self.repo.list_users(user_ids)
        return GrantListSnapshot(level=level, resource_id=resource_id, holders=_holders(users, chain.manager_id))

    def list_access(self, level: AccessLevel, resource_id: UUID) -> list[GrantHolder]:
        """Users selectable for a resource.

        Projects and modules list their current holders; tasks and
        activities list the holders of their parent, since access is only
        handed down one level at a time.
        """

        chain = self.repo.owner_chain(level, resource_id)
        if chain is None:
            return []
        if level is AccessLevel.TASK:
            return self.grant_snapshot(AccessLevel.MODULE, chain.module_id).holders
        if level is AccessLevel.ACTIVITY:
            return self.grant_snapshot(AccessLevel.TASK, chain.task_id).holders
        return self.grant_snapshot(level, resource_id).holders
