"""Project membership as a self-healing mirror of the reporting hierarchy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.db.unit_of_work import UnitOfWork, unit_of_work
from app.models.entities import AccessLevel, ProjectStatus
from app.repositories.hierarchy_repository import HierarchyRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TeamSyncResult:
    project_id: UUID
    added: set[UUID] = field(default_factory=set)
    removed: set[UUID] = field(default_factory=set)


@dataclass(slots=True)
class TeamSyncSummary:
    synced: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


def resolve_subtree(repo: HierarchyRepository, manager_id: UUID) -> set[UUID]:
    """All direct and indirect reports of ``manager_id``.

    Breadth-first over the reporting relation with a visited set, so a
    corrupted (cyclic) hierarchy still terminates. The manager is never part
    of their own subtree.
    """

    visited: set[UUID] = {manager_id}
    subordinates: set[UUID] = set()
    frontier: set[UUID] = {manager_id}
    while frontier:
        reports = set(repo.list_direct_report_ids(frontier)) - visited
        visited |= reports
        subordinates |= reports
        frontier = reports
    return subordinates


def revoke_project_grants(uow: UnitOfWork, project_id: UUID, user_ids: set[UUID]) -> None:
    """Strip every module, task and activity grant the users hold in the project."""

    if not user_ids:
        return
    repo = uow.repo
    repo.delete_grants(AccessLevel.ACTIVITY, repo.activity_ids_in_project(project_id), user_ids)
    repo.delete_grants(AccessLevel.TASK, repo.task_ids_in_project(project_id), user_ids)
    repo.delete_grants(AccessLevel.MODULE, repo.module_ids_in_project(project_id), user_ids)


class TeamSyncService:
    """Reconciles project membership against a manager's org subtree."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_subtree(self, manager_id: UUID) -> set[UUID]:
        return resolve_subtree(HierarchyRepository(self.db), manager_id)

    def sync_project_team(
        self,
        project_id: UUID,
        manager_id: UUID,
        *,
        requested_by: UUID | None = None,
    ) -> TeamSyncResult:
        with unit_of_work(self.db) as uow:
            if uow.repo.get_project(project_id) is None:
                raise NotFoundError("Project", project_id)
            return self.apply(uow, project_id, manager_id, requested_by=requested_by)

    def apply(
        self,
        uow: UnitOfWork,
        project_id: UUID,
        manager_id: UUID,
        *,
        requested_by: UUID | None = None,
    ) -> TeamSyncResult:
        """Make membership equal ``{manager} | subtree(manager)`` inside ``uow``."""

        if uow.repo.get_user(manager_id) is None:
            raise NotFoundError("User", manager_id)

        target = {manager_id} | resolve_subtree(uow.repo, manager_id)
        current = uow.repo.list_member_ids(project_id)

        result = TeamSyncResult(project_id=project_id, added=target - current, removed=current - target)
        uow.repo.add_members(project_id, result.added, created_by=requested_by or manager_id)
        uow.repo.delete_members(project_id, result.removed)
        # Grants held by anyone outside the team go too, members or not.
        stale = uow.repo.list_project_grant_user_ids(project_id) - target
        revoke_project_grants(uow, project_id, result.removed | stale)

        if result.added or result.removed:
            logger.info(
                "Synced team of project %s: %d added, %d removed",
                project_id,
                len(result.added),
                len(result.removed),
            )
        return result

    def sync_all_project_teams(self) -> TeamSyncSummary:
        """Resync every active project, each in its own transaction.

        A failing project is rolled back and logged; the sweep carries on.
        """

        summary = TeamSyncSummary()
        refs = HierarchyRepository(self.db).list_project_refs_by_status(ProjectStatus.ACTIVE)
        # End the read transaction so each project gets a fresh one.
        self.db.commit()

        for project_id, manager_id in refs:
            try:
                with unit_of_work(self.db) as uow:
                    self.apply(uow, project_id, manager_id)
            except Exception:
                logger.exception("Team sync failed for project %s", project_id)
                summary.failed.append(project_id)
            else:
                summary.synced.append(project_id)

        logger.info("Global team sync finished: %d synced, %d failed", len(summary.synced), len(summary.failed))
        return summary
