"""Manager swap: wipe derived access, rebuild the team, re-grant the new manager."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import InvalidManagerStatusError, NotFoundError
from app.db.unit_of_work import UnitOfWork, unit_of_work
from app.models.entities import AccessLevel, Project
from app.repositories.hierarchy_repository import HierarchyRepository
from app.services.notifications import LoggingNotificationSender, NotificationSender, notify_quietly
from app.services.team_sync_service import TeamSyncService
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


def ensure_assignable_manager(repo: HierarchyRepository, user_id: UUID) -> None:
    """Reject unknown users and users whose status bars them from managing."""

    status = UserDirectory(repo).get_status(user_id)
    if status is None:
        raise NotFoundError("Project manager", user_id)
    if status in get_settings().blocked_manager_statuses:
        raise InvalidManagerStatusError(user_id, status)


def wipe_project_access(uow: UnitOfWork, project_id: UUID) -> None:
    repo = uow.repo
    repo.delete_grants(AccessLevel.ACTIVITY, repo.activity_ids_in_project(project_id))
    repo.delete_grants(AccessLevel.TASK, repo.task_ids_in_project(project_id))
    repo.delete_grants(AccessLevel.MODULE, repo.module_ids_in_project(project_id))


def grant_baseline_access(uow: UnitOfWork, project_id: UUID, manager_id: UUID) -> None:
    """Give the manager access to every module, task and activity of the project.

    Insert-or-ignore, so re-running it is harmless.
    """

    repo = uow.repo
    scopes = (
        (AccessLevel.MODULE, repo.module_ids_in_project(project_id)),
        (AccessLevel.TASK, repo.task_ids_in_project(project_id)),
        (AccessLevel.ACTIVITY, repo.activity_ids_in_project(project_id)),
    )
    for level, id_query in scopes:
        resource_ids = repo.db.scalars(id_query).all()
        repo.add_grants(level, resource_ids, manager_id, granted_by=manager_id)


class ManagerReassignmentService:
    def __init__(
        self,
        db: Session,
        *,
        notifier: NotificationSender | None = None,
    ) -> None:
        self.db = db
        self.team_sync = TeamSyncService(db)
        self.notifier = notifier or LoggingNotificationSender()

    def reassign_manager(self, project_id: UUID, new_manager_id: UUID, requested_by: UUID) -> Project:
        with unit_of_work(self.db) as uow:
            project = uow.repo.get_project(project_id)
            if project is None:
                raise NotFoundError("Project", project_id)
            self.apply(uow, project, new_manager_id, requested_by=requested_by)

        self.db.refresh(project)
        self.notify_new_manager(project)
        return project

    def apply(
        self,
        uow: UnitOfWork,
        project: Project,
        new_manager_id: UUID,
        *,
        requested_by: UUID | None,
    ) -> None:
        """Run the full reassignment sequence inside ``uow``.

        Every earlier access decision was made under the previous manager's
        authority, so all grants are reset rather than selectively kept.
        """

        ensure_assignable_manager(uow.repo, new_manager_id)
        previous_manager_id = project.manager_id

        project.manager_id = new_manager_id
        project.updated_by = requested_by
        project.updated_at = datetime.utcnow()
        uow.db.flush()

        wipe_project_access(uow, project.id)
        self.team_sync.apply(uow, project.id, new_manager_id, requested_by=requested_by)
        grant_baseline_access(uow, project.id, new_manager_id)
        logger.info(
            "Project %s manager changed from %s to %s (requested by %s)",
            project.custom_id,
            previous_manager_id,
            new_manager_id,
            requested_by,
        )

    def notify_new_manager(self, project: Project) -> None:
        notify_quietly(
            self.notifier,
            recipient_id=project.manager_id,
            subject=f"You now manage project {project.custom_id}",
            body=f"You have been assigned as project manager of {project.name}.",
        )
