"""Application service for the project / module / task / activity lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import (
    RequestUserContext,
    can_manage_project_metadata,
    can_manage_project_resources,
)
from app.core.errors import (
    DuplicateIdentifierError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.db.unit_of_work import UnitOfWork, unit_of_work
from app.models.entities import (
    AccessLevel,
    Project,
    ProjectActivity,
    ProjectModule,
    ProjectStatus,
    ProjectTask,
    TimeLogEntry,
    UserRole,
)
from app.repositories.hierarchy_repository import HierarchyRepository, OwnerChain
from app.services.access_service import (
    AccessGrantService,
    GrantHolder,
    ensure_project_active,
    require_owner_chain,
)
from app.services.identifiers import next_custom_id
from app.services.notifications import LoggingNotificationSender, NotificationSender, notify_quietly
from app.services.reassignment_service import ManagerReassignmentService, ensure_assignable_manager
from app.services.team_sync_service import TeamSyncResult, TeamSyncService

logger = logging.getLogger(__name__)

PROJECT_PREFIX = "PRO"
MODULE_PREFIX = "MOD"
TASK_PREFIX = "TSK"

# Postgres reports unique violations as SQLSTATE 23505.
UNIQUE_VIOLATION = "23505"


def _is_custom_id_conflict(exc: IntegrityError) -> bool:
    """Whether the failed insert collided on a custom_id unique constraint."""

    orig = exc.orig
    if getattr(orig, "sqlstate", None) == UNIQUE_VIOLATION:
        diag = getattr(orig, "diag", None)
        return "custom_id" in (getattr(diag, "constraint_name", None) or "")
    message = str(orig)
    return message.startswith("UNIQUE constraint failed") and "custom_id" in message


@dataclass(slots=True)
class ProjectCreateData:
    name: str
    manager_id: UUID
    description: str | None = None
    end_date: date | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    """Fields a project update may touch.

    ``manager_id`` and ``status`` are special-cased: a manager change runs
    the reassignment sequence and leaving ``active`` stamps an end date.
    """

    name: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    manager_id: UUID | None = None
    status: ProjectStatus | None = None


@dataclass(slots=True)
class ResourceCreateData:
    name: str
    description: str | None = None
    due_date: date | None = None
    assignee_ids: list[UUID] = field(default_factory=list)


@dataclass(slots=True)
class ResourceUpdateData:
    name: str | None = None
    description: str | None = None
    due_date: date | None = None
    # None leaves access untouched; a list replaces the assignee set.
    assignee_ids: list[UUID] | None = None


class ProjectService:
    """Creates, updates and deletes hierarchy entities and keeps access consistent."""

    def __init__(self, db: Session, *, notifier: NotificationSender | None = None) -> None:
        self.db = db
        self.repo = HierarchyRepository(db)
        self.notifier = notifier or LoggingNotificationSender()
        self.access = AccessGrantService(db)
        self.team_sync = TeamSyncService(db)
        self.reassignment = ManagerReassignmentService(db, notifier=self.notifier)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_project(project: Project, *, viewer_id: UUID | None = None) -> dict[str, object]:
        return {
            "id": str(project.id),
            "custom_id": project.custom_id,
            "name": project.name,
            "description": project.description,
            "manager_id": str(project.manager_id),
            "status": project.status.value,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "is_manager": viewer_id is not None and project.manager_id == viewer_id,
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_holder(holder: GrantHolder) -> dict[str, object]:
        return {
            "id": str(holder.user_id),
            "name": holder.display_name,
            "initials": holder.initials,
            "email": holder.email,
            "emp_id": holder.emp_id,
            "is_manager": holder.is_manager,
        }

    @classmethod
    def serialize_resource(
        cls,
        row: ProjectModule | ProjectTask | ProjectActivity,
        holders: list[GrantHolder] | None = None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(row.id),
            "custom_id": row.custom_id,
            "name": row.name,
            "description": row.description,
        }
        if isinstance(row, ProjectModule):
            payload["project_id"] = str(row.project_id)
        elif isinstance(row, ProjectTask):
            payload["module_id"] = str(row.module_id)
            payload["due_date"] = row.due_date.isoformat() if row.due_date else None
        else:
            payload["task_id"] = str(row.task_id)
        if holders is not None:
            payload["assigned_users"] = [cls.serialize_holder(holder) for holder in holders]
        return payload

    # ---------- Guards ----------
    def _ensure_can_manage_resources(self, context: RequestUserContext, chain: OwnerChain) -> None:
        if not can_manage_project_resources(context, manager_id=chain.manager_id):
            raise UnauthorizedError("Only the project manager can change modules, tasks and activities.")

    def _ensure_can_view(self, context: RequestUserContext, project: Project) -> None:
        if context.is_global_viewer or project.manager_id == context.user_id:
            return
        visible = {row.id for row in self.repo.list_projects_visible_to(context.user_id)}
        if project.id not in visible:
            raise NotFoundError("Project", project.id)

    def _sees_everything(self, context: RequestUserContext, chain: OwnerChain) -> bool:
        return context.is_global_viewer or context.user_id == chain.manager_id

    # ---------- Projects ----------
    def list_projects(self, *, context: RequestUserContext) -> list[Project]:
        if context.is_global_viewer:
            return self.repo.list_projects()
        return self.repo.list_projects_visible_to(context.user_id)

    def get_project(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        self._ensure_can_view(context, project)
        return project

    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        if not can_manage_project_metadata(context):
            raise UnauthorizedError("Only super admins, HR and managers can create projects.")

        # A manager creating a project always manages it.
        manager_id = context.user_id if context.role is UserRole.MANAGER else data.manager_id

        with unit_of_work(self.db) as uow:
            ensure_assignable_manager(uow.repo, manager_id)
            custom_id = next_custom_id(uow.repo, Project, PROJECT_PREFIX)
            now = datetime.utcnow()
            project = Project(
                custom_id=custom_id,
                name=data.name.strip(),
                description=data.description.strip() if data.description else None,
                manager_id=manager_id,
                status=ProjectStatus.ACTIVE,
                start_date=now.date(),
                end_date=data.end_date,
                created_by=context.user_id,
                updated_by=context.user_id,
                created_at=now,
                updated_at=now,
            )
            self._insert(uow, project, "Project")
            self.team_sync.apply(uow, project.id, manager_id, requested_by=context.user_id)

        self.db.refresh(project)
        logger.info("Created project %s managed by %s", project.custom_id, manager_id)
        notify_quietly(
            self.notifier,
            recipient_id=manager_id,
            subject=f"New project {project.custom_id}",
            body=f"You are the project manager of {project.name}.",
        )
        return project

    def update_project(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectUpdateData,
    ) -> Project:
        manager_changed = False
        with unit_of_work(self.db) as uow:
            project = uow.repo.get_project(project_id)
            if project is None:
                raise NotFoundError("Project", project_id)
            if not can_manage_project_metadata(context, manager_id=project.manager_id):
                raise UnauthorizedError("Insufficient permissions to update this project.")

            target_start = data.start_date if data.start_date is not None else project.start_date
            target_end = data.end_date if data.end_date is not None else project.end_date
            if (
                data.status is not None
                and project.status is ProjectStatus.ACTIVE
                and data.status is not ProjectStatus.ACTIVE
                and data.end_date is None
            ):
                target_end = date.today()
            if target_start is not None and target_end is not None and target_end < target_start:
                raise ValidationError("end_date must be greater than or equal to start_date.")

            if data.name is not None:
                project.name = data.name.strip()
            if data.description is not None:
                project.description = data.description.strip() or None
            project.start_date = target_start
            project.end_date = target_end
            if data.status is not None:
                project.status = data.status
            project.updated_by = context.user_id
            project.updated_at = datetime.utcnow()

            if data.manager_id is not None and data.manager_id != project.manager_id:
                self.reassignment.apply(uow, project, data.manager_id, requested_by=context.user_id)
                manager_changed = True

        self.db.refresh(project)
        if manager_changed:
            self.reassignment.notify_new_manager(project)
        return project

    def reassign_manager(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        manager_id: UUID,
    ) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        if not can_manage_project_metadata(context, manager_id=project.manager_id):
            raise UnauthorizedError("Insufficient permissions to change the project manager.")
        return self.reassignment.reassign_manager(project_id, manager_id, context.user_id)

    def sync_project_team(self, *, context: RequestUserContext, project_id: UUID) -> TeamSyncResult:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        if not can_manage_project_metadata(context, manager_id=project.manager_id):
            raise UnauthorizedError("Insufficient permissions to resync this project team.")
        return self.team_sync.sync_project_team(project.id, project.manager_id, requested_by=context.user_id)

    def delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        if not context.is_super_admin:
            raise UnauthorizedError("Only super admins can delete projects.")

        with unit_of_work(self.db) as uow:
            project = uow.repo.get_project(project_id)
            if project is None:
                raise NotFoundError("Project", project_id)
            custom_id = project.custom_id
            repo = uow.repo
            self._delete_subtree(
                uow,
                module_ids=self._ids(repo.module_ids_in_project(project_id)),
                task_ids=self._ids(repo.task_ids_in_project(project_id)),
                activity_ids=self._ids(repo.activity_ids_in_project(project_id)),
                project_id=project_id,
            )
            repo.delete_all_members(project_id)
            repo.delete_rows(Project, [project_id])
        logger.info("Deleted project %s with its full hierarchy", custom_id)

    # ---------- Modules ----------
    def list_modules(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
    ) -> list[tuple[ProjectModule, list[GrantHolder]]]:
        project = self.get_project(context=context, project_id=project_id)
        chain = require_owner_chain(self.repo, AccessLevel.PROJECT, project.id)
        granted_to = None if self._sees_everything(context, chain) else context.user_id
        rows = self.repo.list_modules(project_id, granted_to=granted_to)
        return [(row, self.access.grant_snapshot(AccessLevel.MODULE, row.id).holders) for row in rows]

    def create_module(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ResourceCreateData,
    ) -> ProjectModule:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.PROJECT, project_id)
            module = ProjectModule(
                project_id=project_id,
                custom_id=next_custom_id(
                    uow.repo,
                    ProjectModule,
                    MODULE_PREFIX,
                    parent_column=ProjectModule.project_id,
                    parent_id=project_id,
                ),
                name=data.name.strip(),
                description=data.description.strip() if data.description else None,
                created_by=context.user_id,
            )
            self._insert(uow, module, "Module")
            self.access.replace_grants(
                uow, chain, AccessLevel.MODULE, module.id, data.assignee_ids, granted_by=context.user_id
            )

        self.db.refresh(module)
        logger.info("Created module %s in project %s", module.custom_id, project_id)
        return module

    def update_module(
        self,
        *,
        context: RequestUserContext,
        module_id: UUID,
        data: ResourceUpdateData,
    ) -> ProjectModule:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.MODULE, module_id)
            module = uow.repo.get_module(module_id)
            self._apply_resource_update(uow, chain, AccessLevel.MODULE, module, data, context.user_id)
        self.db.refresh(module)
        return module

    def delete_module(self, *, context: RequestUserContext, module_id: UUID) -> None:
        with unit_of_work(self.db) as uow:
            chain = require_owner_chain(uow.repo, AccessLevel.MODULE, module_id)
            self._ensure_can_manage_resources(context, chain)
            repo = uow.repo
            self._delete_subtree(
                uow,
                module_ids=[module_id],
                task_ids=self._ids(repo.task_ids_in_module(module_id)),
                activity_ids=self._ids(repo.activity_ids_in_module(module_id)),
            )
        logger.info("Deleted module %s", module_id)

    # ---------- Tasks ----------
    def list_tasks(
        self,
        *,
        context: RequestUserContext,
        module_id: UUID,
    ) -> list[tuple[ProjectTask, list[GrantHolder]]]:
        chain = self.repo.owner_chain(AccessLevel.MODULE, module_id)
        if chain is None:
            return []
        granted_to = None if self._sees_everything(context, chain) else context.user_id
        rows = self.repo.list_tasks(module_id, granted_to=granted_to)
        return [(row, self.access.grant_snapshot(AccessLevel.TASK, row.id).holders) for row in rows]

    def create_task(
        self,
        *,
        context: RequestUserContext,
        module_id: UUID,
        data: ResourceCreateData,
    ) -> ProjectTask:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.MODULE, module_id)
            task = ProjectTask(
                module_id=module_id,
                custom_id=next_custom_id(
                    uow.repo,
                    ProjectTask,
                    TASK_PREFIX,
                    parent_column=ProjectTask.module_id,
                    parent_id=module_id,
                ),
                name=data.name.strip(),
                description=data.description.strip() if data.description else None,
                due_date=data.due_date,
                created_by=context.user_id,
            )
            self._insert(uow, task, "Task")
            self.access.replace_grants(
                uow, chain, AccessLevel.TASK, task.id, data.assignee_ids, granted_by=context.user_id
            )

        self.db.refresh(task)
        logger.info("Created task %s in module %s", task.custom_id, module_id)
        return task

    def update_task(
        self,
        *,
        context: RequestUserContext,
        task_id: UUID,
        data: ResourceUpdateData,
    ) -> ProjectTask:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.TASK, task_id)
            task = uow.repo.get_task(task_id)
            if data.due_date is not None:
                task.due_date = data.due_date
            self._apply_resource_update(uow, chain, AccessLevel.TASK, task, data, context.user_id)
        self.db.refresh(task)
        return task

    def delete_task(self, *, context: RequestUserContext, task_id: UUID) -> None:
        with unit_of_work(self.db) as uow:
            chain = require_owner_chain(uow.repo, AccessLevel.TASK, task_id)
            self._ensure_can_manage_resources(context, chain)
            self._delete_subtree(
                uow,
                task_ids=[task_id],
                activity_ids=self._ids(uow.repo.activity_ids_in_task(task_id)),
            )
        logger.info("Deleted task %s", task_id)

    # ---------- Activities ----------
    def list_activities(
        self,
        *,
        context: RequestUserContext,
        task_id: UUID,
    ) -> list[tuple[ProjectActivity, list[GrantHolder]]]:
        chain = self.repo.owner_chain(AccessLevel.TASK, task_id)
        if chain is None:
            return []
        granted_to = None if self._sees_everything(context, chain) else context.user_id
        rows = self.repo.list_activities(task_id, granted_to=granted_to)
        return [(row, self.access.grant_snapshot(AccessLevel.ACTIVITY, row.id).holders) for row in rows]

    def create_activity(
        self,
        *,
        context: RequestUserContext,
        task_id: UUID,
        data: ResourceCreateData,
    ) -> ProjectActivity:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.TASK, task_id)
            task = uow.repo.get_task(task_id)
            # Activities are numbered under their task: TSK-001-001, TSK-001-002, ...
            activity = ProjectActivity(
                task_id=task_id,
                custom_id=next_custom_id(
                    uow.repo,
                    ProjectActivity,
                    task.custom_id,
                    parent_column=ProjectActivity.task_id,
                    parent_id=task_id,
                ),
                name=data.name.strip(),
                description=data.description.strip() if data.description else None,
                created_by=context.user_id,
            )
            self._insert(uow, activity, "Activity")
            self.access.replace_grants(
                uow, chain, AccessLevel.ACTIVITY, activity.id, data.assignee_ids, granted_by=context.user_id
            )

        self.db.refresh(activity)
        logger.info("Created activity %s in task %s", activity.custom_id, task_id)
        return activity

    def update_activity(
        self,
        *,
        context: RequestUserContext,
        activity_id: UUID,
        data: ResourceUpdateData,
    ) -> ProjectActivity:
        with unit_of_work(self.db) as uow:
            chain = self._writable_chain(uow, context, AccessLevel.ACTIVITY, activity_id)
            activity = uow.repo.get_activity(activity_id)
            self._apply_resource_update(uow, chain, AccessLevel.ACTIVITY, activity, data, context.user_id)
        self.db.refresh(activity)
        return activity

    def delete_activity(self, *, context: RequestUserContext, activity_id: UUID) -> None:
        with unit_of_work(self.db) as uow:
            chain = require_owner_chain(uow.repo, AccessLevel.ACTIVITY, activity_id)
            self._ensure_can_manage_resources(context, chain)
            self._delete_subtree(uow, activity_ids=[activity_id])
        logger.info("Deleted activity %s", activity_id)

    # ---------- Internals ----------
    def _writable_chain(
        self,
        uow: UnitOfWork,
        context: RequestUserContext,
        level: AccessLevel,
        resource_id: UUID,
    ) -> OwnerChain:
        chain = require_owner_chain(uow.repo, level, resource_id)
        self._ensure_can_manage_resources(context, chain)
        ensure_project_active(chain)
        return chain

    def _insert(self, uow: UnitOfWork, row: Project | ProjectModule | ProjectTask | ProjectActivity, resource: str) -> None:
        try:
            uow.repo.add(row)
        except IntegrityError as exc:
            if not _is_custom_id_conflict(exc):
                raise
            raise DuplicateIdentifierError(resource, row.custom_id) from exc

    def _apply_resource_update(
        self,
        uow: UnitOfWork,
        chain: OwnerChain,
        level: AccessLevel,
        row: ProjectModule | ProjectTask | ProjectActivity,
        data: ResourceUpdateData,
        actor_id: UUID,
    ) -> None:
        if data.name is not None:
            row.name = data.name.strip()
        if data.description is not None:
            row.description = data.description.strip() or None
        row.updated_at = datetime.utcnow()
        uow.db.flush()
        if data.assignee_ids is not None:
            self.access.replace_grants(uow, chain, level, row.id, data.assignee_ids, granted_by=actor_id)

    def _ids(self, stmt) -> list[UUID]:
        return list(self.db.scalars(stmt).all())

    def _delete_subtree(
        self,
        uow: UnitOfWork,
        *,
        module_ids: list[UUID] | None = None,
        task_ids: list[UUID] | None = None,
        activity_ids: list[UUID] | None = None,
        project_id: UUID | None = None,
    ) -> None:
        """Remove resources children-first: time logs, then grants and rows per level."""

        repo = uow.repo
        module_ids = module_ids or []
        task_ids = task_ids or []
        activity_ids = activity_ids or []

        if project_id is not None:
            repo.delete_time_logs(TimeLogEntry.project_id, [project_id])
        repo.delete_time_logs(TimeLogEntry.module_id, module_ids)
        repo.delete_time_logs(TimeLogEntry.task_id, task_ids)
        repo.delete_time_logs(TimeLogEntry.activity_id, activity_ids)

        repo.delete_grants(AccessLevel.ACTIVITY, activity_ids)
        repo.delete_rows(ProjectActivity, activity_ids)
        repo.delete_grants(AccessLevel.TASK, task_ids)
        repo.delete_rows(ProjectTask, task_ids)
        repo.delete_grants(AccessLevel.MODULE, module_ids)
        repo.delete_rows(ProjectModule, module_ids)
