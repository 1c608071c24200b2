"""Repository helpers for the project hierarchy, membership and access grants."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from app.models.entities import (
    AccessLevel,
    ActivityAccess,
    ModuleAccess,
    Project,
    ProjectActivity,
    ProjectMember,
    ProjectModule,
    ProjectStatus,
    ProjectTask,
    TaskAccess,
    TimeLogEntry,
    User,
)


@dataclass(frozen=True, slots=True)
class OwnerChain:
    """Ancestors of a resource up to its project, plus the project's manager."""

    project_id: UUID
    module_id: UUID | None
    task_id: UUID | None
    activity_id: UUID | None
    manager_id: UUID
    project_status: ProjectStatus


GRANT_TABLES: dict[AccessLevel, tuple[type, InstrumentedAttribute]] = {
    AccessLevel.MODULE: (ModuleAccess, ModuleAccess.module_id),
    AccessLevel.TASK: (TaskAccess, TaskAccess.task_id),
    AccessLevel.ACTIVITY: (ActivityAccess, ActivityAccess.activity_id),
}


def _grant_table(level: AccessLevel) -> tuple[type, InstrumentedAttribute]:
    try:
        return GRANT_TABLES[level]
    except KeyError:
        raise ValueError(f"No grant table for level {level.value}") from None


class HierarchyRepository:
    """Persistence operations used by team sync, access and lifecycle services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def get_user(self, user_id: UUID) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def list_users(self, user_ids: Iterable[UUID]) -> list[User]:
        ids = set(user_ids)
        if not ids:
            return []
        return self.db.scalars(select(User).where(User.id.in_(ids)).order_by(User.display_name.asc())).all()

    def list_direct_report_ids(self, manager_ids: Iterable[UUID]) -> list[UUID]:
        ids = set(manager_ids)
        if not ids:
            return []
        return self.db.scalars(select(User.id).where(User.reporting_manager_id.in_(ids))).all()

    # ---------- Projects ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def list_projects(self) -> list[Project]:
        return self.db.scalars(select(Project).order_by(Project.created_at.desc(), Project.custom_id.desc())).all()

    def list_projects_visible_to(self, user_id: UUID) -> list[Project]:
        member = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
        module_grant = (
            select(ProjectModule.project_id)
            .join(ModuleAccess, ModuleAccess.module_id == ProjectModule.id)
            .where(ModuleAccess.user_id == user_id)
        )
        task_grant = (
            select(ProjectModule.project_id)
            .join(ProjectTask, ProjectTask.module_id == ProjectModule.id)
            .join(TaskAccess, TaskAccess.task_id == ProjectTask.id)
            .where(TaskAccess.user_id == user_id)
        )
        activity_grant = (
            select(ProjectModule.project_id)
            .join(ProjectTask, ProjectTask.module_id == ProjectModule.id)
            .join(ProjectActivity, ProjectActivity.task_id == ProjectTask.id)
            .join(ActivityAccess, ActivityAccess.activity_id == ProjectActivity.id)
            .where(ActivityAccess.user_id == user_id)
        )
        return self.db.scalars(
            select(Project)
            .where(
                or_(
                    Project.manager_id == user_id,
                    Project.id.in_(member),
                    Project.id.in_(module_grant),
                    Project.id.in_(task_grant),
                    Project.id.in_(activity_grant),
                )
            )
            .order_by(Project.created_at.desc(), Project.custom_id.desc())
        ).all()

    def list_project_refs_by_status(self, project_status: ProjectStatus) -> list[tuple[UUID, UUID]]:
        rows = self.db.execute(
            select(Project.id, Project.manager_id)
            .where(Project.status == project_status)
            .order_by(Project.custom_id.asc())
        ).all()
        return [(row.id, row.manager_id) for row in rows]

    def list_project_ids_managed_by(self, user_id: UUID) -> list[UUID]:
        return self.db.scalars(
            select(Project.id).where(Project.manager_id == user_id).order_by(Project.custom_id.asc())
        ).all()

    # ---------- Modules, tasks, activities ----------
    def get_module(self, module_id: UUID) -> ProjectModule | None:
        return self.db.scalar(select(ProjectModule).where(ProjectModule.id == module_id))

    def get_task(self, task_id: UUID) -> ProjectTask | None:
        return self.db.scalar(select(ProjectTask).where(ProjectTask.id == task_id))

    def get_activity(self, activity_id: UUID) -> ProjectActivity | None:
        return self.db.scalar(select(ProjectActivity).where(ProjectActivity.id == activity_id))

    def list_modules(self, project_id: UUID, *, granted_to: UUID | None = None) -> list[ProjectModule]:
        stmt = select(ProjectModule).where(ProjectModule.project_id == project_id)
        if granted_to is not None:
            stmt = stmt.join(ModuleAccess, ModuleAccess.module_id == ProjectModule.id).where(
                ModuleAccess.user_id == granted_to
            )
        return self.db.scalars(stmt.order_by(ProjectModule.custom_id.asc())).all()

    def list_tasks(self, module_id: UUID, *, granted_to: UUID | None = None) -> list[ProjectTask]:
        stmt = select(ProjectTask).where(ProjectTask.module_id == module_id)
        if granted_to is not None:
            stmt = stmt.join(TaskAccess, TaskAccess.task_id == ProjectTask.id).where(TaskAccess.user_id == granted_to)
        return self.db.scalars(stmt.order_by(ProjectTask.custom_id.asc())).all()

    def list_activities(self, task_id: UUID, *, granted_to: UUID | None = None) -> list[ProjectActivity]:
        stmt = select(ProjectActivity).where(ProjectActivity.task_id == task_id)
        if granted_to is not None:
            stmt = stmt.join(ActivityAccess, ActivityAccess.activity_id == ProjectActivity.id).where(
                ActivityAccess.user_id == granted_to
            )
        return self.db.scalars(stmt.order_by(ProjectActivity.custom_id.asc())).all()

    def add(self, row: Project | ProjectModule | ProjectTask | ProjectActivity) -> None:
        self.db.add(row)
        self.db.flush()

    # Subselects of resource ids owned by a parent; used by bulk deletes and grants.
    @staticmethod
    def module_ids_in_project(project_id: UUID):
        return select(ProjectModule.id).where(ProjectModule.project_id == project_id)

    @staticmethod
    def task_ids_in_project(project_id: UUID):
        return (
            select(ProjectTask.id)
            .join(ProjectModule, ProjectModule.id == ProjectTask.module_id)
            .where(ProjectModule.project_id == project_id)
        )

    @staticmethod
    def activity_ids_in_project(project_id: UUID):
        return (
            select(ProjectActivity.id)
            .join(ProjectTask, ProjectTask.id == ProjectActivity.task_id)
            .join(ProjectModule, ProjectModule.id == ProjectTask.module_id)
            .where(ProjectModule.project_id == project_id)
        )

    @staticmethod
    def task_ids_in_module(module_id: UUID):
        return select(ProjectTask.id).where(ProjectTask.module_id == module_id)

    @staticmethod
    def activity_ids_in_module(module_id: UUID):
        return (
            select(ProjectActivity.id)
            .join(ProjectTask, ProjectTask.id == ProjectActivity.task_id)
            .where(ProjectTask.module_id == module_id)
        )

    @staticmethod
    def activity_ids_in_task(task_id: UUID):
        return select(ProjectActivity.id).where(ProjectActivity.task_id == task_id)

    # ---------- Ownership ----------
    def owner_chain(self, level: AccessLevel, resource_id: UUID) -> OwnerChain | None:
        """Resolve project, manager and status for a resource at any level."""

        if level is AccessLevel.PROJECT:
            row = self.db.execute(
                select(
                    Project.id.label("project_id"),
                    Project.manager_id,
                    Project.status,
                ).where(Project.id == resource_id)
            ).first()
            if row is None:
                return None
            return OwnerChain(row.project_id, None, None, None, row.manager_id, row.status)

        columns = [
            Project.id.label("project_id"),
            ProjectModule.id.label("module_id"),
            Project.manager_id,
            Project.status,
        ]
        if level is AccessLevel.MODULE:
            stmt = select(*columns).select_from(ProjectModule).where(ProjectModule.id == resource_id)
        elif level is AccessLevel.TASK:
            stmt = (
                select(*columns, ProjectTask.id.label("task_id"))
                .select_from(ProjectTask)
                .join(ProjectModule, ProjectModule.id == ProjectTask.module_id)
                .where(ProjectTask.id == resource_id)
            )
        else:
            stmt = (
                select(*columns, ProjectTask.id.label("task_id"), ProjectActivity.id.label("activity_id"))
                .select_from(ProjectActivity)
                .join(ProjectTask, ProjectTask.id == ProjectActivity.task_id)
                .join(ProjectModule, ProjectModule.id == ProjectTask.module_id)
                .where(ProjectActivity.id == resource_id)
            )

        row = self.db.execute(stmt.join(Project, Project.id == ProjectModule.project_id)).first()
        if row is None:
            return None
        mapping = row._mapping
        return OwnerChain(
            project_id=mapping["project_id"],
            module_id=mapping["module_id"],
            task_id=mapping.get("task_id"),
            activity_id=mapping.get("activity_id"),
            manager_id=mapping["manager_id"],
            project_status=mapping["status"],
        )

    # ---------- Identifiers ----------
    def last_custom_id(
        self,
        model: type,
        prefix: str,
        *,
        parent_column: InstrumentedAttribute | None = None,
        parent_id: UUID | None = None,
    ) -> str | None:
        conditions = [model.custom_id.like(f"{prefix}-%")]
        if parent_column is not None:
            conditions.append(parent_column == parent_id)
        # Longer identifiers sort after shorter ones so PRO-1000 follows PRO-999.
        return self.db.scalar(
            select(model.custom_id)
            .where(and_(*conditions))
            .order_by(func.length(model.custom_id).desc(), model.custom_id.desc())
            .limit(1)
        )

    # ---------- Membership ----------
    def list_member_ids(self, project_id: UUID) -> set[UUID]:
        return set(self.db.scalars(select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)).all())

    def add_members(self, project_id: UUID, user_ids: Iterable[UUID], *, created_by: UUID | None) -> None:
        now = datetime.utcnow()
        for user_id in user_ids:
            self.db.add(ProjectMember(project_id=project_id, user_id=user_id, created_by=created_by, joined_at=now))
        self.db.flush()

    def delete_members(self, project_id: UUID, user_ids: Iterable[UUID]) -> int:
        ids = set(user_ids)
        if not ids:
            return 0
        result = self.db.execute(
            delete(ProjectMember).where(
                and_(ProjectMember.project_id == project_id, ProjectMember.user_id.in_(ids))
            )
        )
        return result.rowcount

    # ---------- Grants ----------
    def list_grant_user_ids(self, level: AccessLevel, resource_id: UUID) -> set[UUID]:
        model, column = _grant_table(level)
        return set(self.db.scalars(select(model.user_id).where(column == resource_id)).all())

    def list_project_grant_user_ids(self, project_id: UUID) -> set[UUID]:
        """Users holding any module, task or activity grant inside the project."""

        user_ids: set[UUID] = set()
        for level, resource_ids in (
            (AccessLevel.MODULE, self.module_ids_in_project(project_id)),
            (AccessLevel.TASK, self.task_ids_in_project(project_id)),
            (AccessLevel.ACTIVITY, self.activity_ids_in_project(project_id)),
        ):
            model, column = _grant_table(level)
            user_ids.update(self.db.scalars(select(model.user_id).where(column.in_(resource_ids))).all())
        return user_ids

    def add_grants(
        self,
        level: AccessLevel,
        resource_ids: Iterable[UUID],
        user_id: UUID,
        *,
        granted_by: UUID | None,
    ) -> int:
        """Insert-or-ignore grants of one user on many resources; returns rows inserted."""

        model, column = _grant_table(level)
        ids = set(resource_ids)
        if not ids:
            return 0
        existing = set(
            self.db.scalars(select(column).where(and_(column.in_(ids), model.user_id == user_id))).all()
        )
        now = datetime.utcnow()
        missing = ids - existing
        for resource_id in missing:
            self.db.add(
                model(**{column.key: resource_id, "user_id": user_id, "granted_by": granted_by, "granted_at": now})
            )
        self.db.flush()
        return len(missing)

    def delete_grants(self, level: AccessLevel, resource_ids, user_ids: Iterable[UUID] | None = None) -> int:
        """Delete grants on ``resource_ids`` (an id list or subselect), optionally only for some users."""

        model, column = _grant_table(level)
        conditions = [column.in_(resource_ids)]
        if user_ids is not None:
            ids = set(user_ids)
            if not ids:
                return 0
            conditions.append(model.user_id.in_(ids))
        result = self.db.execute(delete(model).where(and_(*conditions)))
        return result.rowcount

    # ---------- Bulk deletion ----------
    def delete_time_logs(self, column: InstrumentedAttribute, resource_ids) -> int:
        result = self.db.execute(delete(TimeLogEntry).where(column.in_(resource_ids)))
        return result.rowcount

    def delete_rows(self, model: type, resource_ids) -> int:
        result = self.db.execute(delete(model).where(model.id.in_(resource_ids)))
        return result.rowcount

    def delete_all_members(self, project_id: UUID) -> int:
        result = self.db.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
        return result.rowcount
