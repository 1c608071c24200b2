"""ORM model package."""

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
    UserRole,
    UserStatus,
)

__all__ = [
    "AccessLevel",
    "ActivityAccess",
    "ModuleAccess",
    "Project",
    "ProjectActivity",
    "ProjectMember",
    "ProjectModule",
    "ProjectStatus",
    "ProjectTask",
    "TaskAccess",
    "TimeLogEntry",
    "User",
    "UserRole",
    "UserStatus",
]
