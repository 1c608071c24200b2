"""project hierarchy, membership and access schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role = postgresql.ENUM("super_admin", "hr", "manager", "employee", name="user_role", create_type=False)
project_status = postgresql.ENUM(
    "active", "completed", "on_hold", "archived", name="project_status", create_type=False
)


def _uuid_fk(name: str, target: str, *, nullable: bool = False, primary_key: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target),
        nullable=nullable,
        primary_key=primary_key,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    user_role.create(op.get_bind(), checkfirst=True)
    project_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("microsoft_oid", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("emp_id", sa.String(length=32), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        _uuid_fk("reporting_manager_id", "users.id", nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_reporting_manager_id", "users", ["reporting_manager_id"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("custom_id", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid_fk("manager_id", "users.id"),
        sa.Column("status", project_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=True),
        _uuid_fk("updated_by", "users.id", nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_manager_id", "projects", ["manager_id"])
    op.create_index("ix_projects_status", "projects", ["status"])

    op.create_table(
        "project_modules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("project_id", "projects.id"),
        sa.Column("custom_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "custom_id", name="uq_project_modules_project_custom_id"),
    )
    op.create_index("ix_project_modules_project_id", "project_modules", ["project_id"])

    op.create_table(
        "project_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("module_id", "project_modules.id"),
        sa.Column("custom_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("module_id", "custom_id", name="uq_project_tasks_module_custom_id"),
    )
    op.create_index("ix_project_tasks_module_id", "project_tasks", ["module_id"])

    op.create_table(
        "project_activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("task_id", "project_tasks.id"),
        sa.Column("custom_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid_fk("created_by", "users.id", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("task_id", "custom_id", name="uq_project_activities_task_custom_id"),
    )
    op.create_index("ix_project_activities_task_id", "project_activities", ["task_id"])

    op.create_table(
        "project_members",
        _uuid_fk("project_id", "projects.id", primary_key=True),
        _uuid_fk("user_id", "users.id", primary_key=True),
        _uuid_fk("created_by", "users.id", nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    for table, column, target in (
        ("module_access", "module_id", "project_modules.id"),
        ("task_access", "task_id", "project_tasks.id"),
        ("activity_access", "activity_id", "project_activities.id"),
    ):
        op.create_table(
            table,
            _uuid_fk(column, target, primary_key=True),
            _uuid_fk("user_id", "users.id", primary_key=True),
            _uuid_fk("granted_by", "users.id", nullable=True),
            sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "project_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _uuid_fk("user_id", "users.id"),
        _uuid_fk("project_id", "projects.id"),
        _uuid_fk("module_id", "project_modules.id"),
        _uuid_fk("task_id", "project_tasks.id"),
        _uuid_fk("activity_id", "project_activities.id"),
        sa.Column("log_date", sa.Date(), nullable=False),
        sa.Column("duration", sa.Numeric(4, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("log_status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_project_entries_user_date", "project_entries", ["user_id", "log_date"])
    op.create_index("ix_project_entries_project_id", "project_entries", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_project_entries_project_id", table_name="project_entries")
    op.drop_index("ix_project_entries_user_date", table_name="project_entries")
    op.drop_table("project_entries")

    for table in ("activity_access", "task_access", "module_access"):
        op.drop_index(f"ix_{table}_user_id", table_name=table)
        op.drop_table(table)

    op.drop_index("ix_project_members_user_id", table_name="project_members")
    op.drop_table("project_members")

    op.drop_index("ix_project_activities_task_id", table_name="project_activities")
    op.drop_table("project_activities")
    op.drop_index("ix_project_tasks_module_id", table_name="project_tasks")
    op.drop_table("project_tasks")
    op.drop_index("ix_project_modules_project_id", table_name="project_modules")
    op.drop_table("project_modules")

    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_index("ix_projects_manager_id", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_users_reporting_manager_id", table_name="users")
    op.drop_table("users")

    project_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
