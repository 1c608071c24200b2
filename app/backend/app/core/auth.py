"""Authentication context extraction and RBAC guard utilities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import UnauthorizedError
from app.db.dependencies import get_db_session
from app.models.entities import User, UserRole, UserStatus

GLOBAL_VIEWER_ROLES = {UserRole.SUPER_ADMIN, UserRole.HR}
PROJECT_EDITOR_ROLES = {UserRole.SUPER_ADMIN, UserRole.HR, UserRole.MANAGER}


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    microsoft_oid: str
    email: str
    display_name: str
    status: str
    role: UserRole

    @property
    def is_super_admin(self) -> bool:
        return self.role is UserRole.SUPER_ADMIN

    @property
    def is_global_viewer(self) -> bool:
        """Whether the user sees every project regardless of membership."""

        return self.role in GLOBAL_VIEWER_ROLES


def _require_identity_headers(
    x_ms_oid: str | None,
    x_ms_email: str | None,
) -> tuple[str, str]:
    if not x_ms_oid or not x_ms_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=(
                "Missing identity headers. Expected X-MS-OID and X-MS-EMAIL or enable development principal fallback."
            ),
        )
    return x_ms_oid.strip(), x_ms_email.strip().lower()


def _resolve_identity(x_ms_oid: str | None, x_ms_email: str | None) -> tuple[str, str]:
    settings = get_settings()
    if x_ms_oid and x_ms_email:
        return _require_identity_headers(x_ms_oid, x_ms_email)

    if settings.auth_allow_dev_principal:
        return settings.auth_dev_microsoft_oid.strip(), settings.auth_dev_email.strip().lower()

    return _require_identity_headers(x_ms_oid, x_ms_email)


def ensure_user_principal(
    db: Session,
    *,
    microsoft_oid: str,
    email: str,
    display_name: str,
    role: UserRole = UserRole.EMPLOYEE,
    status: str = UserStatus.ACTIVE.value,
    reporting_manager_id: UUID | None = None,
) -> User:
    """Ensure user exists and return persisted row.

    Employee records are owned by the HR directory; this helper exists for
    tests and seed scripts.
    """

    normalized_oid = microsoft_oid.strip()
    normalized_email = email.strip().lower()
    now = datetime.utcnow()

    user = db.scalar(select(User).where(User.microsoft_oid == normalized_oid))
    if user is None:
        user = User(microsoft_oid=normalized_oid, created_at=now)
        db.add(user)

    user.email = normalized_email
    user.display_name = display_name.strip() or normalized_email
    user.role = role
    user.status = status
    user.reporting_manager_id = reporting_manager_id
    user.updated_at = now
    db.commit()
    db.refresh(user)
    return user


def get_current_user_context(
    x_ms_oid: str | None = Header(default=None, alias="X-MS-OID"),
    x_ms_email: str | None = Header(default=None, alias="X-MS-EMAIL"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve current request user from trusted proxy headers.

    Unlike an identity provider callback this never creates users: only
    employees already known to the HR directory may act.
    """

    microsoft_oid, email = _resolve_identity(x_ms_oid, x_ms_email)
    user = db.scalar(select(User).where(User.microsoft_oid == microsoft_oid))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown principal.",
        )

    return RequestUserContext(
        user_id=user.id,
        microsoft_oid=user.microsoft_oid,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        role=user.role,
    )


def has_role(context: RequestUserContext, allowed_roles: set[UserRole]) -> bool:
    """Check whether user has any of the allowed roles."""

    return context.role in allowed_roles


def can_manage_project_metadata(context: RequestUserContext, *, manager_id: UUID | None = None) -> bool:
    """Project name, dates, status and manager are editable by HR-side roles and managers.

    A manager may only edit projects they manage; ``manager_id`` is None when
    the project does not exist yet.
    """

    if has_role(context, GLOBAL_VIEWER_ROLES):
        return True
    if not has_role(context, PROJECT_EDITOR_ROLES):
        return False
    return manager_id is None or manager_id == context.user_id


def can_manage_project_resources(context: RequestUserContext, *, manager_id: UUID) -> bool:
    """Modules, tasks, activities and their access are owned by the project manager."""

    return context.is_super_admin or context.user_id == manager_id


def require_roles(*roles: UserRole):
    """Dependency factory requiring at least one provided role."""

    allowed = set(roles)

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        if not has_role(context, allowed):
            raise UnauthorizedError("Insufficient role permissions for this operation.")
        return context

    return dependency
