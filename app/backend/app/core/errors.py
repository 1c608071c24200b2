"""Domain error kinds raised by the hierarchy services.

Each error carries the HTTP status and a stable machine-readable ``code``;
the API layer registers a single handler for ``DomainError`` so services
stay free of transport concerns.
"""

from __future__ import annotations

from uuid import UUID


class DomainError(Exception):
    status_code = 400
    code = "domain_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Requested project, module, task, activity or user does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: UUID | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found.")


class InvalidManagerStatusError(DomainError):
    status_code = 422
    code = "invalid_manager_status"

    def __init__(self, user_id: UUID, user_status: str) -> None:
        self.user_id = user_id
        self.user_status = user_status
        super().__init__(f"Cannot assign a user with status '{user_status}' as project manager.")


class DuplicateIdentifierError(DomainError):
    status_code = 409
    code = "duplicate_identifier"

    def __init__(self, resource: str, custom_id: str) -> None:
        self.resource = resource
        self.custom_id = custom_id
        super().__init__(f"{resource} identifier {custom_id} already exists.")


class ProtectedRoleViolationError(DomainError):
    """Attempt to remove the current project manager's access."""

    status_code = 409
    code = "protected_role_violation"

    def __init__(self, level: str, resource_id: UUID, user_id: UUID) -> None:
        self.level = level
        self.resource_id = resource_id
        self.user_id = user_id
        super().__init__("The project manager's access cannot be revoked.")


class ProjectNotActiveError(DomainError):
    status_code = 409
    code = "project_not_active"

    def __init__(self, project_id: UUID, project_status: str) -> None:
        self.project_id = project_id
        self.project_status = project_status
        super().__init__(f"Project is {project_status}; only active projects can be changed.")


class UnauthorizedError(DomainError):
    status_code = 403
    code = "unauthorized"


class ValidationError(DomainError):
    """Well-formed input that violates a business rule."""

    status_code = 422
    code = "validation_error"
