"""Read-only view of the HR employee directory used by the hierarchy engine."""

from __future__ import annotations

from uuid import UUID

from app.repositories.hierarchy_repository import HierarchyRepository


class UserDirectory:
    def __init__(self, repo: HierarchyRepository) -> None:
        self.repo = repo

    def get_status(self, user_id: UUID) -> str | None:
        user = self.repo.get_user(user_id)
        return user.status if user is not None else None

    def get_reporting_manager(self, user_id: UUID) -> UUID | None:
        user = self.repo.get_user(user_id)
        return user.reporting_manager_id if user is not None else None
