"""Administration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, require_roles
from app.db.dependencies import get_db_session
from app.models.entities import UserRole
from app.services.team_sync_service import TeamSyncService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/team-sync")
def sync_all_project_teams(
    _context: RequestUserContext = Depends(require_roles(UserRole.SUPER_ADMIN)),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Resync the team of every active project against the reporting hierarchy."""

    summary = TeamSyncService(db).sync_all_project_teams()
    return {
        "synced": [str(project_id) for project_id in summary.synced],
        "failed": [str(project_id) for project_id in summary.failed],
    }
