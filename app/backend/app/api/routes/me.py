"""Current user endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.repositories.hierarchy_repository import HierarchyRepository
from app.services.user_directory import UserDirectory

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def get_me(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Return current authenticated user profile, reporting line and managed projects."""

    repo = HierarchyRepository(db)
    reporting_manager_id = UserDirectory(repo).get_reporting_manager(context.user_id)
    return {
        "id": str(context.user_id),
        "microsoft_oid": context.microsoft_oid,
        "email": context.email,
        "display_name": context.display_name,
        "status": context.status,
        "role": context.role.value,
        "reporting_manager_id": str(reporting_manager_id) if reporting_manager_id is not None else None,
        "managed_project_ids": [str(project_id) for project_id in repo.list_project_ids_managed_by(context.user_id)],
    }
