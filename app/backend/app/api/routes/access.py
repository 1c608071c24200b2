"""Access list and grant endpoints for every hierarchy level."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.models.entities import AccessLevel
from app.services.access_service import AccessGrantService, GrantListSnapshot
from app.services.project_service import ProjectService

router = APIRouter(prefix="/access", tags=["access"])


class GrantPayload(BaseModel):
    user_id: UUID


def _serialize_snapshot(snapshot: GrantListSnapshot) -> dict[str, object]:
    return {
        "level": snapshot.level.value,
        "resource_id": str(snapshot.resource_id),
        "items": [ProjectService.serialize_holder(holder) for holder in snapshot.holders],
    }


@router.get("/{level}/{resource_id}")
def get_access_list(
    level: AccessLevel,
    resource_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    """Users selectable for the resource: holders of it, or of its parent for tasks and activities."""

    service = AccessGrantService(db)
    service.ensure_can_view(context=context, level=level, resource_id=resource_id)
    holders = service.list_access(level, resource_id)
    return {"items": [ProjectService.serialize_holder(holder) for holder in holders]}


@router.post("/{level}/{resource_id}/grants", status_code=status.HTTP_201_CREATED)
def grant_access(
    level: AccessLevel,
    resource_id: UUID,
    payload: GrantPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = AccessGrantService(db)
    service.ensure_can_manage(context=context, level=level, resource_id=resource_id)
    snapshot = service.grant_access(level, resource_id, payload.user_id, context.user_id)
    return _serialize_snapshot(snapshot)


@router.delete("/{level}/{resource_id}/grants/{user_id}")
def revoke_access(
    level: AccessLevel,
    resource_id: UUID,
    user_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = AccessGrantService(db)
    service.ensure_can_manage(context=context, level=level, resource_id=resource_id)
    snapshot = service.revoke_access(level, resource_id, user_id, context.user_id)
    return _serialize_snapshot(snapshot)
