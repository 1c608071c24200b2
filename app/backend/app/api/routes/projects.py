"""Project hierarchy lifecycle endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context
from app.db.dependencies import get_db_session
from app.models.entities import AccessLevel, ProjectStatus
from app.services.access_service import AccessGrantService
from app.services.project_service import (
    ProjectCreateData,
    ProjectService,
    ProjectUpdateData,
    ResourceCreateData,
    ResourceUpdateData,
)

router = APIRouter(tags=["projects"])


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    manager_id: UUID
    end_date: date | None = None


class ProjectUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    start_date: date | None = None
    end_date: date | None = None
    manager_id: UUID | None = None
    status: ProjectStatus | None = None


class ManagerPayload(BaseModel):
    manager_id: UUID


class ResourceCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    due_date: date | None = None
    assignee_ids: list[UUID] = Field(default_factory=list)


class ResourceUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    due_date: date | None = None
    assignee_ids: list[UUID] | None = None


def _project_service(db: Session) -> ProjectService:
    return ProjectService(db)


def _create_data(payload: ResourceCreatePayload) -> ResourceCreateData:
    return ResourceCreateData(
        name=payload.name,
        description=payload.description,
        due_date=payload.due_date,
        assignee_ids=list(payload.assignee_ids),
    )


def _update_data(payload: ResourceUpdatePayload) -> ResourceUpdateData:
    return ResourceUpdateData(
        name=payload.name,
        description=payload.description,
        due_date=payload.due_date,
        assignee_ids=list(payload.assignee_ids) if payload.assignee_ids is not None else None,
    )


# ---------- Projects ----------
@router.get("/projects")
def list_projects(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    items = service.list_projects(context=context)
    return {"items": [service.serialize_project(project, viewer_id=context.user_id) for project in items]}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            name=payload.name,
            description=payload.description,
            manager_id=payload.manager_id,
            end_date=payload.end_date,
        ),
    )
    return service.serialize_project(project, viewer_id=context.user_id)


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.get_project(context=context, project_id=project_id)
    return service.serialize_project(project, viewer_id=context.user_id)


@router.patch("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            name=payload.name,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            manager_id=payload.manager_id,
            status=payload.status,
        ),
    )
    return service.serialize_project(project, viewer_id=context.user_id)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _project_service(db)
    service.delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/projects/{project_id}/manager")
def reassign_project_manager(
    project_id: UUID,
    payload: ManagerPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.reassign_manager(context=context, project_id=project_id, manager_id=payload.manager_id)
    return service.serialize_project(project, viewer_id=context.user_id)


@router.post("/projects/{project_id}/team-sync")
def sync_project_team(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    result = service.sync_project_team(context=context, project_id=project_id)
    return {
        "project_id": str(result.project_id),
        "added": sorted(str(user_id) for user_id in result.added),
        "removed": sorted(str(user_id) for user_id in result.removed),
    }


@router.get("/projects/{project_id}/team")
def list_project_team(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    project = service.get_project(context=context, project_id=project_id)
    holders = AccessGrantService(db).list_access(AccessLevel.PROJECT, project.id)
    return {"items": [service.serialize_holder(holder) for holder in holders]}


# ---------- Modules ----------
@router.get("/projects/{project_id}/modules")
def list_project_modules(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    rows = service.list_modules(context=context, project_id=project_id)
    return {"items": [service.serialize_resource(module, holders) for module, holders in rows]}


@router.post("/projects/{project_id}/modules", status_code=status.HTTP_201_CREATED)
def create_project_module(
    project_id: UUID,
    payload: ResourceCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    module = service.create_module(context=context, project_id=project_id, data=_create_data(payload))
    return service.serialize_resource(module)


@router.patch("/modules/{module_id}")
def update_module(
    module_id: UUID,
    payload: ResourceUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    module = service.update_module(context=context, module_id=module_id, data=_update_data(payload))
    return service.serialize_resource(module)


@router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_module(
    module_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _project_service(db)
    service.delete_module(context=context, module_id=module_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Tasks ----------
@router.get("/modules/{module_id}/tasks")
def list_module_tasks(
    module_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    rows = service.list_tasks(context=context, module_id=module_id)
    return {"items": [service.serialize_resource(task, holders) for task, holders in rows]}


@router.post("/modules/{module_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_module_task(
    module_id: UUID,
    payload: ResourceCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    task = service.create_task(context=context, module_id=module_id, data=_create_data(payload))
    return service.serialize_resource(task)


@router.patch("/tasks/{task_id}")
def update_task(
    task_id: UUID,
    payload: ResourceUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    task = service.update_task(context=context, task_id=task_id, data=_update_data(payload))
    return service.serialize_resource(task)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _project_service(db)
    service.delete_task(context=context, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Activities ----------
@router.get("/tasks/{task_id}/activities")
def list_task_activities(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    rows = service.list_activities(context=context, task_id=task_id)
    return {"items": [service.serialize_resource(activity, holders) for activity, holders in rows]}


@router.post("/tasks/{task_id}/activities", status_code=status.HTTP_201_CREATED)
def create_task_activity(
    task_id: UUID,
    payload: ResourceCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    activity = service.create_activity(context=context, task_id=task_id, data=_create_data(payload))
    return service.serialize_resource(activity)


@router.patch("/activities/{activity_id}")
def update_activity(
    activity_id: UUID,
    payload: ResourceUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    activity = service.update_activity(context=context, activity_id=activity_id, data=_update_data(payload))
    return service.serialize_resource(activity)


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _project_service(db)
    service.delete_activity(context=context, activity_id=activity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
