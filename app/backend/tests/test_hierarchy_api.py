from __future__ import annotations

import uuid

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.entities import UserRole
from conftest import auth_headers


def _create_project(client: TestClient, headers: dict[str, str], manager_id: uuid.UUID) -> dict[str, object]:
    response = client.post(
        "/api/v1/projects",
        headers=headers,
        json={"name": "Intranet", "description": "Staff portal", "manager_id": str(manager_id)},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_unknown_principal_is_rejected(client: TestClient) -> None:
    response = client.get(
        "/api/v1/me",
        headers={"X-MS-OID": "oid-ghost", "X-MS-EMAIL": "ghost@test.local"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Unknown principal."


def test_me_exposes_reporting_manager_and_managed_projects(client: TestClient, make_user) -> None:
    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    report = make_user("Rita Report", manager=manager)
    project = _create_project(client, auth_headers(manager), manager.id)

    manager_me = client.get("/api/v1/me", headers=auth_headers(manager)).json()
    report_me = client.get("/api/v1/me", headers=auth_headers(report)).json()

    assert manager_me["role"] == "manager"
    assert manager_me["managed_project_ids"] == [project["id"]]
    assert report_me["reporting_manager_id"] == str(manager.id)
    assert report_me["managed_project_ids"] == []


def test_full_hierarchy_flow(client: TestClient, make_user) -> None:
    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    alice = make_user("Alice Analyst", manager=manager)
    headers = auth_headers(manager)

    project = _create_project(client, headers, manager.id)
    assert project["custom_id"] == "PRO-001"
    assert project["is_manager"] is True

    team = client.get(f"/api/v1/projects/{project['id']}/team", headers=headers)
    assert [item["name"] for item in team.json()["items"]] == ["Maria Manager", "Alice Analyst"]

    module = client.post(
        f"/api/v1/projects/{project['id']}/modules",
        headers=headers,
        json={"name": "Portal", "assignee_ids": [str(alice.id)]},
    )
    assert module.status_code == 201
    module_id = module.json()["id"]
    assert module.json()["custom_id"] == "MOD-001"

    task = client.post(
        f"/api/v1/modules/{module_id}/tasks",
        headers=headers,
        json={"name": "Login", "due_date": "2026-12-01"},
    )
    assert task.status_code == 201
    assert task.json()["due_date"] == "2026-12-01"
    task_id = task.json()["id"]

    activity = client.post(f"/api/v1/tasks/{task_id}/activities", headers=headers, json={"name": "Design"})
    assert activity.json()["custom_id"] == "TSK-001-001"

    modules = client.get(f"/api/v1/projects/{project['id']}/modules", headers=headers).json()["items"]
    assert [user["name"] for user in modules[0]["assigned_users"]] == ["Maria Manager", "Alice Analyst"]

    choices = client.get(f"/api/v1/access/task/{task_id}", headers=headers).json()["items"]
    assert {item["id"] for item in choices} == {str(manager.id), str(alice.id)}

    alice_view = client.get(f"/api/v1/projects/{project['id']}/modules", headers=auth_headers(alice)).json()
    assert [item["custom_id"] for item in alice_view["items"]] == ["MOD-001"]


def test_grant_and_revoke_endpoints(client: TestClient, make_user) -> None:
    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    bob = make_user("Bob Builder", manager=manager)
    headers = auth_headers(manager)
    project = _create_project(client, headers, manager.id)
    module_id = client.post(
        f"/api/v1/projects/{project['id']}/modules", headers=headers, json={"name": "Core"}
    ).json()["id"]

    granted = client.post(f"/api/v1/access/module/{module_id}/grants", headers=headers, json={"user_id": str(bob.id)})
    assert granted.status_code == 201
    assert [item["id"] for item in granted.json()["items"]] == [str(manager.id), str(bob.id)]

    revoked = client.delete(f"/api/v1/access/module/{module_id}/grants/{bob.id}", headers=headers)
    assert revoked.status_code == 200
    assert [item["id"] for item in revoked.json()["items"]] == [str(manager.id)]

    protected = client.delete(f"/api/v1/access/module/{module_id}/grants/{manager.id}", headers=headers)
    assert protected.status_code == 409
    assert protected.json()["code"] == "protected_role_violation"

    forbidden = client.post(
        f"/api/v1/access/module/{module_id}/grants",
        headers=auth_headers(bob),
        json={"user_id": str(bob.id)},
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "unauthorized"


def test_domain_errors_map_to_status_codes(client: TestClient, make_user) -> None:
    hr = make_user("Hana Hr", role=UserRole.HR)
    leaving = make_user("Lena Leaving", role=UserRole.MANAGER, status="terminated")
    headers = auth_headers(hr)

    missing = client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=headers)
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Project not found.", "code": "not_found"}

    blocked = client.post(
        "/api/v1/projects",
        headers=headers,
        json={"name": "Nope", "manager_id": str(leaving.id)},
    )
    assert blocked.status_code == 422
    assert blocked.json()["code"] == "invalid_manager_status"

    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    project = _create_project(client, headers, manager.id)
    closed = client.patch(f"/api/v1/projects/{project['id']}", headers=headers, json={"status": "completed"})
    assert closed.status_code == 200
    assert closed.json()["end_date"] is not None

    late = client.post(
        f"/api/v1/projects/{project['id']}/modules",
        headers=auth_headers(manager),
        json={"name": "Late"},
    )
    assert late.status_code == 409
    assert late.json()["code"] == "project_not_active"


def test_project_deletion_and_global_sync_are_super_admin_only(
    client: TestClient,
    db_session: Session,
    make_user,
) -> None:
    admin = make_user("Sam Admin", role=UserRole.SUPER_ADMIN)
    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    project = _create_project(client, auth_headers(manager), manager.id)

    denied_sync = client.post("/api/v1/admin/team-sync", headers=auth_headers(manager))
    assert denied_sync.status_code == 403

    sync = client.post("/api/v1/admin/team-sync", headers=auth_headers(admin))
    assert sync.status_code == 200
    assert sync.json() == {"synced": [project["id"]], "failed": []}

    denied_delete = client.delete(f"/api/v1/projects/{project['id']}", headers=auth_headers(manager))
    assert denied_delete.status_code == 403

    deleted = client.delete(f"/api/v1/projects/{project['id']}", headers=auth_headers(admin))
    assert deleted.status_code == 204
    assert client.get(f"/api/v1/projects/{project['id']}", headers=auth_headers(admin)).status_code == 404


def test_manager_reassignment_endpoint(client: TestClient, make_user) -> None:
    hr = make_user("Hana Hr", role=UserRole.HR)
    old_manager = make_user("Olga Old", role=UserRole.MANAGER)
    new_manager = make_user("Nora New", role=UserRole.MANAGER)
    project = _create_project(client, auth_headers(hr), old_manager.id)

    response = client.put(
        f"/api/v1/projects/{project['id']}/manager",
        headers=auth_headers(hr),
        json={"manager_id": str(new_manager.id)},
    )

    assert response.status_code == 200
    assert response.json()["manager_id"] == str(new_manager.id)
    team = client.get(f"/api/v1/projects/{project['id']}/team", headers=auth_headers(hr)).json()["items"]
    assert [item["id"] for item in team] == [str(new_manager.id)]


def test_access_list_is_hidden_from_users_outside_the_project(client: TestClient, make_user) -> None:
    manager = make_user("Maria Manager", role=UserRole.MANAGER)
    alice = make_user("Alice Analyst", manager=manager)
    outsider = make_user("Xavier Outsider")
    hr = make_user("Hana Hr", role=UserRole.HR)
    project = _create_project(client, auth_headers(manager), manager.id)
    module_id = client.post(
        f"/api/v1/projects/{project['id']}/modules", headers=auth_headers(manager), json={"name": "Core"}
    ).json()["id"]

    hidden = client.get(f"/api/v1/access/module/{module_id}", headers=auth_headers(outsider))
    assert hidden.status_code == 404
    assert hidden.json()["code"] == "not_found"

    for viewer in (alice, hr):
        response = client.get(f"/api/v1/access/project/{project['id']}", headers=auth_headers(viewer))
        assert response.status_code == 200
        assert {item["id"] for item in response.json()["items"]} == {str(manager.id), str(alice.id)}

    missing = client.get(f"/api/v1/access/task/{uuid.uuid4()}", headers=auth_headers(hr))
    assert missing.status_code == 404
