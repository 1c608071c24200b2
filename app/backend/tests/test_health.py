from fastapi.testclient import TestClient

from app.core.auth import ensure_user_principal
from app.core.config import get_settings
from app.models.entities import UserRole


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_endpoint_reports_service_name(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"service": get_settings().app_name, "status": "running"}


def test_missing_headers_fall_back_to_dev_principal(client: TestClient, db_session) -> None:
    settings = get_settings()
    ensure_user_principal(
        db_session,
        microsoft_oid=settings.auth_dev_microsoft_oid,
        email=settings.auth_dev_email,
        display_name=settings.auth_dev_display_name,
        role=UserRole.HR,
    )

    response = client.get("/api/v1/me")

    assert response.status_code == 200
    assert response.json()["email"] == settings.auth_dev_email
    assert response.json()["role"] == "hr"
