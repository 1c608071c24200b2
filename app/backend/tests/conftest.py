from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import RequestUserContext, ensure_user_principal
from app.db.base import Base
from app.db.dependencies import get_db_session
import app.models.entities  # noqa: F401
from app.main import create_app
from app.models.entities import (
    ActivityAccess,
    ModuleAccess,
    Project,
    ProjectActivity,
    ProjectMember,
    ProjectModule,
    ProjectTask,
    TaskAccess,
    TimeLogEntry,
    User,
    UserRole,
)

TEST_TABLES = [
    User.__table__,
    Project.__table__,
    ProjectModule.__table__,
    ProjectTask.__table__,
    ProjectActivity.__table__,
    ProjectMember.__table__,
    ModuleAccess.__table__,
    TaskAccess.__table__,
    ActivityAccess.__table__,
    TimeLogEntry.__table__,
]


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory for directory users; ``oid`` defaults to a slug of the display name."""

    def factory(
        display_name: str,
        *,
        role: UserRole = UserRole.EMPLOYEE,
        status: str = "active",
        manager: User | None = None,
    ) -> User:
        slug = display_name.lower().replace(" ", ".")
        return ensure_user_principal(
            db_session,
            microsoft_oid=f"oid-{slug}-{uuid.uuid4().hex[:6]}",
            email=f"{slug}@test.local",
            display_name=display_name,
            role=role,
            status=status,
            reporting_manager_id=manager.id if manager is not None else None,
        )

    return factory


def context_for(user: User) -> RequestUserContext:
    return RequestUserContext(
        user_id=user.id,
        microsoft_oid=user.microsoft_oid,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        role=user.role,
    )


def auth_headers(user: User) -> dict[str, str]:
    return {
        "X-MS-OID": user.microsoft_oid,
        "X-MS-EMAIL": user.email,
        "X-MS-DISPLAY-NAME": user.display_name,
    }
