from __future__ import annotations

import os
import uuid

os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlmodel import Session, SQLModel, create_engine

from soloflow.api.routes.billing import get_payment_gateway
from soloflow.core.config import settings
from soloflow.db import session as db_session_module
from soloflow.db.session import get_session
from soloflow.main import app
from soloflow.models.user import User
from soloflow.services.billing import ManualGateway
from soloflow.services.realtime import SubscriptionChannel
from soloflow.utils.security import get_password_hash

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not test_database_url:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        test_database_url = f"sqlite:///{db_path}"

    is_postgres = test_database_url.startswith("postgresql")

    admin_engine = None
    schema_name = None

    if is_postgres:
        url = make_url(test_database_url)
        schema_name = f"test_{uuid.uuid4().hex}"
        admin_engine = create_engine(url, future=True)
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"')
            )
        connect_args = {"options": f"-csearch_path={schema_name},public"}
        engine = create_engine(test_database_url, connect_args=connect_args, future=True)
    else:
        engine = create_engine(test_database_url, connect_args={"check_same_thread": False})

    SQLModel.metadata.create_all(bind=engine)

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_session, None)
    db_session_module.engine = original_engine
    engine.dispose()
    if is_postgres and admin_engine and schema_name:
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE')
            )
        admin_engine.dispose()


@pytest.fixture()
def gateway() -> ManualGateway:
    manual = ManualGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: manual
    yield manual
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture()
def client(db_engine, gateway) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


@pytest.fixture()
def channel() -> SubscriptionChannel:
    return SubscriptionChannel()


@pytest.fixture()
def make_user(db_session):
    def _make_user(email: str | None = None, *, is_admin: bool = False, full_name: str = "Asha Freelancer") -> User:
        user = User(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            full_name=full_name,
            password_hash=get_password_hash("s3cret-pass"),
            is_admin=is_admin,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def register_and_login(client):
    def _register_and_login(password: str = "s3cret-pass") -> tuple[dict[str, str], str]:
        email = f"{uuid.uuid4().hex[:8]}@example.com"
        payload = {"full_name": "Asha Freelancer", "email": email, "password": password}
        register_response = client.post(f"{settings.api_v1_str}/auth/register", json=payload)
        assert register_response.status_code == status.HTTP_201_CREATED, register_response.json()

        login_response = client.post(
            f"{settings.api_v1_str}/auth/login",
            json={"username": email, "password": password},
        )
        assert login_response.status_code == status.HTTP_200_OK, login_response.json()
        return login_response.json(), email

    return _register_and_login


@pytest.fixture()
def auth_headers():
    def _auth_headers(token: dict[str, str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {token['access_token']}"}

    return _auth_headers
