"""Shared fixtures: isolated settings, both repository backends, seeded data."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Point the data directory at a throwaway location before fieldsync is imported
os.environ["FIELDSYNC_DATA_DIR"] = tempfile.mkdtemp()

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import fieldsync.models  # noqa: F401
from fieldsync.models import Attachment, Case, Client, Device, User
from fieldsync.repositories import memory_repositories, sql_repositories
from fieldsync.services.audit import AuditNotifier
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.security import hash_password

PASSWORD = "s3cret-pass"
BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

# bcrypt is slow on purpose; hash once per session
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(params=["memory", "sql"])
def repos(request):
    """The same services must behave identically on both backends."""
    if request.param == "memory":
        yield memory_repositories()
        return

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield sql_repositories(session)
    engine.dispose()


@pytest.fixture
def audit(repos):
    return AuditNotifier(repos.audit_logs)


@pytest.fixture
def seeded(repos):
    """Two field agents, an admin, a back-office user, one client and three cases."""
    users = {
        "agent": repos.users.add(User(
            id="usr_agent", username="agent", name="Field Agent",
            password_hash=_PASSWORD_HASH, role="FIELD", employee_id="E-100",
        )),
        "agent2": repos.users.add(User(
            id="usr_agent2", username="agent2", name="Other Agent",
            password_hash=_PASSWORD_HASH, role="FIELD",
        )),
        "admin": repos.users.add(User(
            id="usr_admin", username="admin", name="Admin",
            password_hash=_PASSWORD_HASH, role="ADMIN",
        )),
        "backend": repos.users.add(User(
            id="usr_backend", username="backend", name="Back Office",
            password_hash=_PASSWORD_HASH, role="BACKEND",
        )),
    }
    repos.clients.add(Client(id="cli_acme", name="Acme Bank", code="ACME"))

    cases = {}
    for idx, (case_id, assignee) in enumerate([
        ("case-1", "usr_agent"),
        ("case-2", "usr_agent"),
        ("case-3", "usr_agent2"),
    ]):
        cases[case_id] = repos.cases.add(Case(
            id=case_id,
            client_id="cli_acme",
            assigned_to_id=assignee,
            title=f"Verify applicant {idx + 1}",
            customer_name=f"Customer {idx + 1}",
            address_city="Pune",
            assigned_at=BASE_TIME,
            created_at=BASE_TIME,
            updated_at=BASE_TIME + timedelta(minutes=idx),
        ))
    return {"users": users, "cases": cases}


def approved_device(repos, user_id: str, device_id: str, last_active: datetime | None = None) -> Device:
    return repos.devices.add(Device(
        device_id=device_id,
        user_id=user_id,
        platform="ANDROID",
        is_approved=True,
        approved_at=BASE_TIME,
        is_active=True,
        last_active_at=last_active or BASE_TIME,
    ))


def add_photos(repos, case_id: str, count: int, prefix: str = "att") -> list[str]:
    ids = []
    for i in range(count):
        att = repos.attachments.add(Attachment(
            id=f"{prefix}-{case_id}-{i}",
            case_id=case_id,
            filename=f"photo{i}.jpg",
            mime_type="image/jpeg",
            size=1024,
            url=f"/files/photo{i}.jpg",
            uploaded_at=BASE_TIME + timedelta(seconds=i),
        ))
        ids.append(att.id)
    return ids


def caller_for(user: User, device_id: str = "dev-1") -> CallerIdentity:
    return CallerIdentity(user_id=user.id, username=user.username, role=user.role, device_id=device_id)


@pytest.fixture
def api(seeded, repos):
    """TestClient wired to the seeded repositories."""
    from fieldsync.api.deps import get_repositories
    from fieldsync.main import app

    app.dependency_overrides[get_repositories] = lambda: repos
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
