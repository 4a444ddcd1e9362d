"""Pytest fixtures: test client, per-test SQLite databases, model factories."""
import itertools
import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

# Test environment (must be set before the app is imported)
_TMP_DIR = Path(tempfile.mkdtemp(prefix="taskminder-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR / 'app.db'}")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("VAPID_PRIVATE_KEY", "")

from taskminder.core.database import init_db, make_engine
from taskminder.main import app
from taskminder.models import PushSubscription, Task, User

ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret"}

_emails = itertools.count(1)


@pytest.fixture(scope="function")
def client():
    """TestClient; the lifespan creates the tables and the (scheduler-less) pipeline."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers() -> dict:
    return dict(ADMIN_HEADERS)


@pytest.fixture
def engine(tmp_path):
    """Fresh file-backed SQLite per test; worker threads get their own connections."""
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def make_user(engine):
    def _make(email: str | None = ...) -> User:
        if email is ...:
            email = f"user{next(_emails)}@example.com"
        with Session(engine) as db:
            user = User(email=email, full_name="Test User")
            db.add(user)
            db.commit()
            db.refresh(user)
            return user

    return _make


@pytest.fixture
def make_task(engine, make_user):
    default_owner = {}

    def _make(user_id: int | None = None, **fields) -> Task:
        if user_id is None:
            if "id" not in default_owner:
                default_owner["id"] = make_user().id
            user_id = default_owner["id"]
        fields.setdefault("title", "Write report")
        fields.setdefault("notifications_enabled", True)
        with Session(engine) as db:
            task = Task(user_id=user_id, **fields)
            db.add(task)
            db.commit()
            db.refresh(task)
            return task

    return _make


@pytest.fixture
def make_subscription(engine):
    def _make(user_id: int, endpoint: str, device_type: str | None = "web") -> PushSubscription:
        with Session(engine) as db:
            sub = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
                auth="tBHItJI5svbpez7KI4CCXg",
                device_type=device_type,
            )
            db.add(sub)
            db.commit()
            db.refresh(sub)
            return sub

    return _make


@pytest.fixture
def make_pipeline(engine):
    """Builds pipelines on the test engine (see tests/fakes.py); worker pools are shut down afterwards."""
    from tests.fakes import build_pipeline

    built = []

    def _make(**kwargs):
        parts = build_pipeline(engine, **kwargs)
        built.append(parts)
        return parts

    yield _make
    for parts in built:
        parts.orchestrator.shutdown()
