import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway database before anything imports it.
_DB_DIR = Path(tempfile.mkdtemp(prefix="study_planner_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ.setdefault("ENV", "dev")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from study_planner.database import create_db_and_tables, engine  # noqa: E402
from study_planner.main import app  # noqa: E402


@pytest.fixture
def db():
    """A database session bound to the test database."""
    create_db_and_tables()
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user():
    """Register and log in a fresh user; returns id, email and auth headers."""
    client = TestClient(app)

    def _make(name: str = "Student"):
        email = f"{uuid.uuid4().hex[:12]}@example.com"
        password = "s3cret-pass"
        r = client.post('/auth/register', json={'email': email, 'password': password, 'name': name})
        assert r.status_code == 201, r.text
        login = client.post('/auth/login', json={'email': email, 'password': password})
        assert login.status_code == 200, login.text
        body = login.json()
        return {
            'id': body['user']['id'],
            'email': email,
            'password': password,
            'token': body['token'],
            'headers': {'Authorization': f"Bearer {body['token']}"},
        }

    return _make
