"""
This module provides test fixtures for the backend tests.
"""

from datetime import datetime, UTC
import os
import tempfile

# Point the app at a throwaway database and keep external services off
# before any backend module reads the environment.
TEST_DIR = tempfile.mkdtemp()
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(TEST_DIR, 'test_edumind.db')}"
os.environ["AZURE_OPENAI_ENDPOINT"] = ""
os.environ["AZURE_OPENAI_API_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["SEED_DEMO_DATA"] = "false"

import pytest
from fastapi.testclient import TestClient

from backend import llm_client
from backend.auth import create_access_token, hash_password
from backend.backend import app, persistence
from backend.cache import cache
from backend.db import Base, SessionLocal, engine

# Noon keeps the early_bird and night_owl achievements out of the way
FIXED_NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)

TEST_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Fresh tables, empty cache, mock tutor and a fixed clock for every test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    cache.clear()

    monkeypatch.setattr(llm_client, "ENDPOINT", "")
    monkeypatch.setattr(llm_client, "API_KEY", "")
    monkeypatch.setattr(persistence, "now", lambda: FIXED_NOW)

    yield

    cache.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store():
    return persistence


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    """Factory creating users directly through the persistence layer."""
    counter = {"n": 0}

    def _make_user(role="STUDENT", **fields):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "email": f"{role.lower()}{n}@example.com",
            "username": f"{role.lower()}{n}",
            "first_name": role.title(),
            "last_name": f"User{n}",
        }
        data.update(fields)
        return persistence.create_user(db, password_hash=hash_password(TEST_PASSWORD), role=role, **data)

    return _make_user


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_header


@pytest.fixture
def student(make_user):
    return make_user("STUDENT")


@pytest.fixture
def teacher(make_user):
    return make_user("TEACHER")


@pytest.fixture
def admin(make_user):
    return make_user("ADMIN")


@pytest.fixture
def student_headers(student):
    return auth_header(student)


@pytest.fixture
def teacher_headers(teacher):
    return auth_header(teacher)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def published_course(client, teacher_headers):
    """A published course with three lessons, created through the API."""
    response = client.post(
        "/api/learning/courses",
        headers=teacher_headers,
        json={
            "title": "Intro to Algebra",
            "description": "Variables and equations",
            "category": "Mathematics",
            "level": "beginner",
            "tags": ["algebra", "math"],
            "estimated_hours": 5,
            "is_published": True,
            "lessons": [
                {"title": "Variables", "content": "x is a number", "duration": 10},
                {"title": "Expressions", "content": "2x + 3", "duration": 15},
                {"title": "Equations", "content": "2x + 3 = 7", "duration": 20},
            ],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["course"]
