"""Fixtures for the web API tests."""

import pytest
from fastapi.testclient import TestClient

from classbook.web.api import create_app

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client over a fresh database under tmp_path.

    The lifespan runs on entering the context, so the database is
    initialized from the default config relative to tmp_path.
    """
    monkeypatch.chdir(tmp_path)
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def course_id(client):
    """Create a term with one course through the API."""
    term = client.post("/api/terms", json={"name": "2024.1"}, headers=HEADERS).json()
    course = client.post(f"/api/terms/{term['id']}/courses", json={"name": "Teologia"}).json()
    return course["id"]


@pytest.fixture
def student_id(client):
    """Create a student through the API."""
    response = client.post(
        "/api/students", json={"name": "Ana Lima", "matricula": "2024001"}, headers=HEADERS
    )
    return response.json()["id"]
