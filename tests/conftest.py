"""
Shared test fixtures for the LMS backend.
Every test gets its own SQLite file; the AI gateway is replaced with scripted
stubs so there are zero network calls.
"""
import json
import os

import pytest
from fastapi.testclient import TestClient

from backend.config import settings
from backend.data.database_setup import get_db_connection, init_db
from backend.main import app
from backend.src.ai.openai_client import AIGatewayError, get_ai_gateway
from backend.src.auth.auth import create_user, issue_token
from backend.src.lms.data import new_id


class StubGateway:
    """Stands in for AIGateway: returns scripted replies or raises `error`."""

    def __init__(self, text="", data=None, error=None):
        self.text = text
        self.data = data if data is not None else {}
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_prompt=None, json_mode=False, history=None, max_tokens=None):
        self.calls.append({"system": system_prompt, "user": user_prompt, "history": history})
        if self.error:
            raise self.error
        return self.text

    def complete_json(self, system_prompt, user_prompt=None, history=None):
        self.calls.append({"system": system_prompt, "user": user_prompt, "history": history})
        if self.error:
            raise self.error
        return self.data


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the app at a fresh, fully migrated database file."""
    path = os.path.join(tmp_path, "lms.db")
    monkeypatch.setattr(settings, "DATABASE_PATH", path)
    init_db()
    return path


@pytest.fixture
def conn(db_path):
    connection = get_db_connection()
    yield connection
    connection.close()


@pytest.fixture
def client(db_path):
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_gateway():
    """Install a StubGateway for the request; returns it for call inspection."""
    def install(**kwargs):
        gateway = StubGateway(**kwargs)
        app.dependency_overrides[get_ai_gateway] = lambda: gateway
        return gateway
    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def failing_gateway(use_gateway):
    return use_gateway(error=AIGatewayError("upstream unavailable"))


def _account(conn, email, role, full_name, **profile):
    with conn:
        user_id, student_id = create_user(conn, email, "secret", full_name, role, **profile)
    token, _ = issue_token(conn, user_id)
    return {
        "id": user_id,
        "student_id": student_id,
        "email": email,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture
def teacher(conn):
    return _account(conn, "teacher@test.edu", "teacher", "Test Teacher")


@pytest.fixture
def other_teacher(conn):
    return _account(conn, "other@test.edu", "teacher", "Other Teacher")


@pytest.fixture
def admin(conn):
    return _account(conn, "admin@test.edu", "admin", "Test Admin")


@pytest.fixture
def student(conn):
    return _account(conn, "student@test.edu", "student", "Sam Student", grade="Grade 8", class_name="8A")


def mcq(text, options, answer, marks=1):
    return {"question_text": text, "question_type": "mcq", "options": options, "correct_answer": answer, "marks": marks}


def short_answer(text, answer=None, marks=5):
    return {"question_text": text, "question_type": "short_answer", "correct_answer": answer, "marks": marks}


def add_grade(conn, assessment_id, student_id, percentage, status="graded", letter="B", graded_at="2024-05-01T10:00:00"):
    with conn:
        conn.execute("""
            INSERT INTO grades (id, assessment_id, student_id, total_score, max_score, percentage,
                                grade_letter, grading_status, ai_feedback, graded_at)
            VALUES (?, ?, ?, ?, 100, ?, ?, ?, ?, ?)
        """, (new_id(), assessment_id, student_id, percentage, percentage, letter, status,
              json.dumps({"feedback": ""}), graded_at))


def add_submission(conn, assessment_id, student_id, status="submitted"):
    with conn:
        conn.execute("""
            INSERT INTO submissions (id, assessment_id, student_id, answers, status, submitted_at, created_at)
            VALUES (?, ?, ?, '{}', ?, '2024-05-01T09:00:00', '2024-05-01T09:00:00')
        """, (new_id(), assessment_id, student_id, status))


@pytest.fixture
def make_assessment(client, teacher):
    """POST an assessment as the teacher and return its id."""
    def create(title="Quiz", questions=None, headers=None, **fields):
        payload = {
            "assessment": {"title": title, "subject": "Math", "status": "published", **fields},
            "questions": questions if questions is not None else [],
        }
        response = client.post("/assessments", json=payload, headers=headers or teacher["headers"])
        assert response.status_code == 200, response.text
        return response.json()["id"]
    return create
