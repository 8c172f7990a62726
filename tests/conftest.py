"""Shared fixtures for the CBT Mood Tracker tests.

Each test gets a fresh application bound to an in-memory SQLite
database with the exercise catalog seeded. The language model client is
replaced by :class:`FakeAnalyzer`, so no test touches the network.
"""
from __future__ import annotations

import itertools

import pytest

from cbt_tracker import create_app, db
from cbt_tracker.errors import AnalysisFailed
from cbt_tracker.services.exercise_service import seed_catalog

PASSWORD = "correct-horse-battery"


class FakeAnalyzer:
    """Stands in for ``OpenAIAbcAnalyzer``.

    Returns ``reply`` for every call, or raises ``AnalysisFailed`` when
    ``fail`` is set. Calls are recorded for inspection. ``during_call``
    runs while the call is in flight.
    """

    def __init__(self) -> None:
        self.reply: dict = {"distortions": [], "recommendations": []}
        self.fail = False
        self.calls: list[tuple] = []
        self.during_call = None

    def analyze(self, activating_event, beliefs, consequences, exercise_ids):
        self.calls.append((activating_event, beliefs, consequences, list(exercise_ids)))
        if self.during_call is not None:
            self.during_call()
        if self.fail:
            raise AnalysisFailed("Text analysis service timed out.")
        return self.reply


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def app(analyzer):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
        "ABC_ANALYZER": analyzer,
    })
    with app.app_context():
        db.create_all()
        seed_catalog()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns ``(user_json, auth_headers)``."""
    counter = itertools.count(1)

    def _make(role: str = "patient", email: str | None = None):
        n = next(counter)
        email = email or f"{role}{n}@example.com"
        resp = client.post("/api/register", json={
            "first_name": role.title(),
            "last_name": str(n),
            "email": email,
            "password": PASSWORD,
            "role": role,
        })
        assert resp.status_code == 201, resp.get_json()
        login = client.post("/api/login", json={"email": email, "password": PASSWORD})
        assert login.status_code == 200, login.get_json()
        token = login.get_json()["access_token"]
        return resp.get_json(), {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def patient(make_user):
    return make_user("patient")


@pytest.fixture
def therapist(make_user):
    return make_user("therapist")


@pytest.fixture
def linked(client, patient, therapist):
    """A patient and a therapist with an active link between them."""
    resp = client.post(
        "/api/therapist/patients",
        json={"patient_id": patient[0]["id"]},
        headers=therapist[1],
    )
    assert resp.status_code == 201, resp.get_json()
    return patient, therapist


def create_abc(client, headers, **overrides) -> dict:
    body = {
        "activating_event": "My manager asked to see me tomorrow.",
        "beliefs": "I am going to be fired.",
        "consequences": "Could not sleep, felt anxious.",
        "mood_before": 3,
    }
    body.update(overrides)
    resp = client.post("/api/abc-schemas", json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def create_mood_entry(client, headers, level: int = 4, **extra) -> dict:
    resp = client.post("/api/mood-entries", json={"mood_level": level, **extra}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def error_code(resp) -> str:
    return resp.get_json()["error"]["code"]
