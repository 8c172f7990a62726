"""Exercise catalog, therapist templates, assignments and completions."""
import pytest
from sqlalchemy.exc import IntegrityError

from cbt_tracker import db
from cbt_tracker.models import Exercise, ExerciseCompletion
from cbt_tracker.services.exercise_service import CATALOG, seed_catalog, compute_effectiveness

from conftest import create_abc, error_code

TEMPLATE = {
    "title": "Thought diary",
    "description": "Write down automatic thoughts.",
    "instructions": "Three times a day, note the situation and the thought.",
    "category": "Cognitive Restructuring",
    "estimated_duration": 10,
    "difficulty": "easy",
}


def _create_template(client, headers, **overrides):
    resp = client.post("/api/exercise-templates", json={**TEMPLATE, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _assign(client, headers, template_id, patient_id, **extra):
    return client.post(
        "/api/exercise-assignments",
        json={"template_id": template_id, "patient_id": patient_id, **extra},
        headers=headers,
    )


def test_catalog_is_public_and_sorted(client) -> None:
    resp = client.get("/api/exercises")
    assert resp.status_code == 200
    titles = [e["title"] for e in resp.get_json()]
    assert len(titles) == len(CATALOG)
    assert titles == sorted(titles)


def test_catalog_category_filter(client) -> None:
    resp = client.get("/api/exercises?category=Mindfulness")
    assert {e["id"] for e in resp.get_json()} == {"mindfulness-exercise", "worry-time"}


def test_seed_catalog_is_idempotent(app) -> None:
    with app.app_context():
        assert seed_catalog() == 0
        assert Exercise.query.count() == len(CATALOG)


@pytest.mark.parametrize(
    "before, after, expected",
    [(3, 6, 3 / 7), (6, 3, 0.0), (4, 4, 0.0), (1, 7, 6 / 7)],
)
def test_compute_effectiveness(before, after, expected) -> None:
    assert compute_effectiveness(before, after) == pytest.approx(expected)


def test_effectiveness_needs_both_moods() -> None:
    assert compute_effectiveness(None, 5) is None
    assert compute_effectiveness(2, None) is None


def test_catalog_completion(client, patient) -> None:
    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "catalog", "id": "balanced-thinking"},
        "mood_before": 3,
        "mood_after": 6,
        "response": "Wrote a fairer version.",
    }, headers=patient[1])
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["effectiveness"] == pytest.approx(0.4286, abs=1e-4)
    assert body["exercise"] == {
        "kind": "catalog",
        "id": "balanced-thinking",
        "title": "Balanced Thinking",
        "category": "Cognitive Restructuring",
    }


def test_mood_decline_has_zero_effectiveness(client, patient) -> None:
    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "catalog", "id": "worry-time"},
        "mood_before": 6,
        "mood_after": 3,
    }, headers=patient[1])
    assert resp.get_json()["effectiveness"] == 0


def test_completion_rejects_unknown_exercise_and_bad_moods(client, patient) -> None:
    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "catalog", "id": "no-such-exercise"},
    }, headers=patient[1])
    assert resp.status_code == 404

    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "catalog", "id": "worry-time"},
        "mood_before": 9,
    }, headers=patient[1])
    assert resp.status_code == 400

    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "legacy", "id": "1"},
    }, headers=patient[1])
    assert resp.status_code == 400


def test_completion_reference_check_constraint(app, patient) -> None:
    with app.app_context():
        db.session.add(ExerciseCompletion(
            user_id=patient[0]["id"],
            exercise_kind="catalog",
            catalog_exercise_id=None,
            assignment_id=None,
        ))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


def test_template_lifecycle(client, therapist) -> None:
    template = _create_template(client, therapist[1])
    assert template["is_active"] is True

    resp = client.put(f"/api/exercise-templates/{template['id']}", json={"estimated_duration": 20},
                      headers=therapist[1])
    assert resp.get_json()["estimated_duration"] == 20
    assert resp.get_json()["title"] == TEMPLATE["title"]

    copy = client.post(f"/api/exercise-templates/{template['id']}/duplicate", headers=therapist[1]).get_json()
    assert copy["title"] == "Thought diary (copy)"
    assert copy["original_template_id"] == template["id"]

    resp = client.delete(f"/api/exercise-templates/{template['id']}", headers=therapist[1])
    assert resp.status_code == 200
    assert resp.get_json()["is_active"] is False

    listed = client.get("/api/exercise-templates", headers=therapist[1]).get_json()
    assert [t["id"] for t in listed] == [copy["id"]]
    listed = client.get("/api/exercise-templates?include_inactive=true", headers=therapist[1]).get_json()
    assert {t["id"] for t in listed} == {template["id"], copy["id"]}

    resp = client.put(f"/api/exercise-templates/{template['id']}", json={"title": "x"}, headers=therapist[1])
    assert resp.status_code == 400


def test_templates_belong_to_their_author(client, make_user, therapist) -> None:
    template = _create_template(client, therapist[1])
    _, other_headers = make_user("therapist")
    resp = client.put(f"/api/exercise-templates/{template['id']}", json={"title": "x"}, headers=other_headers)
    assert resp.status_code == 403
    assert error_code(resp) == "ACCESS_DENIED"


def test_assignment_requires_link(client, patient, therapist) -> None:
    template = _create_template(client, therapist[1])
    resp = _assign(client, therapist[1], template["id"], patient[0]["id"])
    assert resp.status_code == 403
    assert error_code(resp) == "ACCESS_DENIED"


def test_assignment_abc_record_must_belong_to_patient(client, make_user, linked) -> None:
    patient, therapist = linked
    _, other_headers = make_user("patient")
    foreign = create_abc(client, other_headers)
    template = _create_template(client, therapist[1])
    resp = _assign(client, therapist[1], template["id"], patient[0]["id"], abc_schema_id=foreign["id"])
    assert resp.status_code == 400


def test_inactive_template_cannot_be_assigned(client, linked) -> None:
    patient, therapist = linked
    template = _create_template(client, therapist[1])
    client.delete(f"/api/exercise-templates/{template['id']}", headers=therapist[1])
    resp = _assign(client, therapist[1], template["id"], patient[0]["id"])
    assert resp.status_code == 400


def test_assignment_survives_template_deactivation(client, linked) -> None:
    patient, therapist = linked
    template = _create_template(client, therapist[1])
    assignment = _assign(client, therapist[1], template["id"], patient[0]["id"]).get_json()
    assert assignment["status"] == "assigned"

    client.delete(f"/api/exercise-templates/{template['id']}", headers=therapist[1])

    listed = client.get("/api/exercise-assignments", headers=patient[1]).get_json()
    assert [a["id"] for a in listed] == [assignment["id"]]
    assert listed[0]["template"]["title"] == TEMPLATE["title"]
    assert listed[0]["template"]["is_active"] is False


def test_completing_assignment_marks_it_completed(client, linked) -> None:
    patient, therapist = linked
    abc = create_abc(client, patient[1])
    template = _create_template(client, therapist[1])
    assignment = _assign(client, therapist[1], template["id"], patient[0]["id"], abc_schema_id=abc["id"]).get_json()

    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "assignment", "id": str(assignment["id"])},
        "mood_before": 2,
        "mood_after": 4,
    }, headers=patient[1])
    assert resp.status_code == 201
    completion = resp.get_json()
    assert completion["abc_schema_id"] == abc["id"]
    assert completion["exercise"]["title"] == TEMPLATE["title"]

    listed = client.get(f"/api/exercise-assignments?patient_id={patient[0]['id']}", headers=therapist[1]).get_json()
    assert listed[0]["status"] == "completed"
    assert listed[0]["completed_at"] is not None

    linked_completions = client.get(f"/api/abc-schemas/{abc['id']}/exercises", headers=patient[1]).get_json()
    assert [c["id"] for c in linked_completions] == [completion["id"]]


def test_patient_cannot_complete_someone_elses_assignment(client, make_user, linked) -> None:
    patient, therapist = linked
    template = _create_template(client, therapist[1])
    assignment = _assign(client, therapist[1], template["id"], patient[0]["id"]).get_json()
    _, other_headers = make_user("patient")
    resp = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "assignment", "id": str(assignment["id"])},
    }, headers=other_headers)
    assert resp.status_code == 403
    assert error_code(resp) == "ACCESS_DENIED"


def test_therapist_sees_only_shared_completions(client, linked) -> None:
    patient, therapist = linked
    abc = create_abc(client, patient[1])
    ids = []
    for exercise_id in ("balanced-thinking", "worry-time"):
        resp = client.post("/api/exercise-completions", json={
            "exercise": {"kind": "catalog", "id": exercise_id},
            "abc_schema_id": abc["id"],
        }, headers=patient[1])
        ids.append(resp.get_json()["id"])

    assert client.get(f"/api/exercise-completions/{ids[0]}", headers=therapist[1]).status_code == 403
    client.post(f"/api/exercise-completions/{ids[0]}/share", json={}, headers=patient[1])
    assert client.get(f"/api/exercise-completions/{ids[0]}", headers=therapist[1]).status_code == 200

    visible = client.get(f"/api/abc-schemas/{abc['id']}/exercises", headers=therapist[1]).get_json()
    assert [c["id"] for c in visible] == [ids[0]]

    shared = client.get(f"/api/therapist/patients/{patient[0]['id']}/shared-data", headers=therapist[1]).get_json()
    assert [c["id"] for c in shared["exercise_completions"]] == [ids[0]]


def test_deleting_abc_record_unlinks_completions(client, patient) -> None:
    abc = create_abc(client, patient[1])
    completion = client.post("/api/exercise-completions", json={
        "exercise": {"kind": "catalog", "id": "worry-time"},
        "abc_schema_id": abc["id"],
    }, headers=patient[1]).get_json()
    assert client.delete(f"/api/abc-schemas/{abc['id']}", headers=patient[1]).status_code == 204

    resp = client.get(f"/api/exercise-completions/{completion['id']}", headers=patient[1])
    assert resp.status_code == 200
    assert resp.get_json()["abc_schema_id"] is None
