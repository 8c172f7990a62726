"""Therapist/patient links and revocation."""
from conftest import create_abc, create_mood_entry, error_code


def test_therapist_adds_patient(client, patient, therapist) -> None:
    resp = client.post("/api/therapist/patients", json={"patient_id": patient[0]["id"]}, headers=therapist[1])
    assert resp.status_code == 201

    resp = client.get("/api/therapist/patients", headers=therapist[1])
    assert [p["id"] for p in resp.get_json()] == [patient[0]["id"]]

    resp = client.get("/api/patient/therapists", headers=patient[1])
    assert [t["id"] for t in resp.get_json()] == [therapist[0]["id"]]


def test_duplicate_link_conflicts(client, linked) -> None:
    patient, therapist = linked
    resp = client.post("/api/therapist/patients", json={"patient_id": patient[0]["id"]}, headers=therapist[1])
    assert resp.status_code == 409
    assert error_code(resp) == "CONFLICT"


def test_therapist_cannot_add_another_therapist(client, make_user, therapist) -> None:
    other, _ = make_user("therapist")
    resp = client.post("/api/therapist/patients", json={"patient_id": other["id"]}, headers=therapist[1])
    assert resp.status_code == 400
    assert error_code(resp) == "VALIDATION_ERROR"


def test_unknown_patient_is_not_found(client, therapist) -> None:
    resp = client.post("/api/therapist/patients", json={"patient_id": 9999}, headers=therapist[1])
    assert resp.status_code == 404


def test_patient_assigns_therapist_by_email(client, patient, therapist) -> None:
    resp = client.post(
        "/api/patient/assign-therapist",
        json={"email": therapist[0]["email"].upper()},
        headers=patient[1],
    )
    assert resp.status_code == 201
    assert resp.get_json()["id"] == therapist[0]["id"]

    resp = client.post("/api/patient/assign-therapist", json={"email": "nobody@example.com"}, headers=patient[1])
    assert resp.status_code == 404


def test_patient_cannot_assign_a_patient(client, make_user, patient) -> None:
    other, _ = make_user("patient")
    resp = client.post("/api/patient/assign-therapist", json={"email": other["email"]}, headers=patient[1])
    assert resp.status_code == 400


def test_unlinked_therapist_is_denied(client, patient, therapist) -> None:
    abc = create_abc(client, patient[1])
    resp = client.get(f"/api/abc-schemas/{abc['id']}", headers=therapist[1])
    assert resp.status_code == 403
    assert error_code(resp) == "ACCESS_DENIED"

    resp = client.get(f"/api/therapist/patients/{patient[0]['id']}/abc-schemas", headers=therapist[1])
    assert resp.status_code == 403
    assert error_code(resp) == "ACCESS_DENIED"


def test_removing_link_revokes_access(client, linked) -> None:
    patient, therapist = linked
    abc = create_abc(client, patient[1])
    entry = create_mood_entry(client, patient[1])
    client.post(f"/api/mood-entries/{entry['id']}/share", json={}, headers=patient[1])

    assert client.get(f"/api/abc-schemas/{abc['id']}", headers=therapist[1]).status_code == 200
    assert client.get(f"/api/mood-entries/{entry['id']}", headers=therapist[1]).status_code == 200

    resp = client.delete(f"/api/therapist/patients/{patient[0]['id']}", headers=therapist[1])
    assert resp.status_code == 204

    assert client.get(f"/api/abc-schemas/{abc['id']}", headers=therapist[1]).status_code == 403
    assert client.get(f"/api/mood-entries/{entry['id']}", headers=therapist[1]).status_code == 403
    resp = client.get(f"/api/therapist/patients/{patient[0]['id']}/shared-data", headers=therapist[1])
    assert resp.status_code == 403


def test_patient_removes_therapist(client, linked) -> None:
    patient, therapist = linked
    resp = client.delete(f"/api/patient/therapists/{therapist[0]['id']}", headers=patient[1])
    assert resp.status_code == 204
    assert client.get("/api/patient/therapists", headers=patient[1]).get_json() == []

    resp = client.delete(f"/api/patient/therapists/{therapist[0]['id']}", headers=patient[1])
    assert resp.status_code == 404
