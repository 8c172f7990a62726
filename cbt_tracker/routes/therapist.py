"""
Routes for therapists: their patient list and the patient data they may
read.

Every endpoint here requires the therapist role. Data endpoints also
require an active link to the patient, so removing a patient hides
their data from the therapist immediately.
"""

from __future__ import annotations

from flask import Blueprint
from flask_jwt_extended import current_user

from .. import db
from ..errors import NotFoundError
from ..models import User, AbcSchema, Role
from ..schemas import (
    UserSchema,
    AbcSchemaSchema,
    MoodEntrySchema,
    ExerciseCompletionSchema,
    PatientLinkSchema,
)
from ..services import care_team_service
from ..services.access_service import role_required, ensure_therapist_of
from ..services.sharing_service import query as query_shared
from ..util.payload import load_json


therapist_bp = Blueprint("therapist", __name__)


@therapist_bp.route("/therapist/patients", methods=["GET"])
@role_required(Role.THERAPIST)
def list_patients() -> tuple[list[dict], int]:
    patients = care_team_service.patients_of(current_user.id)
    return UserSchema(many=True).dump(patients), 200


@therapist_bp.route("/therapist/patients", methods=["POST"])
@role_required(Role.THERAPIST)
def add_patient() -> tuple[dict, int]:
    """Link a patient to the current therapist. Expects ``patient_id``."""
    data = load_json(PatientLinkSchema())
    patient = db.session.get(User, data["patient_id"])
    if patient is None:
        raise NotFoundError("Patient not found.")
    care_team_service.assign(current_user, patient)
    return UserSchema().dump(patient), 201


@therapist_bp.route("/therapist/patients/<int:patient_id>", methods=["DELETE"])
@role_required(Role.THERAPIST)
def remove_patient(patient_id: int) -> tuple[str, int]:
    care_team_service.remove(current_user.id, patient_id)
    return "", 204


@therapist_bp.route("/therapist/patients/<int:patient_id>/abc-schemas", methods=["GET"])
@role_required(Role.THERAPIST)
def patient_abc_schemas(patient_id: int) -> tuple[list[dict], int]:
    """All of a linked patient's thought records, newest first, whether
    or not they were shared."""
    patient = ensure_therapist_of(current_user, patient_id)
    schemas = (
        AbcSchema.query.filter_by(user_id=patient.id)
        .order_by(AbcSchema.created_at.desc(), AbcSchema.id.desc())
        .all()
    )
    return AbcSchemaSchema(many=True).dump(schemas), 200


@therapist_bp.route("/therapist/patients/<int:patient_id>/shared-data", methods=["GET"])
@role_required(Role.THERAPIST)
def patient_shared_data(patient_id: int) -> tuple[dict, int]:
    """Everything the patient explicitly shared with this therapist."""
    patient = ensure_therapist_of(current_user, patient_id)
    shared = query_shared(current_user.id, patient.id)
    return {
        "patient": UserSchema().dump(patient),
        "mood_entries": MoodEntrySchema(many=True).dump(shared["mood_entries"]),
        "abc_schemas": AbcSchemaSchema(many=True).dump(shared["abc_schemas"]),
        "exercise_completions": ExerciseCompletionSchema(many=True).dump(shared["exercise_completions"]),
    }, 200
