"""
Routes for patients managing their care team.
"""

from __future__ import annotations

from flask import Blueprint
from flask_jwt_extended import current_user

from ..errors import NotFoundError
from ..models import User, Role
from ..schemas import UserSchema, TherapistLinkSchema
from ..services import care_team_service
from ..services.access_service import role_required
from ..util.payload import load_json


patient_bp = Blueprint("patient", __name__)


@patient_bp.route("/patient/therapists", methods=["GET"])
@role_required(Role.PATIENT)
def list_therapists() -> tuple[list[dict], int]:
    therapists = care_team_service.therapists_of(current_user.id)
    return UserSchema(many=True).dump(therapists), 200


@patient_bp.route("/patient/assign-therapist", methods=["POST"])
@role_required(Role.PATIENT)
def assign_therapist() -> tuple[dict, int]:
    """Add a therapist to the patient's care team by ``email``."""
    data = load_json(TherapistLinkSchema())
    therapist = User.query.filter_by(email=data["email"].strip().lower()).first()
    if therapist is None:
        raise NotFoundError("No therapist with that email.")
    care_team_service.assign(therapist, current_user)
    return UserSchema().dump(therapist), 201


@patient_bp.route("/patient/therapists/<int:therapist_id>", methods=["DELETE"])
@role_required(Role.PATIENT)
def remove_therapist(therapist_id: int) -> tuple[str, int]:
    care_team_service.remove(therapist_id, current_user.id)
    return "", 204
