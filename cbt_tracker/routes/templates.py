"""
Routes for therapist exercise templates and their assignments.

Therapists author templates and assign them to the patients linked to
them. Deleting a template only deactivates it; assignments made from it
keep showing its fields.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_jwt_extended import jwt_required, current_user

from ..models import Role
from ..schemas import (
    ExerciseTemplateSchema,
    ExerciseTemplateInputSchema,
    ExerciseAssignmentSchema,
    AssignmentInputSchema,
)
from ..services import exercise_service
from ..services.access_service import role_required
from ..util.payload import load_json
from ..util.sanitization import clean_fields


templates_bp = Blueprint("templates", __name__)

_TEMPLATE_TEXT = ("title", "description", "instructions", "category")


@templates_bp.route("/exercise-templates", methods=["GET"])
@role_required(Role.THERAPIST)
def list_templates() -> tuple[list[dict], int]:
    """List the therapist's templates. ``include_inactive=true`` adds
    deactivated ones."""
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    templates = exercise_service.list_templates(current_user, include_inactive=include_inactive)
    return ExerciseTemplateSchema(many=True).dump(templates), 200


@templates_bp.route("/exercise-templates", methods=["POST"])
@role_required(Role.THERAPIST)
def create_template() -> tuple[dict, int]:
    data = clean_fields(load_json(ExerciseTemplateInputSchema()), _TEMPLATE_TEXT)
    template = exercise_service.create_template(current_user, data)
    return ExerciseTemplateSchema().dump(template), 201


@templates_bp.route("/exercise-templates/<int:template_id>", methods=["PUT"])
@role_required(Role.THERAPIST)
def update_template(template_id: int) -> tuple[dict, int]:
    data = clean_fields(load_json(ExerciseTemplateInputSchema(), partial=True), _TEMPLATE_TEXT)
    template = exercise_service.update_template(current_user, template_id, data)
    return ExerciseTemplateSchema().dump(template), 200


@templates_bp.route("/exercise-templates/<int:template_id>", methods=["DELETE"])
@role_required(Role.THERAPIST)
def delete_template(template_id: int) -> tuple[dict, int]:
    """Deactivate the template and return it."""
    template = exercise_service.deactivate_template(current_user, template_id)
    return ExerciseTemplateSchema().dump(template), 200


@templates_bp.route("/exercise-templates/<int:template_id>/duplicate", methods=["POST"])
@role_required(Role.THERAPIST)
def duplicate_template(template_id: int) -> tuple[dict, int]:
    template = exercise_service.duplicate_template(current_user, template_id)
    return ExerciseTemplateSchema().dump(template), 201


@templates_bp.route("/exercise-assignments", methods=["POST"])
@role_required(Role.THERAPIST)
def create_assignment() -> tuple[dict, int]:
    """Assign a template to a linked patient.

    Expects ``template_id`` and ``patient_id``; ``abc_schema_id`` ties the
    assignment to one of the patient's thought records.
    """
    data = clean_fields(load_json(AssignmentInputSchema()), ("notes",))
    assignment = exercise_service.assign_template(current_user, data)
    return ExerciseAssignmentSchema().dump(assignment), 201


@templates_bp.route("/exercise-assignments", methods=["GET"])
@jwt_required()
def list_assignments() -> tuple[list[dict], int]:
    """Therapists see the assignments they made (``patient_id`` filters);
    patients see the ones made for them."""
    if current_user.is_therapist:
        assignments = exercise_service.list_assignments_for_therapist(
            current_user, patient_id=request.args.get("patient_id", type=int)
        )
    else:
        assignments = exercise_service.list_assignments_for_patient(current_user)
    return ExerciseAssignmentSchema(many=True).dump(assignments), 200
