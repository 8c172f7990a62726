"""
Routes for the exercise catalog and exercise completions.

The catalog is public reference data. Completions belong to the patient
who logged them; a completion names its exercise as
``{"kind": "catalog" | "assignment", "id": ...}``.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_jwt_extended import jwt_required, current_user

from .. import db
from ..errors import NotFoundError
from ..models import ExerciseCompletion, Role, DataType
from ..schemas import (
    ExerciseSchema,
    ExerciseCompletionSchema,
    CompletionInputSchema,
    ShareInputSchema,
    SharedDataSchema,
)
from ..services.access_service import role_required, ensure_can_read_shared
from ..services.exercise_service import list_catalog, list_completions, record_completion
from ..services.sharing_service import share_record
from ..util.payload import load_json
from ..util.sanitization import clean_fields


exercises_bp = Blueprint("exercises", __name__)


@exercises_bp.route("/exercises", methods=["GET"])
def list_exercises() -> tuple[list[dict], int]:
    """List catalog exercises sorted by title, optionally by ``category``."""
    exercises = list_catalog(request.args.get("category"))
    return ExerciseSchema(many=True).dump(exercises), 200


@exercises_bp.route("/exercise-completions", methods=["GET"])
@role_required(Role.PATIENT)
def list_exercise_completions() -> tuple[list[dict], int]:
    """List the patient's completions newest first.

    ``abc_schema_id`` narrows the list to one thought record.
    """
    abc_schema_id = request.args.get("abc_schema_id", type=int)
    completions = list_completions(current_user.id, abc_schema_id=abc_schema_id)
    return ExerciseCompletionSchema(many=True).dump(completions), 200


@exercises_bp.route("/exercise-completions", methods=["POST"])
@role_required(Role.PATIENT)
def create_exercise_completion() -> tuple[dict, int]:
    """Log a completed exercise.

    Expects ``exercise`` (``kind`` and ``id``) and optionally
    ``abc_schema_id``, ``response``, ``mood_before``, ``mood_after`` and
    ``notes``. Completing an assignment marks it completed.
    """
    data = clean_fields(load_json(CompletionInputSchema()), ("response", "notes"))
    completion = record_completion(current_user, data)
    return ExerciseCompletionSchema().dump(completion), 201


def _get_completion(completion_id: int) -> ExerciseCompletion:
    completion = db.session.get(ExerciseCompletion, completion_id)
    if completion is None:
        raise NotFoundError("Exercise completion not found.")
    return completion


@exercises_bp.route("/exercise-completions/<int:completion_id>", methods=["GET"])
@jwt_required()
def get_exercise_completion(completion_id: int) -> tuple[dict, int]:
    completion = _get_completion(completion_id)
    ensure_can_read_shared(current_user, completion, DataType.EXERCISE_COMPLETION)
    return ExerciseCompletionSchema().dump(completion), 200


@exercises_bp.route("/exercise-completions/<int:completion_id>/share", methods=["POST"])
@role_required(Role.PATIENT)
def share_exercise_completion(completion_id: int) -> tuple[dict, int]:
    completion = _get_completion(completion_id)
    data = load_json(ShareInputSchema())
    rows = share_record(current_user, completion, DataType.EXERCISE_COMPLETION, data["therapist_id"])
    return {"shared": SharedDataSchema(many=True).dump(rows)}, 200
