"""
Routes for ABC thought records.

Patients write records describing an activating event (A), the beliefs
it triggered (B) and the consequences (C). Creating a record stores it
unanalysed; analysis is requested separately through ``/analyze`` and
may be retried if the text analysis service is unavailable.
"""

from __future__ import annotations

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, current_user

from .. import db
from ..errors import NotFoundError, ValidationError
from ..models import AbcSchema, ExerciseAssignment, ExerciseCompletion, Role, DataType
from ..schemas import (
    AbcSchemaSchema,
    AbcSchemaInputSchema,
    ExerciseCompletionSchema,
    ShareInputSchema,
    SharedDataSchema,
)
from ..services.access_service import role_required, ensure_owner, ensure_can_read_abc_schema, is_shared
from ..services.analysis_service import analyze_abc_schema, TEXT_FIELDS
from ..services.exercise_service import list_completions
from ..services.sharing_service import share_record
from ..util.payload import load_json
from ..util.sanitization import clean_fields


abc_schemas_bp = Blueprint("abc_schemas", __name__)


def _get_schema(schema_id: int) -> AbcSchema:
    schema = db.session.get(AbcSchema, schema_id)
    if schema is None:
        raise NotFoundError("ABC record not found.")
    return schema


@abc_schemas_bp.route("/abc-schemas", methods=["GET"])
@role_required(Role.PATIENT)
def list_abc_schemas() -> tuple[dict, int]:
    """List the patient's records newest first, one page at a time.

    ``page`` is 1-indexed; pages hold ``ABC_PAGE_SIZE`` records.
    """
    page = request.args.get("page", 1, type=int)
    if page < 1:
        raise ValidationError("Invalid page.", {"page": ["Must be 1 or greater."]})
    result = (
        AbcSchema.query.filter_by(user_id=current_user.id)
        .order_by(AbcSchema.created_at.desc(), AbcSchema.id.desc())
        .paginate(page=page, per_page=current_app.config["ABC_PAGE_SIZE"], error_out=False)
    )
    return {
        "items": AbcSchemaSchema(many=True).dump(result.items),
        "page": result.page,
        "pages": result.pages,
        "total": result.total,
    }, 200


@abc_schemas_bp.route("/abc-schemas", methods=["POST"])
@role_required(Role.PATIENT)
def create_abc_schema() -> tuple[dict, int]:
    """Create a record from ``activating_event``, ``beliefs`` and
    ``consequences`` plus optional ``mood_before``/``mood_after``.

    The record is returned unanalysed.
    """
    data = clean_fields(load_json(AbcSchemaInputSchema()), TEXT_FIELDS)
    empty = {name: ["Must not be empty."] for name in TEXT_FIELDS if not data[name]}
    if empty:
        raise ValidationError("Invalid input.", empty)
    schema = AbcSchema(user_id=current_user.id, **data)
    db.session.add(schema)
    db.session.commit()
    return AbcSchemaSchema().dump(schema), 201


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>", methods=["GET"])
@jwt_required()
def get_abc_schema(schema_id: int) -> tuple[dict, int]:
    """Owner, or a therapist linked to the owner."""
    schema = _get_schema(schema_id)
    ensure_can_read_abc_schema(current_user, schema)
    return AbcSchemaSchema().dump(schema), 200


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>", methods=["PUT"])
@role_required(Role.PATIENT)
def update_abc_schema(schema_id: int) -> tuple[dict, int]:
    """Edit any of the record's fields. Existing analysis results are kept."""
    schema = _get_schema(schema_id)
    ensure_owner(schema, current_user)
    data = clean_fields(load_json(AbcSchemaInputSchema(), partial=True), TEXT_FIELDS)
    empty = {name: ["Must not be empty."] for name in TEXT_FIELDS if name in data and not data[name]}
    if empty:
        raise ValidationError("Invalid input.", empty)
    for field, value in data.items():
        setattr(schema, field, value)
    db.session.commit()
    return AbcSchemaSchema().dump(schema), 200


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>", methods=["DELETE"])
@role_required(Role.PATIENT)
def delete_abc_schema(schema_id: int) -> tuple[str, int]:
    """Delete a record. Assignments and completions linked to it are kept
    and lose the link."""
    schema = _get_schema(schema_id)
    ensure_owner(schema, current_user)
    ExerciseAssignment.query.filter_by(abc_schema_id=schema.id).update(
        {ExerciseAssignment.abc_schema_id: None}, synchronize_session="fetch"
    )
    ExerciseCompletion.query.filter_by(abc_schema_id=schema.id).update(
        {ExerciseCompletion.abc_schema_id: None}, synchronize_session="fetch"
    )
    db.session.delete(schema)
    db.session.commit()
    return "", 204


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>/analyze", methods=["POST"])
@role_required(Role.PATIENT)
def analyze(schema_id: int) -> tuple[dict, int]:
    """Run text analysis and replace the record's ``analysis_results``.

    Responds 502 ``ANALYSIS_FAILED`` when the service cannot be reached
    or answers nonsense; the record is unchanged in that case.
    """
    schema = _get_schema(schema_id)
    ensure_owner(schema, current_user)
    return AbcSchemaSchema().dump(analyze_abc_schema(schema)), 200


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>/share", methods=["POST"])
@role_required(Role.PATIENT)
def share_abc_schema(schema_id: int) -> tuple[dict, int]:
    schema = _get_schema(schema_id)
    data = load_json(ShareInputSchema())
    rows = share_record(current_user, schema, DataType.ABC_SCHEMA, data["therapist_id"])
    return {
        "abc_schema": AbcSchemaSchema().dump(schema),
        "shared": SharedDataSchema(many=True).dump(rows),
    }, 200


@abc_schemas_bp.route("/abc-schemas/<int:schema_id>/exercises", methods=["GET"])
@jwt_required()
def list_abc_schema_exercises(schema_id: int) -> tuple[list[dict], int]:
    """Exercise completions linked to the record, newest first.

    A therapist sees only the completions the patient shared with them.
    """
    schema = _get_schema(schema_id)
    ensure_can_read_abc_schema(current_user, schema)
    completions = list_completions(schema.user_id, abc_schema_id=schema.id)
    if schema.user_id != current_user.id:
        completions = [
            c for c in completions
            if is_shared(current_user.id, schema.user_id, DataType.EXERCISE_COMPLETION, c.id)
        ]
    return ExerciseCompletionSchema(many=True).dump(completions), 200
