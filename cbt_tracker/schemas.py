"""
Serialization schemas using Marshmallow for the CBT Mood Tracker.

Two families live here. ``SQLAlchemyAutoSchema`` subclasses turn model
instances into JSON-friendly dictionaries for responses; password
hashes are never dumped. Plain ``Schema`` subclasses validate request
bodies; their ``load`` raises ``marshmallow.ValidationError``, which the
application renders as a ``VALIDATION_ERROR`` response before anything
is written.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate, validates_schema, ValidationError, EXCLUDE
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema

from .models import (
    User,
    MoodScale,
    MoodEntry,
    AbcSchema,
    Exercise,
    ExerciseTemplate,
    ExerciseAssignment,
    ExerciseCompletion,
    SharedData,
    MOOD_MIN,
    MOOD_MAX,
    MOOD_CATEGORIES,
    DIFFICULTIES,
    ExerciseKind,
)

_mood_range = validate.Range(min=MOOD_MIN, max=MOOD_MAX)
_required_text = validate.Length(min=1)


# --- response schemas -----------------------------------------------------


class UserSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``User`` objects."""

    role = fields.Function(lambda user: user.role.value)

    class Meta:
        model = User
        exclude = ("password_hash",)


class MoodScaleSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = MoodScale
        include_fk = True


class MoodEntrySchema(SQLAlchemyAutoSchema):
    class Meta:
        model = MoodEntry
        include_fk = True


class AbcSchemaSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``AbcSchema`` objects.

    ``analysis_state`` is derived: ``analyzed`` once results exist.
    """

    analysis_state = fields.Function(
        lambda schema: "analyzed" if schema.analysis_results is not None else "unanalyzed"
    )

    class Meta:
        model = AbcSchema
        include_fk = True


class ExerciseSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Exercise


class ExerciseTemplateSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = ExerciseTemplate
        include_fk = True


class ExerciseAssignmentSchema(SQLAlchemyAutoSchema):
    """Assignment with the template's fields resolved, active or not."""

    template = fields.Nested(
        ExerciseTemplateSchema,
        only=("id", "title", "description", "instructions", "category",
              "estimated_duration", "difficulty", "is_active"),
    )

    class Meta:
        model = ExerciseAssignment
        include_fk = True


class ExerciseCompletionSchema(SQLAlchemyAutoSchema):
    """Completion with a short summary of the exercise it refers to."""

    exercise = fields.Method("get_exercise")

    class Meta:
        model = ExerciseCompletion
        include_fk = True

    def get_exercise(self, completion: ExerciseCompletion) -> dict | None:
        if completion.exercise_kind == ExerciseKind.CATALOG.value and completion.catalog_exercise:
            source = completion.catalog_exercise
        elif completion.assignment is not None:
            source = completion.assignment.template
        else:
            return None
        return {
            "kind": completion.exercise_kind,
            "id": source.id,
            "title": source.title,
            "category": source.category,
        }


class SharedDataSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = SharedData
        include_fk = True


# --- request schemas ------------------------------------------------------


class RegisterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    first_name = fields.String(required=True, validate=validate.Length(min=1, max=50))
    last_name = fields.String(required=True, validate=validate.Length(min=1, max=50))
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=8))
    role = fields.String(load_default="patient", validate=validate.OneOf(("patient", "therapist")))


class PatientLinkSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    patient_id = fields.Integer(required=True)


class TherapistLinkSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)


class MoodLevelSchema(Schema):
    level = fields.Integer(required=True, validate=validate.Range(min=1))
    title = fields.String(required=True, validate=_required_text)
    description = fields.String(load_default="")
    behavioral_indicators = fields.List(fields.String(), load_default=list)
    category = fields.String(required=True, validate=validate.OneOf(MOOD_CATEGORIES))


class MoodScaleInputSchema(Schema):
    """Levels are checked for shape and unique numbers only; any level set
    is accepted by storage."""

    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    levels = fields.List(fields.Nested(MoodLevelSchema), required=True, validate=validate.Length(min=1))
    is_default = fields.Boolean(load_default=False)

    @validates_schema
    def check_unique_levels(self, data, **kwargs):
        numbers = [item["level"] for item in data.get("levels", [])]
        if len(numbers) != len(set(numbers)):
            raise ValidationError("Level numbers must be unique.", "levels")


class MoodEntryInputSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    mood_level = fields.Integer(required=True)
    mood_scale_id = fields.Integer(load_default=None, allow_none=True)
    notes = fields.String(load_default=None, allow_none=True)


class AbcSchemaInputSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    activating_event = fields.String(required=True, validate=_required_text)
    beliefs = fields.String(required=True, validate=_required_text)
    consequences = fields.String(required=True, validate=_required_text)
    mood_before = fields.Integer(load_default=None, allow_none=True, validate=_mood_range)
    mood_after = fields.Integer(load_default=None, allow_none=True, validate=_mood_range)


class ShareInputSchema(Schema):
    """Optional therapist id; without it the record goes to every linked
    therapist."""

    class Meta:
        unknown = EXCLUDE

    therapist_id = fields.Integer(load_default=None, allow_none=True)


class ExerciseTemplateInputSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    description = fields.String(required=True, validate=_required_text)
    instructions = fields.String(required=True, validate=_required_text)
    category = fields.String(required=True, validate=validate.Length(min=1, max=100))
    estimated_duration = fields.Integer(load_default=15, validate=validate.Range(min=1, max=120))
    difficulty = fields.String(load_default="medium", validate=validate.OneOf(DIFFICULTIES))


class AssignmentInputSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    template_id = fields.Integer(required=True)
    patient_id = fields.Integer(required=True)
    abc_schema_id = fields.Integer(load_default=None, allow_none=True)
    notes = fields.String(load_default=None, allow_none=True)


class ExerciseRefSchema(Schema):
    kind = fields.String(required=True, validate=validate.OneOf([k.value for k in ExerciseKind]))
    id = fields.String(required=True, validate=_required_text)


class CompletionInputSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    exercise = fields.Nested(ExerciseRefSchema, required=True)
    abc_schema_id = fields.Integer(load_default=None, allow_none=True)
    response = fields.String(load_default=None, allow_none=True)
    mood_before = fields.Integer(load_default=None, allow_none=True, validate=_mood_range)
    mood_after = fields.Integer(load_default=None, allow_none=True, validate=_mood_range)
    notes = fields.String(load_default=None, allow_none=True)


class DistortionSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    type = fields.String(required=True, validate=_required_text)
    description = fields.String(load_default="")
    confidence = fields.Float(required=True)


class RecommendationSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    exercise_id = fields.String(required=True, data_key="exerciseId", validate=_required_text)
    reason = fields.String(load_default="")
    effectiveness = fields.Float(load_default=0.0)


