"""Exercises: the reference catalog, therapist templates, assignments and
patient completions.

The catalog is fixed reference data inserted by :func:`seed_catalog`,
which runs as an explicit setup step (``flask seed-catalog``,
``run.py`` and the seed script) before the service takes traffic. Read
paths never insert anything.

A therapist authors ``ExerciseTemplate`` rows and assigns them to
linked patients through ``ExerciseAssignment`` rows. Templates are
deactivated rather than deleted, so assignments keep resolving the
template's fields.

A completion names its exercise with an explicit ``ExerciseRef``
(``kind`` plus ``id``) that is resolved against exactly one table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .. import db
from ..errors import AccessDenied, NotFoundError, ValidationError
from ..models import (
    User,
    Role,
    Exercise,
    ExerciseKind,
    ExerciseTemplate,
    ExerciseAssignment,
    ExerciseCompletion,
    AbcSchema,
    MOOD_MAX,
    utcnow,
)
from .access_service import ensure_owner, ensure_therapist_of, require_role

logger = logging.getLogger(__name__)

CATALOG = [
    {
        "id": "evidence-examination",
        "title": "Evidence Examination",
        "description": "Examine the evidence for and against your negative thoughts.",
        "instructions": "List all evidence supporting your thought, then list evidence against it. "
                        "Compare both lists objectively.",
        "category": "Thought Challenging",
        "target_distortions": ["catastrophizing", "all-or-nothing-thinking"],
        "estimated_duration": 15,
        "difficulty": "medium",
    },
    {
        "id": "balanced-thinking",
        "title": "Balanced Thinking",
        "description": "Reframe negative thoughts into more balanced, realistic perspectives.",
        "instructions": "Rewrite the negative thought in a fairer way that considers more than one perspective.",
        "category": "Cognitive Restructuring",
        "target_distortions": ["all-or-nothing-thinking", "mental-filter"],
        "estimated_duration": 10,
        "difficulty": "easy",
    },
    {
        "id": "thought-challenging",
        "title": "Thought Challenging",
        "description": "Question the validity and helpfulness of negative thoughts.",
        "instructions": "Ask yourself: is this thought helpful? Is it realistic? "
                        "What would I tell a friend having this thought?",
        "category": "Thought Challenging",
        "target_distortions": ["overgeneralization", "jumping-to-conclusions"],
        "estimated_duration": 12,
        "difficulty": "medium",
    },
    {
        "id": "perspective-taking",
        "title": "Perspective Taking",
        "description": "Look at the situation through the eyes of someone else.",
        "instructions": "Describe how a trusted friend, a neutral observer and your future self "
                        "would see the same event.",
        "category": "Cognitive Restructuring",
        "target_distortions": ["personalization", "labeling"],
        "estimated_duration": 10,
        "difficulty": "easy",
    },
    {
        "id": "behavioral-activation",
        "title": "Behavioral Activation",
        "description": "Schedule small, rewarding activities to lift low mood.",
        "instructions": "Pick one pleasant and one useful activity for tomorrow, plan when you will do them "
                        "and rate your mood before and after.",
        "category": "Behavioral Activation",
        "target_distortions": ["emotional-reasoning", "disqualifying-the-positive"],
        "estimated_duration": 20,
        "difficulty": "medium",
    },
    {
        "id": "mindfulness-exercise",
        "title": "Mindfulness Breathing",
        "description": "Practice present-moment awareness through focused breathing.",
        "instructions": "Focus on your breath for 5-10 minutes. When your mind wanders, "
                        "gently return attention to breathing.",
        "category": "Mindfulness",
        "target_distortions": ["emotional-reasoning", "catastrophizing"],
        "estimated_duration": 10,
        "difficulty": "easy",
    },
    {
        "id": "worry-time",
        "title": "Worry Time",
        "description": "Contain worrying to a short scheduled window.",
        "instructions": "Note worries as they come up and postpone them to a fixed 15-minute slot. "
                        "During the slot, review the list and decide which items need action.",
        "category": "Mindfulness",
        "target_distortions": ["catastrophizing", "jumping-to-conclusions"],
        "estimated_duration": 15,
        "difficulty": "medium",
    },
    {
        "id": "pros-cons-analysis",
        "title": "Pros and Cons Analysis",
        "description": "Weigh the costs and benefits of holding on to a belief.",
        "instructions": "Write the belief at the top of a page, list its advantages and disadvantages "
                        "and decide whether it is worth keeping.",
        "category": "Thought Challenging",
        "target_distortions": ["should-statements", "all-or-nothing-thinking"],
        "estimated_duration": 15,
        "difficulty": "hard",
    },
]


@dataclass(frozen=True)
class ExerciseRef:
    """Discriminated reference to the exercise a completion is for."""
    kind: ExerciseKind
    id: str


# --- catalog --------------------------------------------------------------


def seed_catalog() -> int:
    """Insert missing catalog exercises and commit. Returns the number added."""
    existing = {row.id for row in Exercise.query.all()}
    added = [Exercise(**item) for item in CATALOG if item["id"] not in existing]
    db.session.add_all(added)
    db.session.commit()
    if added:
        logger.info("Seeded %d catalog exercises", len(added))
    return len(added)


def list_catalog(category: Optional[str] = None) -> List[Exercise]:
    query = Exercise.query
    if category:
        query = query.filter_by(category=category)
    return query.order_by(Exercise.title.asc()).all()


# --- templates ------------------------------------------------------------


def get_own_template(therapist: User, template_id: int) -> ExerciseTemplate:
    require_role(therapist, Role.THERAPIST)
    template = db.session.get(ExerciseTemplate, template_id)
    if template is None:
        raise NotFoundError("Exercise template not found.")
    if template.therapist_id != therapist.id:
        raise AccessDenied("This template belongs to another therapist.")
    return template


def list_templates(therapist: User, include_inactive: bool = False) -> List[ExerciseTemplate]:
    query = ExerciseTemplate.query.filter_by(therapist_id=therapist.id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(ExerciseTemplate.created_at.desc(), ExerciseTemplate.id.desc()).all()


def create_template(therapist: User, data: dict) -> ExerciseTemplate:
    require_role(therapist, Role.THERAPIST)
    template = ExerciseTemplate(therapist_id=therapist.id, **data)
    db.session.add(template)
    db.session.commit()
    return template


def update_template(therapist: User, template_id: int, data: dict) -> ExerciseTemplate:
    template = get_own_template(therapist, template_id)
    if not template.is_active:
        raise ValidationError("Inactive templates cannot be edited.")
    for field, value in data.items():
        setattr(template, field, value)
    db.session.commit()
    return template


def deactivate_template(therapist: User, template_id: int) -> ExerciseTemplate:
    """Logically delete a template. Its assignments are left untouched."""
    template = get_own_template(therapist, template_id)
    template.is_active = False
    db.session.commit()
    logger.info("Deactivated exercise template %s", template.id)
    return template


def duplicate_template(therapist: User, template_id: int) -> ExerciseTemplate:
    """Clone a template, keeping a back-reference to the original."""
    source = get_own_template(therapist, template_id)
    copy = ExerciseTemplate(
        therapist_id=therapist.id,
        title=f"{source.title} (copy)",
        description=source.description,
        instructions=source.instructions,
        category=source.category,
        estimated_duration=source.estimated_duration,
        difficulty=source.difficulty,
        original_template_id=source.id,
    )
    db.session.add(copy)
    db.session.commit()
    return copy


# --- assignments ----------------------------------------------------------


def assign_template(therapist: User, data: dict) -> ExerciseAssignment:
    """Assign one of the therapist's active templates to a linked patient."""
    template = get_own_template(therapist, data["template_id"])
    if not template.is_active:
        raise ValidationError("Inactive templates cannot be assigned.", {"template_id": ["Template is inactive."]})
    patient = ensure_therapist_of(therapist, data["patient_id"])
    abc_schema_id = data.get("abc_schema_id")
    if abc_schema_id is not None:
        schema = db.session.get(AbcSchema, abc_schema_id)
        if schema is None or schema.user_id != patient.id:
            raise ValidationError(
                "The thought record does not belong to this patient.",
                {"abc_schema_id": ["Unknown thought record for this patient."]},
            )
    assignment = ExerciseAssignment(
        template_id=template.id,
        therapist_id=therapist.id,
        patient_id=patient.id,
        abc_schema_id=abc_schema_id,
        notes=data.get("notes"),
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment


def list_assignments_for_therapist(therapist: User, patient_id: Optional[int] = None) -> List[ExerciseAssignment]:
    query = ExerciseAssignment.query.filter_by(therapist_id=therapist.id)
    if patient_id is not None:
        query = query.filter_by(patient_id=patient_id)
    return query.order_by(ExerciseAssignment.assigned_at.desc(), ExerciseAssignment.id.desc()).all()


def list_assignments_for_patient(patient: User) -> List[ExerciseAssignment]:
    return (
        ExerciseAssignment.query.filter_by(patient_id=patient.id)
        .order_by(ExerciseAssignment.assigned_at.desc(), ExerciseAssignment.id.desc())
        .all()
    )


# --- completions ----------------------------------------------------------


def compute_effectiveness(mood_before: Optional[int], mood_after: Optional[int]) -> Optional[float]:
    """Mood improvement normalised to the 1..7 range; declines count as 0.

    Returns ``None`` unless both moods are given.
    """
    if mood_before is None or mood_after is None:
        return None
    return max(0.0, (mood_after - mood_before) / MOOD_MAX)


def resolve_exercise(patient: User, ref: ExerciseRef):
    """Return the catalog exercise or assignment ``ref`` points at."""
    if ref.kind == ExerciseKind.CATALOG:
        exercise = db.session.get(Exercise, ref.id)
        if exercise is None:
            raise NotFoundError("Exercise not found.")
        return exercise
    try:
        assignment_id = int(ref.id)
    except ValueError:
        raise ValidationError("Assignment ids are numeric.", {"exercise": {"id": ["Not a number."]}})
    assignment = db.session.get(ExerciseAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Exercise assignment not found.")
    if assignment.patient_id != patient.id:
        raise AccessDenied("This exercise was assigned to another patient.")
    return assignment


def record_completion(patient: User, data: dict) -> ExerciseCompletion:
    """Store a completion and, for an assignment, mark it completed."""
    require_role(patient, Role.PATIENT)
    ref = ExerciseRef(kind=ExerciseKind(data["exercise"]["kind"]), id=data["exercise"]["id"])
    target = resolve_exercise(patient, ref)

    abc_schema_id = data.get("abc_schema_id")
    if abc_schema_id is not None:
        schema = db.session.get(AbcSchema, abc_schema_id)
        if schema is None:
            raise NotFoundError("ABC record not found.")
        ensure_owner(schema, patient)

    completion = ExerciseCompletion(
        user_id=patient.id,
        exercise_kind=ref.kind.value,
        abc_schema_id=abc_schema_id,
        response=data.get("response"),
        mood_before=data.get("mood_before"),
        mood_after=data.get("mood_after"),
        effectiveness=compute_effectiveness(data.get("mood_before"), data.get("mood_after")),
        notes=data.get("notes"),
    )
    if ref.kind == ExerciseKind.CATALOG:
        completion.catalog_exercise_id = target.id
    else:
        completion.assignment_id = target.id
        if target.abc_schema_id is not None and abc_schema_id is None:
            completion.abc_schema_id = target.abc_schema_id
        target.status = "completed"
        target.completed_at = utcnow()
    db.session.add(completion)
    db.session.commit()
    return completion


def list_completions(user_id: int, abc_schema_id: Optional[int] = None) -> List[ExerciseCompletion]:
    query = ExerciseCompletion.query.filter_by(user_id=user_id)
    if abc_schema_id is not None:
        query = query.filter_by(abc_schema_id=abc_schema_id)
    return query.order_by(ExerciseCompletion.completed_at.desc(), ExerciseCompletion.id.desc()).all()
