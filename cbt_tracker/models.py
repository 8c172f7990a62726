"""
Database models for the CBT Mood Tracker.

Every user is either a ``patient`` or a ``therapist``. Patients own
their mood scales, mood entries, ABC thought records and exercise
completions; ownership never moves to another user. Therapists are
linked to patients through ``TherapistPatient`` rows, author reusable
``ExerciseTemplate`` definitions and assign them to linked patients.

Visibility of a patient's mood entries and exercise completions to a
therapist is recorded row by row in the ``SharedData`` ledger, which is
append-only.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional, List

from werkzeug.security import generate_password_hash, check_password_hash

from . import db

# Single declared range for every mood value recorded outside a custom scale.
MOOD_MIN = 1
MOOD_MAX = 7

MOOD_CATEGORIES = ("depression", "normal", "elevation", "mania")
DIFFICULTIES = ("easy", "medium", "hard")


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored by every ``DateTime`` column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(enum.Enum):
    """Enumeration of user roles."""
    PATIENT = "patient"
    THERAPIST = "therapist"


class DataType(str, enum.Enum):
    """Kinds of patient-owned records that can be shared with a therapist."""
    MOOD_ENTRY = "mood_entry"
    ABC_SCHEMA = "abc_schema"
    EXERCISE_COMPLETION = "exercise_completion"


class ExerciseKind(str, enum.Enum):
    """Source table an exercise completion refers to."""
    CATALOG = "catalog"
    ASSIGNMENT = "assignment"


class User(db.Model):
    __allow_unmapped__ = True  # allow unmapped type annotations for SQLAlchemy 2.0
    """A user of the system.

    The role is fixed at registration; there is no operation that changes
    it afterwards. Passwords are stored as salted hashes.
    """
    __tablename__ = "users"

    id: int = db.Column(db.Integer, primary_key=True)
    first_name: str = db.Column(db.String(50), nullable=False)
    last_name: str = db.Column(db.String(50), nullable=False)
    email: str = db.Column(db.String(120), unique=True, nullable=False)
    password_hash: str = db.Column(db.String(256), nullable=False)
    role: Role = db.Column(db.Enum(Role), default=Role.PATIENT, nullable=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    mood_scales: List[MoodScale] = db.relationship("MoodScale", back_populates="user")
    abc_schemas: List[AbcSchema] = db.relationship("AbcSchema", back_populates="user")

    @property
    def is_therapist(self) -> bool:
        return self.role == Role.THERAPIST

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"


class TherapistPatient(db.Model):
    __allow_unmapped__ = True
    """Directed link granting a therapist assignment-level access to a patient.

    Rows are never updated. Deleting the row revokes access immediately.
    """
    __tablename__ = "therapist_patients"

    id: int = db.Column(db.Integer, primary_key=True)
    therapist_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    patient_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    therapist: User = db.relationship("User", foreign_keys=[therapist_id])
    patient: User = db.relationship("User", foreign_keys=[patient_id])

    __table_args__ = (
        db.UniqueConstraint("therapist_id", "patient_id", name="uix_therapist_patient"),
    )

    def __repr__(self) -> str:
        return f"<TherapistPatient therapist={self.therapist_id} patient={self.patient_id}>"


class MoodScale(db.Model):
    __allow_unmapped__ = True
    """A user-defined ordered list of mood levels.

    ``levels`` is a JSON list of ``{level, title, description,
    behavioral_indicators, category}`` objects. At most one scale per user
    carries ``is_default``.
    """
    __tablename__ = "mood_scales"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name: str = db.Column(db.String(100), nullable=False)
    levels: list = db.Column(db.JSON, nullable=False)
    is_default: bool = db.Column(db.Boolean, nullable=False, default=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    user: User = db.relationship("User", back_populates="mood_scales")

    def level_numbers(self) -> set[int]:
        return {item["level"] for item in self.levels or []}

    def __repr__(self) -> str:
        return f"<MoodScale {self.name} user={self.user_id}>"


class MoodEntry(db.Model):
    __allow_unmapped__ = True
    """A timestamped mood observation. Entries can be edited but not deleted."""
    __tablename__ = "mood_entries"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    mood_level: int = db.Column(db.Integer, nullable=False)
    mood_scale_id: Optional[int] = db.Column(
        db.Integer, db.ForeignKey("mood_scales.id", ondelete="SET NULL"), nullable=True
    )
    notes: Optional[str] = db.Column(db.Text)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    mood_scale: Optional[MoodScale] = db.relationship("MoodScale")

    def __repr__(self) -> str:
        return f"<MoodEntry user={self.user_id} level={self.mood_level}>"


class AbcSchema(db.Model):
    __allow_unmapped__ = True
    """An ABC thought record: activating event, beliefs and consequences.

    ``analysis_results`` stays ``None`` until an analysis succeeds and is
    replaced wholesale by every later successful analysis.
    """
    __tablename__ = "abc_schemas"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    activating_event: str = db.Column(db.Text, nullable=False)
    beliefs: str = db.Column(db.Text, nullable=False)
    consequences: str = db.Column(db.Text, nullable=False)
    mood_before: Optional[int] = db.Column(db.Integer)
    mood_after: Optional[int] = db.Column(db.Integer)
    analysis_results: Optional[dict] = db.Column(db.JSON, nullable=True)
    shared_with_therapist: bool = db.Column(db.Boolean, nullable=False, default=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user: User = db.relationship("User", back_populates="abc_schemas")

    # Ledger rows outlive deleted records, so ids must never be reused.
    __table_args__ = {"sqlite_autoincrement": True}

    def __repr__(self) -> str:
        return f"<AbcSchema {self.id} user={self.user_id}>"


class Exercise(db.Model):
    __allow_unmapped__ = True
    """Read-only catalog exercise, identified by a slug."""
    __tablename__ = "exercises"

    id: str = db.Column(db.String(64), primary_key=True)
    title: str = db.Column(db.String(120), nullable=False)
    description: str = db.Column(db.Text, nullable=False)
    instructions: str = db.Column(db.Text, nullable=False)
    category: str = db.Column(db.String(64), nullable=False, index=True)
    target_distortions: list = db.Column(db.JSON, nullable=False, default=list)
    estimated_duration: Optional[int] = db.Column(db.Integer)
    difficulty: str = db.Column(db.String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<Exercise {self.id}>"


class ExerciseTemplate(db.Model):
    __allow_unmapped__ = True
    """A therapist-authored reusable exercise.

    Templates are deactivated (``is_active = False``) instead of deleted so
    that existing assignments keep resolving their fields.
    """
    __tablename__ = "exercise_templates"

    id: int = db.Column(db.Integer, primary_key=True)
    therapist_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title: str = db.Column(db.String(200), nullable=False)
    description: str = db.Column(db.Text, nullable=False)
    instructions: str = db.Column(db.Text, nullable=False)
    category: str = db.Column(db.String(100), nullable=False)
    estimated_duration: int = db.Column(db.Integer, nullable=False, default=15)
    difficulty: str = db.Column(db.String(16), nullable=False, default="medium")
    is_active: bool = db.Column(db.Boolean, nullable=False, default=True)
    original_template_id: Optional[int] = db.Column(
        db.Integer, db.ForeignKey("exercise_templates.id"), nullable=True
    )
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assignments: List[ExerciseAssignment] = db.relationship("ExerciseAssignment", back_populates="template")

    def __repr__(self) -> str:
        return f"<ExerciseTemplate {self.title} therapist={self.therapist_id}>"


class ExerciseAssignment(db.Model):
    __allow_unmapped__ = True
    """Binds one template to one patient, optionally in the context of an
    ABC record."""
    __tablename__ = "exercise_assignments"

    id: int = db.Column(db.Integer, primary_key=True)
    template_id: int = db.Column(db.Integer, db.ForeignKey("exercise_templates.id"), nullable=False)
    therapist_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    patient_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    abc_schema_id: Optional[int] = db.Column(
        db.Integer, db.ForeignKey("abc_schemas.id", ondelete="SET NULL"), nullable=True
    )
    notes: Optional[str] = db.Column(db.Text)
    status: str = db.Column(db.String(16), nullable=False, default="assigned")
    assigned_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at: Optional[datetime] = db.Column(db.DateTime, nullable=True)

    template: ExerciseTemplate = db.relationship("ExerciseTemplate", back_populates="assignments")

    __table_args__ = (
        db.CheckConstraint("status in ('assigned', 'completed')", name="ck_assignment_status"),
    )

    def __repr__(self) -> str:
        return f"<ExerciseAssignment template={self.template_id} patient={self.patient_id}>"


class ExerciseCompletion(db.Model):
    __allow_unmapped__ = True
    """A patient's submission against a catalog exercise or an assignment.

    ``exercise_kind`` says which of ``catalog_exercise_id`` and
    ``assignment_id`` is set.
    """
    __tablename__ = "exercise_completions"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    exercise_kind: str = db.Column(db.String(16), nullable=False)
    catalog_exercise_id: Optional[str] = db.Column(db.String(64), db.ForeignKey("exercises.id"), nullable=True)
    assignment_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("exercise_assignments.id"), nullable=True)
    abc_schema_id: Optional[int] = db.Column(
        db.Integer, db.ForeignKey("abc_schemas.id", ondelete="SET NULL"), nullable=True
    )
    response: Optional[str] = db.Column(db.Text)
    mood_before: Optional[int] = db.Column(db.Integer)
    mood_after: Optional[int] = db.Column(db.Integer)
    effectiveness: Optional[float] = db.Column(db.Float)
    notes: Optional[str] = db.Column(db.Text)
    completed_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    catalog_exercise: Optional[Exercise] = db.relationship("Exercise")
    assignment: Optional[ExerciseAssignment] = db.relationship("ExerciseAssignment")

    __table_args__ = (
        db.CheckConstraint(
            "(exercise_kind = 'catalog' AND catalog_exercise_id IS NOT NULL AND assignment_id IS NULL)"
            " OR (exercise_kind = 'assignment' AND assignment_id IS NOT NULL AND catalog_exercise_id IS NULL)",
            name="ck_completion_exercise_ref",
        ),
    )

    def __repr__(self) -> str:
        return f"<ExerciseCompletion {self.exercise_kind} user={self.user_id}>"


class SharedData(db.Model):
    __allow_unmapped__ = True
    """Ledger row: one record of one type made visible to one therapist.

    Rows are never updated or removed. ``data_id`` is not a foreign key
    because it points into one of several tables depending on
    ``data_type``.
    """
    __tablename__ = "shared_data"

    id: int = db.Column(db.Integer, primary_key=True)
    patient_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    therapist_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    data_type: str = db.Column(db.String(32), nullable=False)
    data_id: int = db.Column(db.Integer, nullable=False)
    shared_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index("idx_shared_data_lookup", "therapist_id", "patient_id", "data_type"),
    )

    def __repr__(self) -> str:
        return f"<SharedData {self.data_type}:{self.data_id} -> therapist={self.therapist_id}>"
