"""Sharing ledger.

Sharing is patient-initiated and selective: a patient can expose one
thought record, one mood entry or one exercise completion to a therapist
without exposing the rest of their history. Each such decision is an
append-only ``SharedData`` row keyed by (patient, therapist, data type,
record id).

Writes are idempotent: sharing the same record with the same therapist
twice returns the existing row. Reads treat the ledger as a set of
existence checks, so a row whose record has since been deleted simply
drops out of the results.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select

from .. import db
from ..errors import AccessDenied, NoTherapistAssigned
from ..models import (
    User,
    Role,
    DataType,
    SharedData,
    MoodEntry,
    AbcSchema,
    ExerciseCompletion,
)
from .access_service import ensure_owner, require_role
from .care_team_service import therapists_of

logger = logging.getLogger(__name__)

_MODELS = {
    DataType.MOOD_ENTRY: MoodEntry,
    DataType.ABC_SCHEMA: AbcSchema,
    DataType.EXERCISE_COMPLETION: ExerciseCompletion,
}

_RESULT_KEYS = {
    DataType.MOOD_ENTRY: "mood_entries",
    DataType.ABC_SCHEMA: "abc_schemas",
    DataType.EXERCISE_COMPLETION: "exercise_completions",
}


def share(patient_id: int, therapist_id: int, data_type: DataType, data_id: int) -> SharedData:
    """Record that ``data_id`` of ``data_type`` is visible to the therapist.

    Returns the existing row when the record was already shared. The
    row is added to the session but not committed.
    """
    data_type = DataType(data_type)
    existing = SharedData.query.filter_by(
        patient_id=patient_id,
        therapist_id=therapist_id,
        data_type=data_type.value,
        data_id=data_id,
    ).first()
    if existing:
        return existing
    row = SharedData(
        patient_id=patient_id,
        therapist_id=therapist_id,
        data_type=data_type.value,
        data_id=data_id,
    )
    db.session.add(row)
    logger.info(
        "Patient %s shared %s %s with therapist %s",
        patient_id, data_type.value, data_id, therapist_id,
    )
    return row


def resolve_share_targets(patient: User, therapist_id: Optional[int] = None) -> List[User]:
    """Return the therapists a patient's share request is aimed at.

    Without ``therapist_id`` every linked therapist is returned. A
    patient with no linked therapist gets ``NoTherapistAssigned``; naming
    a therapist who is not linked gets ``AccessDenied``.
    """
    therapists = therapists_of(patient.id)
    if not therapists:
        raise NoTherapistAssigned("Assign a therapist before sharing your records.")
    if therapist_id is None:
        return therapists
    for therapist in therapists:
        if therapist.id == therapist_id:
            return [therapist]
    raise AccessDenied("That therapist is not assigned to you.")


def share_record(patient: User, entity, data_type: DataType, therapist_id: Optional[int] = None) -> List[SharedData]:
    """Share one of the patient's own records and commit.

    Sharing an ABC record also sets its ``shared_with_therapist`` flag.
    """
    require_role(patient, Role.PATIENT)
    ensure_owner(entity, patient)
    targets = resolve_share_targets(patient, therapist_id)
    rows = [share(patient.id, therapist.id, data_type, entity.id) for therapist in targets]
    if DataType(data_type) == DataType.ABC_SCHEMA:
        entity.shared_with_therapist = True
    db.session.commit()
    return rows


def query(therapist_id: int, patient_id: int) -> dict:
    """Resolve every ledger row for the pair into its record.

    Returns ``{"mood_entries", "abc_schemas", "exercise_completions"}``,
    each newest first. Rows pointing at deleted records are skipped.
    """
    results = {}
    for data_type, model in _MODELS.items():
        shared_ids = select(SharedData.data_id).where(
            SharedData.therapist_id == therapist_id,
            SharedData.patient_id == patient_id,
            SharedData.data_type == data_type.value,
        )
        timestamp = model.completed_at if model is ExerciseCompletion else model.created_at
        results[_RESULT_KEYS[data_type]] = (
            model.query.filter(model.id.in_(shared_ids), model.user_id == patient_id)
            .order_by(timestamp.desc(), model.id.desc())
            .all()
        )
    return results
