"""Therapist/patient links.

A ``TherapistPatient`` row is the assignment-level trust relationship
between one therapist and one patient. Rows are created by an explicit
action from either side and never updated; deleting the row revokes the
therapist's access to the patient's data. The database does not check
the roles of the two users, so :func:`assign` does.
"""
from __future__ import annotations

import logging
from typing import List

from .. import db
from ..errors import ValidationError, ConflictError, NotFoundError
from ..models import User, Role, TherapistPatient

logger = logging.getLogger(__name__)


def assign(therapist: User, patient: User) -> TherapistPatient:
    """Link ``therapist`` to ``patient`` and commit.

    Raises ``ValidationError`` if either user has the wrong role and
    ``ConflictError`` if the link already exists.
    """
    if therapist.role != Role.THERAPIST:
        raise ValidationError("Selected user is not a therapist.", {"therapist": ["Not a therapist."]})
    if patient.role != Role.PATIENT:
        raise ValidationError("Selected user is not a patient.", {"patient": ["Not a patient."]})
    existing = TherapistPatient.query.filter_by(therapist_id=therapist.id, patient_id=patient.id).first()
    if existing:
        raise ConflictError("This therapist is already assigned to the patient.")
    link = TherapistPatient(therapist_id=therapist.id, patient_id=patient.id)
    db.session.add(link)
    db.session.commit()
    logger.info("Linked therapist %s to patient %s", therapist.id, patient.id)
    return link


def remove(therapist_id: int, patient_id: int) -> None:
    """Delete the link; access is revoked from the next request on."""
    link = TherapistPatient.query.filter_by(therapist_id=therapist_id, patient_id=patient_id).first()
    if link is None:
        raise NotFoundError("No such therapist/patient assignment.")
    db.session.delete(link)
    db.session.commit()
    logger.info("Unlinked therapist %s from patient %s", therapist_id, patient_id)


def patients_of(therapist_id: int) -> List[User]:
    """Patients linked to the therapist, most recently linked first."""
    return (
        User.query.join(TherapistPatient, TherapistPatient.patient_id == User.id)
        .filter(TherapistPatient.therapist_id == therapist_id)
        .order_by(TherapistPatient.created_at.desc(), TherapistPatient.id.desc())
        .all()
    )


def therapists_of(patient_id: int) -> List[User]:
    """Therapists linked to the patient, most recently linked first."""
    return (
        User.query.join(TherapistPatient, TherapistPatient.therapist_id == User.id)
        .filter(TherapistPatient.patient_id == patient_id)
        .order_by(TherapistPatient.created_at.desc(), TherapistPatient.id.desc())
        .all()
    )
