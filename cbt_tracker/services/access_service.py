"""Access control rules.

Every route that touches patient data asks this module first. The rules
are:

* A patient may always read and write the records they own.
* A therapist reads a patient's records only while a ``TherapistPatient``
  link to that patient exists. Removing the link revokes access at once.
* With a link, ABC thought records are readable regardless of their
  ``shared_with_therapist`` flag. Mood entries and exercise completions
  additionally need a matching ``SharedData`` ledger row.

Violations raise ``Forbidden`` (wrong role for the operation),
``AccessDenied`` (right role, no relationship to the record) or
``NotFoundError``. Nothing here writes to the database.
"""
from __future__ import annotations

from functools import wraps

from flask_jwt_extended import jwt_required, current_user

from .. import db
from ..errors import Forbidden, AccessDenied, NotFoundError
from ..models import User, Role, TherapistPatient, SharedData, DataType


def require_role(user: User, role: Role) -> None:
    """Raise ``Forbidden`` unless ``user`` holds ``role``."""
    if user.role != role:
        raise Forbidden(f"This operation is only available to {role.value}s.")


def role_required(role: Role):
    """Route decorator: a valid token whose user holds ``role``."""
    def decorator(view):
        @wraps(view)
        @jwt_required()
        def wrapper(*args, **kwargs):
            require_role(current_user, role)
            return view(*args, **kwargs)
        return wrapper
    return decorator


def ensure_owner(entity, user: User) -> None:
    """Raise ``AccessDenied`` unless ``user`` owns ``entity``."""
    if entity.user_id != user.id:
        raise AccessDenied("You do not have access to this record.")


def is_assigned(therapist_id: int, patient_id: int) -> bool:
    """Return True if an active therapist/patient link exists."""
    return (
        db.session.query(TherapistPatient.id)
        .filter_by(therapist_id=therapist_id, patient_id=patient_id)
        .first()
        is not None
    )


def is_shared(therapist_id: int, patient_id: int, data_type: DataType, data_id: int) -> bool:
    """Return True if the ledger holds a row for this exact record."""
    return (
        db.session.query(SharedData.id)
        .filter_by(
            therapist_id=therapist_id,
            patient_id=patient_id,
            data_type=DataType(data_type).value,
            data_id=data_id,
        )
        .first()
        is not None
    )


def ensure_therapist_of(therapist: User, patient_id: int) -> User:
    """Return the patient if ``therapist`` is linked to them.

    Raises ``NotFoundError`` when no patient with that id exists and
    ``AccessDenied`` when the link is missing.
    """
    require_role(therapist, Role.THERAPIST)
    patient = db.session.get(User, patient_id)
    if patient is None or not patient.is_patient:
        raise NotFoundError("Patient not found.")
    if not is_assigned(therapist.id, patient.id):
        raise AccessDenied("This patient is not assigned to you.")
    return patient


def ensure_can_read_abc_schema(user: User, schema) -> None:
    """Owner, or a therapist linked to the owner. The sharing flag is not
    consulted."""
    if schema.user_id == user.id:
        return
    if user.is_therapist and is_assigned(user.id, schema.user_id):
        return
    raise AccessDenied("You do not have access to this thought record.")


def ensure_can_read_shared(user: User, entity, data_type: DataType) -> None:
    """Owner, or a linked therapist holding a ledger row for ``entity``.

    Used for mood entries and exercise completions.
    """
    if entity.user_id == user.id:
        return
    if (
        user.is_therapist
        and is_assigned(user.id, entity.user_id)
        and is_shared(user.id, entity.user_id, data_type, entity.id)
    ):
        return
    raise AccessDenied("This record has not been shared with you.")
