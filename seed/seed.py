"""Seed script for initial data.

Running this script will insert the exercise catalog, a demo therapist
and a demo patient linked to each other, and the patient's starter mood
scale. It can be executed with ``python -m seed.seed`` from the
repository root. Existing rows are left alone, so it is safe to re-run.
"""
from __future__ import annotations

from dotenv import load_dotenv

from cbt_tracker import create_app, db
from cbt_tracker.models import User, Role, MoodScale, TherapistPatient
from cbt_tracker.services.exercise_service import seed_catalog
from cbt_tracker.services.mood_service import default_scale_levels


def _get_or_create_user(email: str, first_name: str, last_name: str, role: Role) -> User:
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(first_name=first_name, last_name=last_name, email=email, role=role)
        user.set_password("password")
        db.session.add(user)
        db.session.flush()
    return user


def run_seeds() -> None:
    """Insert the catalog and demo accounts into the database."""
    load_dotenv()
    app = create_app()
    with app.app_context():
        db.create_all()
        seed_catalog()

        therapist = _get_or_create_user("therapist@example.com", "Demo", "Therapist", Role.THERAPIST)
        patient = _get_or_create_user("patient@example.com", "Demo", "Patient", Role.PATIENT)

        if not TherapistPatient.query.filter_by(therapist_id=therapist.id, patient_id=patient.id).first():
            db.session.add(TherapistPatient(therapist_id=therapist.id, patient_id=patient.id))
        if not MoodScale.query.filter_by(user_id=patient.id).first():
            db.session.add(MoodScale(
                user_id=patient.id,
                name="Standard mood scale",
                levels=default_scale_levels(),
                is_default=True,
            ))
        db.session.commit()
        print("Seed data inserted successfully.")


if __name__ == "__main__":
    run_seeds()
