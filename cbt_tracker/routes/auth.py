"""
Authentication routes for the CBT Mood Tracker.

Provides endpoints for registering patients and therapists and logging
in to obtain JSON Web Tokens (JWTs). These tokens are required for every
other endpoint except the exercise catalog and the health check.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_jwt_extended import create_access_token, jwt_required, current_user

from .. import db
from ..errors import ConflictError, Unauthenticated
from ..models import User, Role
from ..schemas import UserSchema, RegisterSchema
from ..util.payload import load_json


auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/register", methods=["POST"])
def register() -> tuple[dict, int]:
    """Register a new user.

    Expects JSON with ``first_name``, ``last_name``, ``email``,
    ``password`` and optional ``role`` (``patient`` or ``therapist``,
    default ``patient``). Emails must be unique. The role cannot be
    changed later.
    """
    data = load_json(RegisterSchema())
    email = data["email"].strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError("A user with that email already exists.")

    user = User(
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        email=email,
        role=Role(data["role"]),
    )
    user.set_password(data["password"])
    db.session.add(user)
    db.session.commit()
    return UserSchema().dump(user), 201


@auth_bp.route("/login", methods=["POST"])
def login() -> tuple[dict, int]:
    """Authenticate a user and return a JWT.

    Expects JSON with ``email`` and ``password``. The token carries the
    user's id as subject and the role as an extra claim.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        raise Unauthenticated("Invalid email or password.")

    additional_claims = {"role": user.role.value}
    access_token = create_access_token(identity=str(user.id), additional_claims=additional_claims)
    return {"access_token": access_token, "user": UserSchema().dump(user)}, 200


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me() -> tuple[dict, int]:
    """Return the profile of the authenticated user."""
    return UserSchema().dump(current_user), 200
