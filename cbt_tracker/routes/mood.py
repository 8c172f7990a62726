"""
Routes for mood scales and mood entries.

Patients define their own mood scales and log mood entries against
them. Scales are listed default first, then newest first; entries are
listed newest first. A therapist can read an individual mood entry only
after the patient has shared it with them. Mood entries can be edited
but there is no delete endpoint.
"""

from __future__ import annotations

from datetime import timedelta

from dateutil.parser import parse as parse_date  # type: ignore
from dateutil.parser import ParserError  # type: ignore
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, current_user

from .. import db
from ..errors import NotFoundError, ValidationError
from ..models import MoodScale, MoodEntry, Role, DataType
from ..schemas import (
    MoodScaleSchema,
    MoodEntrySchema,
    MoodScaleInputSchema,
    MoodEntryInputSchema,
    ShareInputSchema,
    SharedDataSchema,
)
from ..services.access_service import role_required, ensure_owner, ensure_can_read_shared
from ..services.mood_service import get_own_scale, make_default, delete_scale, check_mood_level
from ..services.sharing_service import share_record
from ..util.payload import load_json
from ..util.sanitization import clean_fields, clean_optional


mood_bp = Blueprint("mood", __name__)


@mood_bp.route("/mood-scales", methods=["GET"])
@role_required(Role.PATIENT)
def list_mood_scales() -> tuple[list[dict], int]:
    """List the current patient's scales, default scale first."""
    scales = (
        MoodScale.query.filter_by(user_id=current_user.id)
        .order_by(MoodScale.is_default.desc(), MoodScale.created_at.desc(), MoodScale.id.desc())
        .all()
    )
    return MoodScaleSchema(many=True).dump(scales), 200


@mood_bp.route("/mood-scales", methods=["POST"])
@role_required(Role.PATIENT)
def create_mood_scale() -> tuple[dict, int]:
    """Create a scale from ``name``, ``levels`` and optional ``is_default``."""
    data = load_json(MoodScaleInputSchema())
    scale = MoodScale(user_id=current_user.id, name=data["name"].strip(), levels=data["levels"])
    db.session.add(scale)
    db.session.flush()
    if data["is_default"]:
        make_default(scale)
    db.session.commit()
    return MoodScaleSchema().dump(scale), 201


@mood_bp.route("/mood-scales/<int:scale_id>", methods=["GET"])
@role_required(Role.PATIENT)
def get_mood_scale(scale_id: int) -> tuple[dict, int]:
    return MoodScaleSchema().dump(get_own_scale(current_user, scale_id)), 200


@mood_bp.route("/mood-scales/<int:scale_id>", methods=["PUT"])
@role_required(Role.PATIENT)
def update_mood_scale(scale_id: int) -> tuple[dict, int]:
    """Update any of ``name``, ``levels`` and ``is_default``."""
    scale = get_own_scale(current_user, scale_id)
    data = load_json(MoodScaleInputSchema(), partial=True)
    if "name" in data:
        scale.name = data["name"].strip()
    if "levels" in data:
        scale.levels = data["levels"]
    if data.get("is_default") is True:
        make_default(scale)
    elif data.get("is_default") is False:
        scale.is_default = False
    db.session.commit()
    return MoodScaleSchema().dump(scale), 200


@mood_bp.route("/mood-scales/<int:scale_id>", methods=["DELETE"])
@role_required(Role.PATIENT)
def remove_mood_scale(scale_id: int) -> tuple[str, int]:
    delete_scale(get_own_scale(current_user, scale_id))
    return "", 204


@mood_bp.route("/mood-entries", methods=["GET"])
@role_required(Role.PATIENT)
def list_mood_entries() -> tuple[list[dict], int]:
    """List the patient's entries newest first.

    Optional query parameters: ``limit`` (default 30), ``from`` and
    ``to`` dates (inclusive, ISO 8601).
    """
    query = MoodEntry.query.filter_by(user_id=current_user.id)
    try:
        limit = int(request.args.get("limit", current_app.config["MOOD_ENTRY_LIMIT"]))
    except ValueError:
        raise ValidationError("Invalid limit.", {"limit": ["Not a number."]})
    if limit < 1:
        raise ValidationError("Invalid limit.", {"limit": ["Must be positive."]})
    try:
        if request.args.get("from"):
            query = query.filter(MoodEntry.created_at >= parse_date(request.args["from"]))
        if request.args.get("to"):
            end = parse_date(request.args["to"]) + timedelta(days=1)
            query = query.filter(MoodEntry.created_at < end)
    except (ParserError, OverflowError):
        raise ValidationError("Invalid date format. Use ISO 8601 (YYYY-MM-DD).")
    entries = query.order_by(MoodEntry.created_at.desc(), MoodEntry.id.desc()).limit(limit).all()
    return MoodEntrySchema(many=True).dump(entries), 200


@mood_bp.route("/mood-entries", methods=["POST"])
@role_required(Role.PATIENT)
def create_mood_entry() -> tuple[dict, int]:
    """Log a mood entry from ``mood_level``, optional ``mood_scale_id`` and ``notes``."""
    data = load_json(MoodEntryInputSchema())
    check_mood_level(current_user, data["mood_level"], data["mood_scale_id"])
    entry = MoodEntry(
        user_id=current_user.id,
        mood_level=data["mood_level"],
        mood_scale_id=data["mood_scale_id"],
        notes=clean_optional(data["notes"]),
    )
    db.session.add(entry)
    db.session.commit()
    return MoodEntrySchema().dump(entry), 201


def _get_entry(entry_id: int) -> MoodEntry:
    entry = db.session.get(MoodEntry, entry_id)
    if entry is None:
        raise NotFoundError("Mood entry not found.")
    return entry


@mood_bp.route("/mood-entries/<int:entry_id>", methods=["GET"])
@jwt_required()
def get_mood_entry(entry_id: int) -> tuple[dict, int]:
    """Owner, or a linked therapist the entry was shared with."""
    entry = _get_entry(entry_id)
    ensure_can_read_shared(current_user, entry, DataType.MOOD_ENTRY)
    return MoodEntrySchema().dump(entry), 200


@mood_bp.route("/mood-entries/<int:entry_id>", methods=["PUT"])
@role_required(Role.PATIENT)
def update_mood_entry(entry_id: int) -> tuple[dict, int]:
    """Correct an entry's ``mood_level``, ``mood_scale_id`` or ``notes``."""
    entry = _get_entry(entry_id)
    ensure_owner(entry, current_user)
    data = clean_fields(load_json(MoodEntryInputSchema(), partial=True), ("notes",))
    if "mood_level" in data or "mood_scale_id" in data:
        level = data.get("mood_level", entry.mood_level)
        scale_id = data["mood_scale_id"] if "mood_scale_id" in data else entry.mood_scale_id
        check_mood_level(current_user, level, scale_id)
        entry.mood_level = level
        entry.mood_scale_id = scale_id
    if "notes" in data:
        entry.notes = data["notes"] or None
    db.session.commit()
    return MoodEntrySchema().dump(entry), 200


@mood_bp.route("/mood-entries/<int:entry_id>/share", methods=["POST"])
@role_required(Role.PATIENT)
def share_mood_entry(entry_id: int) -> tuple[dict, int]:
    """Share the entry with one linked therapist (``therapist_id``) or all of them."""
    entry = _get_entry(entry_id)
    data = load_json(ShareInputSchema())
    rows = share_record(current_user, entry, DataType.MOOD_ENTRY, data["therapist_id"])
    return {"shared": SharedDataSchema(many=True).dump(rows)}, 200
