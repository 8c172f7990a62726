"""Request body helpers shared by the blueprints."""
from __future__ import annotations

from flask import request
from marshmallow import Schema


def load_json(schema: Schema, partial: bool = False) -> dict:
    """Validate the JSON body with ``schema``.

    A missing or non-JSON body is treated as ``{}`` so that required
    fields are reported individually.
    """
    return schema.load(request.get_json(silent=True) or {}, partial=partial)
