"""Sanitisation helpers.

Patients type free text into thought records, mood notes and exercise
responses, and therapists read it back in their dashboards. These
helpers strip HTML tags and surrounding whitespace before any of that
text is stored.
"""
from __future__ import annotations

import re

TAG_RE = re.compile(r"<[^>]+>")


def strip_tags(text: str | None) -> str:
    """Remove HTML tags from the given string and trim whitespace."""
    if not text:
        return ""
    return TAG_RE.sub("", text).strip()


def clean_optional(text: str | None) -> str | None:
    """Like :func:`strip_tags`, but an empty result becomes ``None``."""
    cleaned = strip_tags(text)
    return cleaned or None


def clean_fields(data: dict, names: tuple[str, ...]) -> dict:
    """Return ``data`` with the named text fields sanitised in place.

    Only keys present in ``data`` are touched, so partial update payloads
    keep their shape.
    """
    for name in names:
        if name in data and data[name] is not None:
            data[name] = strip_tags(data[name])
    return data
