"""Mood scale and mood entry helpers.

Mood values outside a custom scale use the 1..7 range declared in
``models``. An entry recorded against one of the user's scales must use
one of that scale's level numbers instead.
"""
from __future__ import annotations

from typing import Optional

from .. import db
from ..errors import NotFoundError, ValidationError
from ..models import User, MoodScale, MoodEntry, MOOD_MIN, MOOD_MAX


def default_scale_levels() -> list[dict]:
    """The seven-level starter scale offered to new patients."""
    return [
        {"level": 1, "title": "Severe depression",
         "description": "Markedly slowed movement and speech, very little energy.",
         "behavioral_indicators": ["Slowed movement and speech", "Very low energy", "Struggles with basic tasks"],
         "category": "depression"},
        {"level": 2, "title": "Moderate depression",
         "description": "Clearly reduced motivation, avoiding social contact.",
         "behavioral_indicators": ["Reduced motivation", "Avoiding social contact", "Quiet, slow speech"],
         "category": "depression"},
        {"level": 3, "title": "Mild depression",
         "description": "Pessimistic thoughts but still able to carry out duties.",
         "behavioral_indicators": ["Pessimistic thoughts", "Able to carry out duties", "Lowered energy"],
         "category": "depression"},
        {"level": 4, "title": "Balanced mood",
         "description": "Stable daily rhythm, normal energy, proportionate emotional reactions.",
         "behavioral_indicators": ["Stable daily rhythm", "Normal energy", "Coherent speech"],
         "category": "normal"},
        {"level": 5, "title": "Mild hypomania",
         "description": "More energy than usual, more sociable and talkative.",
         "behavioral_indicators": ["Raised energy", "More sociable", "Slightly racing thoughts"],
         "category": "elevation"},
        {"level": 6, "title": "Moderate mania",
         "description": "Clear overactivity, hard to stop activities, rapid speech.",
         "behavioral_indicators": ["Overactivity", "Hard to stop activities", "Very rapid speech"],
         "category": "mania"},
        {"level": 7, "title": "Full mania",
         "description": "Extreme excitability, constant activity, risky behaviour.",
         "behavioral_indicators": ["Extreme excitability", "Constant activity", "Racing thoughts",
                                   "Risky behaviour"],
         "category": "mania"},
    ]


def get_own_scale(user: User, scale_id: int) -> MoodScale:
    scale = db.session.get(MoodScale, scale_id)
    if scale is None or scale.user_id != user.id:
        raise NotFoundError("Mood scale not found.")
    return scale


def make_default(scale: MoodScale) -> None:
    """Flag ``scale`` as default and clear the flag on the owner's others."""
    MoodScale.query.filter(
        MoodScale.user_id == scale.user_id,
        MoodScale.id != scale.id,
        MoodScale.is_default.is_(True),
    ).update({MoodScale.is_default: False}, synchronize_session="fetch")
    scale.is_default = True


def delete_scale(scale: MoodScale) -> None:
    """Delete a scale; entries recorded against it keep their level only."""
    MoodEntry.query.filter_by(mood_scale_id=scale.id).update(
        {MoodEntry.mood_scale_id: None}, synchronize_session="fetch"
    )
    db.session.delete(scale)
    db.session.commit()


def check_mood_level(user: User, mood_level: int, mood_scale_id: Optional[int]) -> None:
    """Validate an entry's level against its scale, or the default range."""
    if mood_scale_id is not None:
        scale = get_own_scale(user, mood_scale_id)
        if mood_level not in scale.level_numbers():
            raise ValidationError(
                "Mood level is not part of the selected scale.",
                {"mood_level": [f"Choose one of {sorted(scale.level_numbers())}."]},
            )
    elif not MOOD_MIN <= mood_level <= MOOD_MAX:
        raise ValidationError(
            "Mood level out of range.",
            {"mood_level": [f"Must be between {MOOD_MIN} and {MOOD_MAX}."]},
        )
