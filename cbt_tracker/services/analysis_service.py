"""Analysis gateway for ABC thought records.

The three free-text fields of a record are sent to a language model
which answers with cognitive-distortion findings and exercise
recommendations. The reply is validated and normalised before it is
stored:

* each distortion is ``{type, description, confidence}`` and each
  recommendation ``{exerciseId, reason, effectiveness}``;
* confidence and effectiveness are clamped to ``[0, 1]``;
* malformed items, and recommendations naming an exercise that is not
  in the catalog, are dropped.

A successful analysis replaces ``analysis_results`` wholesale. A failed
one raises ``AnalysisFailed`` and leaves the record exactly as it was,
so the caller may simply retry. Creating a record never waits on this
module.
"""
from __future__ import annotations

import json
import logging
from typing import Iterable

from flask import current_app
from marshmallow import ValidationError as SchemaValidationError
from openai import OpenAI, OpenAIError
from sqlalchemy import select, update

from .. import db
from ..errors import AnalysisFailed, NotFoundError, ValidationError
from ..models import AbcSchema, Exercise
from ..schemas import DistortionSchema, RecommendationSchema

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("activating_event", "beliefs", "consequences")

SYSTEM_PROMPT = (
    "You are a cognitive behavioural therapy assistant. You read ABC thought "
    "records, name the cognitive distortions present in the beliefs and "
    "recommend exercises. Answer with a single JSON object only."
)

COMMON_DISTORTIONS = (
    "All-or-Nothing Thinking", "Overgeneralization", "Mental Filter",
    "Disqualifying the Positive", "Jumping to Conclusions",
    "Magnification/Minimization", "Emotional Reasoning", "Should Statements",
    "Labeling", "Personalization", "Catastrophizing",
)


def build_messages(activating_event: str, beliefs: str, consequences: str,
                   exercise_ids: Iterable[str]) -> list[dict[str, str]]:
    """Chat messages for one analysis request."""
    user_prompt = (
        f"A (activating event): {activating_event}\n"
        f"B (beliefs): {beliefs}\n"
        f"C (consequences): {consequences}\n\n"
        "Return JSON of the form "
        '{"distortions": [{"type": str, "description": str, "confidence": 0..1}], '
        '"recommendations": [{"exerciseId": str, "reason": str, "effectiveness": 0..1}]}.\n'
        f"Distortions to consider: {', '.join(COMMON_DISTORTIONS)}.\n"
        f"exerciseId must be one of: {', '.join(sorted(exercise_ids))}."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


class OpenAIAbcAnalyzer:
    """Calls the OpenAI chat completions API in JSON mode.

    The SDK client is created on first use so that the application can
    start without ``OPENAI_API_KEY`` set. SDK retries are off by default so
    that a dead endpoint fails after a single timeout.
    """

    def __init__(self, model: str = "gpt-4o-mini", timeout: float = 30.0, max_retries: int = 0,
                 client: OpenAI | None = None) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(timeout=self.timeout, max_retries=self.max_retries)
        return self._client

    def analyze(self, activating_event: str, beliefs: str, consequences: str,
                exercise_ids: Iterable[str]) -> dict:
        """Return the model's reply parsed as JSON.

        Raises ``AnalysisFailed`` on any SDK error (including timeouts and
        a missing API key), an empty reply or a reply that is not JSON.
        """
        messages = build_messages(activating_event, beliefs, consequences, exercise_ids)
        try:
            resp = self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                timeout=self.timeout,
            )
            raw_json_text = resp.choices[0].message.content
        except OpenAIError as exc:
            raise AnalysisFailed(f"Text analysis service error: {exc}") from exc
        except IndexError as exc:
            raise AnalysisFailed("Text analysis service returned no choices.") from exc

        if not raw_json_text or not raw_json_text.strip():
            raise AnalysisFailed("Text analysis service returned an empty reply.")
        try:
            return json.loads(raw_json_text)
        except json.JSONDecodeError as exc:
            raise AnalysisFailed("Text analysis service returned malformed JSON.") from exc


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def normalize_analysis(raw, known_exercise_ids: Iterable[str]) -> dict:
    """Validate a raw reply into ``{"distortions": [...], "recommendations": [...]}``."""
    if not isinstance(raw, dict):
        raise AnalysisFailed("Text analysis reply was not a JSON object.")
    known = set(known_exercise_ids)
    distortion_schema = DistortionSchema()
    recommendation_schema = RecommendationSchema()

    distortions = []
    for item in _as_list(raw.get("distortions")):
        try:
            finding = distortion_schema.load(item)
        except SchemaValidationError as err:
            logger.debug("Dropping malformed distortion: %s", err.messages)
            continue
        finding["confidence"] = _clamp(finding["confidence"])
        distortions.append(distortion_schema.dump(finding))

    recommendations = []
    for item in _as_list(raw.get("recommendations")):
        try:
            rec = recommendation_schema.load(item)
        except SchemaValidationError as err:
            logger.debug("Dropping malformed recommendation: %s", err.messages)
            continue
        if rec["exercise_id"] not in known:
            logger.debug("Dropping recommendation for unknown exercise %r", rec["exercise_id"])
            continue
        rec["effectiveness"] = _clamp(rec["effectiveness"])
        recommendations.append(recommendation_schema.dump(rec))

    return {"distortions": distortions, "recommendations": recommendations}


def analyze_abc_schema(schema: AbcSchema, analyzer=None) -> AbcSchema:
    """Analyse ``schema`` and overwrite its ``analysis_results``.

    Only the ``analysis_results`` column is written, so an edit to the
    other fields made while the call was in flight is kept. When two
    analyses race, the one that finishes last wins.
    """
    missing = {name: ["Must not be empty."] for name in TEXT_FIELDS
               if not (getattr(schema, name) or "").strip()}
    if missing:
        raise ValidationError("The thought record is incomplete.", missing)

    analyzer = analyzer or current_app.extensions["abc_analyzer"]
    schema_id = schema.id
    texts = [getattr(schema, name) for name in TEXT_FIELDS]
    exercise_ids = db.session.scalars(select(Exercise.id)).all()
    # No transaction is held open across the external call.
    db.session.commit()

    logger.info("Analysing ABC record %s", schema_id)
    try:
        raw = analyzer.analyze(*texts, exercise_ids)
        results = normalize_analysis(raw, exercise_ids)
    except AnalysisFailed as exc:
        logger.warning("Analysis of ABC record %s failed: %s", schema_id, exc.message)
        raise

    outcome = db.session.execute(
        update(AbcSchema).where(AbcSchema.id == schema_id).values(analysis_results=results)
    )
    if outcome.rowcount == 0:
        db.session.rollback()
        raise NotFoundError("ABC record no longer exists.")
    db.session.commit()
    logger.info(
        "ABC record %s analysed: %d distortions, %d recommendations",
        schema_id, len(results["distortions"]), len(results["recommendations"]),
    )
    analysed = db.session.get(AbcSchema, schema_id)
    db.session.refresh(analysed)
    return analysed
