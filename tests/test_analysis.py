"""Unit tests for the language model gateway and reply normalisation."""
import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from cbt_tracker import create_app
from cbt_tracker.errors import AnalysisFailed
from cbt_tracker.services.analysis_service import OpenAIAbcAnalyzer, normalize_analysis, build_messages

KNOWN = ["balanced-thinking", "evidence-examination"]


def _client(content=None, error=None, choices=True):
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)] if choices else [])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, calls


def test_analyzer_requests_json_mode_with_timeout() -> None:
    client, calls = _client(content=json.dumps({"distortions": [], "recommendations": []}))
    analyzer = OpenAIAbcAnalyzer(model="test-model", timeout=5.0, client=client)
    assert analyzer.analyze("A", "B", "C", KNOWN) == {"distortions": [], "recommendations": []}
    assert calls[0]["model"] == "test-model"
    assert calls[0]["timeout"] == 5.0
    assert calls[0]["response_format"] == {"type": "json_object"}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"error": OpenAIError("connection reset")},
        {"content": ""},
        {"content": "certainly! here is the analysis"},
        {"choices": False},
    ],
)
def test_analyzer_failures_raise_analysis_failed(kwargs) -> None:
    client, _ = _client(**kwargs)
    with pytest.raises(AnalysisFailed):
        OpenAIAbcAnalyzer(client=client).analyze("A", "B", "C", KNOWN)


def test_prompt_lists_known_exercises() -> None:
    messages = build_messages("event", "belief", "consequence", KNOWN)
    assert messages[0]["role"] == "system"
    assert "balanced-thinking, evidence-examination" in messages[1]["content"]
    assert "B (beliefs): belief" in messages[1]["content"]


def test_normalize_clamps_and_drops() -> None:
    raw = {
        "distortions": [
            {"type": "Labeling", "description": "Calling oneself a failure.", "confidence": "0.7"},
            {"type": "Catastrophizing", "confidence": -2},
            {"type": "", "confidence": 0.5},
            {"type": "Mental Filter", "confidence": "very"},
        ],
        "recommendations": [
            {"exerciseId": "balanced-thinking", "effectiveness": 3},
            {"exerciseId": "unknown", "effectiveness": 0.5},
            {"reason": "no id"},
        ],
    }
    result = normalize_analysis(raw, KNOWN)
    assert result["distortions"] == [
        {"type": "Labeling", "description": "Calling oneself a failure.", "confidence": 0.7},
        {"type": "Catastrophizing", "description": "", "confidence": 0.0},
    ]
    assert result["recommendations"] == [
        {"exerciseId": "balanced-thinking", "reason": "", "effectiveness": 1.0},
    ]


def test_normalize_tolerates_missing_lists() -> None:
    assert normalize_analysis({"distortions": "none"}, KNOWN) == {"distortions": [], "recommendations": []}


def test_normalize_rejects_non_object() -> None:
    with pytest.raises(AnalysisFailed):
        normalize_analysis(["not", "a", "dict"], KNOWN)


def test_sdk_client_does_not_retry(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    sdk_client = OpenAIAbcAnalyzer(timeout=5.0)._get_client()
    assert sdk_client.max_retries == 0
    assert sdk_client.timeout == 5.0


def test_factory_passes_retry_setting() -> None:
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://", "OPENAI_MAX_RETRIES": 1})
    analyzer = app.extensions["abc_analyzer"]
    assert isinstance(analyzer, OpenAIAbcAnalyzer)
    assert analyzer.max_retries == 1
