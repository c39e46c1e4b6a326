import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from dsm.adapters.outbound.openai_predictor_adapter import (
    OpenAIConfigurationError,
    OpenAIPredictorAdapter,
    OpenAIRequestError,
    OpenAIResponseFormatError,
)


class FakeResponses:
    """responses.create の呼び出しを記録して固定テキストを返す。"""

    def __init__(self, output_text: object) -> None:
        """返却する output_text を受け取る。"""
        self._output_text = output_text
        self.requests: list[dict[str, object]] = []

    def create(self, **kwargs: object) -> SimpleNamespace:
        self.requests.append(kwargs)
        return SimpleNamespace(output_text=self._output_text)


def _build_adapter(output_text: object) -> tuple[OpenAIPredictorAdapter, FakeResponses]:
    adapter = OpenAIPredictorAdapter(model="gpt-test", api_key="sk-test")
    responses = FakeResponses(output_text)
    adapter._client = SimpleNamespace(responses=responses)
    return adapter, responses


def test_predict_returns_candidates_sorted_by_score() -> None:
    output = json.dumps(
        {
            "candidates": [
                {"answer": "low", "score": 0.1},
                {"answer": {"dialogue_act": {"name": "sys_greet"}}, "score": 0.7},
            ]
        }
    )
    adapter, responses = _build_adapter(f"```json\n{output}\n```")

    candidates = adapter.predict("ctx", "table for NUMBER_0", "dialogue_nlu")

    assert [candidate.score for candidate in candidates] == [0.7, 0.1]
    assert json.loads(candidates[0].answer) == {"dialogue_act": {"name": "sys_greet"}}
    assert responses.requests[0]["model"] == "gpt-test"
    assert "dialogue_nlu" in str(responses.requests[0]["input"])


@pytest.mark.parametrize(
    "output_text",
    [
        None,
        "   ",
        "not json",
        '["a"]',
        '{"candidates": {}}',
        '{"candidates": [{"answer": "x", "score": "high"}]}',
        '{"candidates": [{"answer": " ", "score": 1}]}',
    ],
)
def test_malformed_output_raises_format_error(output_text: object) -> None:
    adapter, _ = _build_adapter(output_text)

    with pytest.raises(OpenAIResponseFormatError):
        adapter.predict("ctx", None, "dialogue_policy")


def test_missing_api_key_raises_configuration_error(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    adapter = OpenAIPredictorAdapter(model="gpt-test")

    with pytest.raises(OpenAIConfigurationError):
        adapter.predict("ctx", None, "dialogue_policy")


class FailingResponses:
    """API 呼び出しで OpenAIError を送出する。"""

    def create(self, **kwargs: object) -> SimpleNamespace:
        del kwargs
        raise OpenAIError("connection reset")


def test_request_failure_names_task_and_model() -> None:
    adapter = OpenAIPredictorAdapter(model="gpt-test", api_key="sk-test")
    adapter._client = SimpleNamespace(responses=FailingResponses())

    with pytest.raises(OpenAIRequestError) as exc_info:
        adapter.predict("ctx", None, "dialogue_policy")

    assert "dialogue_policy" in str(exc_info.value)
    assert "gpt-test" in str(exc_info.value)


def test_empty_output_names_task() -> None:
    adapter, _ = _build_adapter("  ")

    with pytest.raises(OpenAIResponseFormatError, match="dialogue_nlg"):
        adapter.predict("ctx", None, "dialogue_nlg")


@pytest.mark.parametrize(("num_candidates", "timeout"), [(0, 30.0), (3, 0.0)])
def test_invalid_candidate_count_or_timeout_is_rejected(num_candidates: int, timeout: float) -> None:
    with pytest.raises(ValueError):
        OpenAIPredictorAdapter(api_key="sk-test", num_candidates=num_candidates, timeout=timeout)
