"""OpenAI Responses API を系列予測器として使うアダプタ。"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError,
    OpenAI,
    OpenAIError,
)

from dsm.domain.entities.candidate import PredictionCandidate
from dsm.ports.outbound.predictor_port import PredictorPort

_DEFAULT_MODEL = "gpt-4.1-mini"

_TASK_INSTRUCTIONS: dict[str, str] = {
    "dialogue_nlu": (
        " The context is the dialogue state prepared for the user role."
        " The question is the tokenized user utterance."
        " Each answer must be a JSON object with keys updates, new_items and dialogue_act"
        " describing only what the user turn changes."
    ),
    "dialogue_policy": (
        " The context is the dialogue state prepared for the agent role, including executed results."
        " Each answer must be a JSON object with keys updates, new_items and dialogue_act"
        " describing only what the agent turn changes."
    ),
    "dialogue_nlg": (
        " The context is the dialogue state followed by the agent turn delta."
        " Each answer must be the plain reply sentence for the user."
        " Keep entity placeholders such as NUMBER_0 as they are."
    ),
    "semantic_parsing": (
        " The context is the tokenized user utterance."
        " Each answer must be a JSON object with keys function and arguments."
    ),
}


class OpenAIConfigurationError(RuntimeError):
    """API キー未設定や認証失敗で予測器を使えない場合の例外。"""


class OpenAIResponseFormatError(RuntimeError):
    """モデル応答を候補列として解釈できない場合の例外。"""


class OpenAIRequestError(RuntimeError):
    """予測タスクの API 呼び出しが失敗した場合の例外。"""


class OpenAIPredictorAdapter(PredictorPort):
    """文脈と質問からスコア付き候補列を Responses API で生成する予測器。"""

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float = 0.2,
        max_output_tokens: int = 1000,
        num_candidates: int = 3,
        timeout: float = 30.0,
    ) -> None:
        """モデル設定・候補数・タイムアウトを初期化する。クライアントは初回予測時に作る。"""
        if num_candidates < 1:
            raise ValueError("num_candidates は 1 以上である必要があります。")
        if timeout <= 0:
            raise ValueError("timeout は正の値である必要があります。")
        self._model: str = model if model is not None else os.getenv("OPENAI_MODEL", _DEFAULT_MODEL)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._num_candidates = num_candidates
        self._timeout = timeout
        self._client: OpenAI | None = None

    def predict(
        self,
        context: str,
        question: str | None,
        task: str,
    ) -> Sequence[PredictionCandidate]:
        """モデル応答の候補をスコア降順で返す。"""
        instructions = (
            "You are a sequence predictor for a task-oriented dialogue state machine."
            " Return only a valid JSON object. Markdown fences are forbidden."
            f' Format: {{"candidates": [{{"answer": ..., "score": number}}]}}'
            f" with at most {self._num_candidates} candidates, best first."
            + _TASK_INSTRUCTIONS.get(task, "")
        )
        prompt = _build_predictor_prompt(context=context, question=question, task=task)
        response_text = self._request_candidates_text(
            task=task,
            instructions=instructions,
            prompt=prompt,
        )
        candidates = _parse_candidates(_parse_json_object(response_text))
        return tuple(sorted(candidates, key=lambda candidate: candidate.score, reverse=True))

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise OpenAIConfigurationError(
                    f"予測器 {self._model} を使うには OPENAI_API_KEY の設定が必要です。"
                )
            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def _request_candidates_text(self, *, task: str, instructions: str, prompt: str) -> str:
        try:
            response = self._get_client().responses.create(
                model=self._model,
                instructions=instructions,
                input=prompt,
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
            )
        except AuthenticationError as exc:
            raise OpenAIConfigurationError(
                f"予測器 {self._model} の認証に失敗しました。OPENAI_API_KEY を確認してください。"
            ) from exc
        except (APITimeoutError, APIConnectionError, APIError, OpenAIError) as exc:
            raise OpenAIRequestError(
                f"{task} の候補生成に失敗しました: model={self._model} error={exc.__class__.__name__}"
            ) from exc
        output_text = getattr(response, "output_text", None)
        if not isinstance(output_text, str) or not output_text.strip():
            raise OpenAIResponseFormatError(f"{task} の候補応答が空です: model={self._model}")
        return output_text.strip()


def _build_predictor_prompt(*, context: str, question: str | None, task: str) -> str:
    payload = {
        "task": task,
        "context": context,
        "question": question,
    }
    return (
        "Predict the answer for this input JSON:\n"
        f"{json.dumps(payload, ensure_ascii=False)}\n"
        "Return the candidates JSON object only."
    )


def _parse_candidates(payload: dict[str, object]) -> list[PredictionCandidate]:
    raw_candidates = payload.get("candidates")
    if not isinstance(raw_candidates, list):
        raise OpenAIResponseFormatError("candidates が配列ではありません。")

    candidates: list[PredictionCandidate] = []
    for raw in raw_candidates:
        if not isinstance(raw, dict):
            raise OpenAIResponseFormatError("候補が JSON object ではありません。")
        answer = raw.get("answer")
        if not isinstance(answer, str):
            answer = json.dumps(answer, ensure_ascii=False)
        score = raw.get("score", 0.0)
        if isinstance(score, bool) or not isinstance(score, int | float):
            raise OpenAIResponseFormatError("候補の score が数値ではありません。")
        try:
            candidates.append(PredictionCandidate(answer=answer, score=float(score)))
        except ValueError as exc:
            raise OpenAIResponseFormatError(f"候補が不正です: {exc}") from exc
    return candidates


def _parse_json_object(response_text: str) -> dict[str, object]:
    """モデル応答文字列から JSON object を抽出する。"""
    text = response_text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:].strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise OpenAIResponseFormatError("候補 JSON のパースに失敗しました。") from exc

    if not isinstance(parsed, dict):
        raise OpenAIResponseFormatError("候補 JSON が JSON object ではありません。")
    return parsed
