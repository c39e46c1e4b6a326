"""HTTP API の入出力スキーマ。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス。"""

    status: str = "ok"


class TokenizeRequest(BaseModel):
    """トークナイズリクエスト。"""

    q: str = Field(max_length=10_000)
    entities: dict[str, Any] | None = None


class TokenizeResponse(BaseModel):
    """トークナイズレスポンス。"""

    tokens: list[str]
    raw_tokens: list[str]
    entities: dict[str, Any]


class QueryRequest(BaseModel):
    """NLU 問い合わせリクエスト。"""

    q: str = Field(max_length=10_000)
    context: str | None = None
    limit: int = Field(default=5, ge=0)
    tokenized: bool = False
    entities: dict[str, Any] | None = None
    skip_typechecking: bool = False


class CandidateResponse(BaseModel):
    """NLU 候補。"""

    code: list[str]
    score: float | str


class QueryResponse(BaseModel):
    """NLU 問い合わせレスポンス。"""

    candidates: list[CandidateResponse]
    tokens: list[str]
    entities: dict[str, Any]
    intent: dict[str, int]


class AnswerRequest(BaseModel):
    """NLG 問い合わせリクエスト。"""

    context: str = Field(min_length=1)
    target: str = Field(min_length=1)
    entities: dict[str, Any] = Field(default_factory=dict)
    limit: int = Field(default=5, ge=0)


class AnswerCandidateResponse(BaseModel):
    """NLG 候補。"""

    answer: str
    score: float


class AnswerResponse(BaseModel):
    """NLG 問い合わせレスポンス。"""

    candidates: list[AnswerCandidateResponse]


class CreateSessionResponse(BaseModel):
    """セッション作成レスポンス。"""

    session_id: str


class DialogueMessageRequest(BaseModel):
    """対話メッセージ送信リクエスト。"""

    session_id: str = Field(min_length=1)
    utterance: str = Field(min_length=1, max_length=10_000)


class DialogueMessageResponse(BaseModel):
    """対話メッセージ送信レスポンス。"""

    session_id: str
    turn_id: int
    reply: str | None
    state: dict[str, Any]
    user_prediction: dict[str, Any]
    agent_prediction: dict[str, Any]


class ErrorResponse(BaseModel):
    """API エラーレスポンス。"""

    detail: str
