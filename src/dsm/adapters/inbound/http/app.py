"""FastAPI ベースの対話状態機械 API。"""

from __future__ import annotations

import math
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, HTTPException, status

from dsm.adapters.inbound.http.schemas import (
    AnswerCandidateResponse,
    AnswerRequest,
    AnswerResponse,
    CandidateResponse,
    CreateSessionResponse,
    DialogueMessageRequest,
    DialogueMessageResponse,
    ErrorResponse,
    HealthResponse,
    QueryRequest,
    QueryResponse,
    TokenizeRequest,
    TokenizeResponse,
)
from dsm.adapters.outbound.in_memory_components import (
    InMemorySchemaRegistryAdapter,
    SimpleTokenizerAdapter,
    SimulatedProgramExecutorAdapter,
)
from dsm.adapters.outbound.json_program_codec import (
    JsonProgramCodecAdapter,
    prediction_to_payload,
    state_to_payload,
)
from dsm.adapters.outbound.openai_predictor_adapter import (
    OpenAIConfigurationError,
    OpenAIPredictorAdapter,
    OpenAIRequestError,
    OpenAIResponseFormatError,
)
from dsm.application.use_cases.dialogue_session import (
    DialogueSessionNotFoundError,
    DialogueSessionUseCase,
)
from dsm.application.use_cases.dialogue_turn_loop import DialogueTurnLoop, NoValidCandidateError
from dsm.application.use_cases.nlp_query import NLPQueryUseCase, UnsupportedLocaleError
from dsm.domain.value_objects.dialogue_state import StateInvariantViolation
from dsm.ports.outbound.program_typechecker_port import ProgramTypecheckerPort

_DEFAULT_MODEL = "gpt-4.1-mini"
_DEFAULT_LOCALE = "en-US"

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def create_app(
    *,
    nlp_query_use_case: NLPQueryUseCase | None = None,
    dialogue_session_use_case: DialogueSessionUseCase | None = None,
) -> FastAPI:
    """対話状態機械 API アプリを構築する。"""
    _load_runtime_env()
    if nlp_query_use_case is None or dialogue_session_use_case is None:
        default_nlp, default_session = _build_default_use_cases()
        nlp_query_use_case = nlp_query_use_case or default_nlp
        dialogue_session_use_case = dialogue_session_use_case or default_session

    app = FastAPI(
        title="Dialogue State Machine API",
        version="0.1.0",
    )
    app.state.nlp_query_use_case = nlp_query_use_case
    app.state.dialogue_session_use_case = dialogue_session_use_case
    app.state.candidate_limit = _resolve_non_negative_int_env("DSM_CANDIDATE_LIMIT", default=5)
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    api = APIRouter(prefix="/api")

    @api.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @api.post(
        "/dialogue/sessions",
        response_model=CreateSessionResponse,
    )
    def create_session() -> CreateSessionResponse:
        use_case: DialogueSessionUseCase = app.state.dialogue_session_use_case
        session_id = use_case.create_session()
        return CreateSessionResponse(session_id=session_id)

    @api.post(
        "/dialogue/messages",
        response_model=DialogueMessageResponse,
        responses=_ERROR_RESPONSES,
    )
    def post_message(request: DialogueMessageRequest) -> DialogueMessageResponse:
        use_case: DialogueSessionUseCase = app.state.dialogue_session_use_case
        try:
            reply = use_case.send_utterance(
                session_id=request.session_id,
                utterance=request.utterance,
            )
        except Exception as exc:
            raise _to_http_exception(exc) from exc

        return DialogueMessageResponse(
            session_id=reply.session_id,
            turn_id=reply.turn_id,
            reply=reply.reply,
            state=state_to_payload(reply.state),
            user_prediction=prediction_to_payload(reply.user_prediction),
            agent_prediction=prediction_to_payload(reply.agent_prediction),
        )

    @api.post(
        "/{locale}/tokenize",
        response_model=TokenizeResponse,
        responses=_ERROR_RESPONSES,
    )
    def tokenize(locale: str, request: TokenizeRequest) -> TokenizeResponse:
        use_case: NLPQueryUseCase = app.state.nlp_query_use_case
        try:
            result = use_case.tokenize(locale, request.q, request.entities)
        except UnsupportedLocaleError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except Exception as exc:
            raise _to_http_exception(exc) from exc

        return TokenizeResponse(
            tokens=list(result.tokens),
            raw_tokens=list(result.raw_tokens),
            entities=dict(result.entities),
        )

    @api.post(
        "/{locale}/query",
        response_model=QueryResponse,
        responses=_ERROR_RESPONSES,
    )
    def query(locale: str, request: QueryRequest) -> QueryResponse:
        use_case: NLPQueryUseCase = app.state.nlp_query_use_case
        try:
            result = use_case.query(
                locale,
                request.q,
                context=request.context,
                limit=min(request.limit, app.state.candidate_limit),
                tokenized=request.tokenized,
                entities=request.entities,
                skip_typechecking=request.skip_typechecking,
            )
        except Exception as exc:
            raise _to_http_exception(exc) from exc

        return QueryResponse(
            candidates=[
                CandidateResponse(code=list(candidate.code), score=_json_score(candidate.score))
                for candidate in result.candidates
            ],
            tokens=list(result.tokens),
            entities=dict(result.entities),
            intent=dict(result.intent),
        )

    @api.post(
        "/{locale}/answer",
        response_model=AnswerResponse,
        responses=_ERROR_RESPONSES,
    )
    def answer(locale: str, request: AnswerRequest) -> AnswerResponse:
        use_case: NLPQueryUseCase = app.state.nlp_query_use_case
        try:
            candidates = use_case.answer(
                locale,
                request.context,
                request.entities,
                request.target,
                limit=min(request.limit, app.state.candidate_limit),
            )
        except Exception as exc:
            raise _to_http_exception(exc) from exc

        return AnswerResponse(
            candidates=[
                AnswerCandidateResponse(answer=candidate.answer, score=candidate.score)
                for candidate in candidates
            ]
        )

    @api.post(
        "/{locale}/learn",
        responses={501: {"model": ErrorResponse}},
    )
    def learn(locale: str) -> None:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail=f"オンライン学習は未対応です: {locale}",
        )

    app.include_router(api)


def _to_http_exception(exc: Exception) -> HTTPException:
    """ユースケース例外を HTTP ステータスへ対応付ける。未知の例外はそのまま送出する。"""
    if isinstance(exc, DialogueSessionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc.args[0]))
    if isinstance(exc, StateInvariantViolation | NoValidCandidateError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, OpenAIConfigurationError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, OpenAIRequestError | OpenAIResponseFormatError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    raise exc


def _json_score(score: float) -> float | str:
    if math.isinf(score):
        return "Infinity" if score > 0 else "-Infinity"
    return score


def _build_default_use_cases() -> tuple[NLPQueryUseCase, DialogueSessionUseCase]:
    codec = JsonProgramCodecAdapter()
    tokenizer = SimpleTokenizerAdapter()
    typechecker = _build_typechecker()
    nlu = OpenAIPredictorAdapter(
        model=_resolve_model_name(primary_env="OPENAI_NLU_MODEL"),
        temperature=0.1,
        max_output_tokens=1000,
    )
    policy = OpenAIPredictorAdapter(
        model=_resolve_model_name(primary_env="OPENAI_POLICY_MODEL"),
        temperature=0.1,
        max_output_tokens=1000,
    )
    nlg = OpenAIPredictorAdapter(
        model=_resolve_model_name(primary_env="OPENAI_NLG_MODEL"),
        temperature=0.2,
        max_output_tokens=600,
    )

    nlp_query = NLPQueryUseCase(
        locale=os.getenv("DSM_LOCALE", _DEFAULT_LOCALE),
        tokenizer=tokenizer,
        nlu=nlu,
        codec=codec,
        typechecker=typechecker,
        nlg=nlg,
    )
    loop = DialogueTurnLoop(
        nlu,
        codec,
        tokenizer,
        SimulatedProgramExecutorAdapter(),
        typechecker=typechecker,
        policy=policy,
        nlg=nlg,
        max_result_rows=_resolve_non_negative_int_env("DSM_MAX_RESULT_ROWS", default=3),
    )
    session = DialogueSessionUseCase(
        loop=loop,
        max_sessions=max(1, _resolve_non_negative_int_env("DSM_MAX_SESSIONS", default=200)),
    )
    return nlp_query, session


def _build_typechecker() -> ProgramTypecheckerPort | None:
    schema_file = os.getenv("DSM_SCHEMA_FILE", "").strip()
    if not schema_file:
        return None
    return InMemorySchemaRegistryAdapter.from_json_file(schema_file)


def _resolve_model_name(*, primary_env: str) -> str:
    """ロール別のモデル名 → OPENAI_MODEL → 既定値の順で解決する。"""
    for env_name in (primary_env, "OPENAI_MODEL"):
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return _DEFAULT_MODEL


def _resolve_non_negative_int_env(name: str, *, default: int) -> int:
    """0 以上の整数環境変数を読む。不正値や負値は既定値にする。"""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    if value < 0:
        return default
    return value


def _load_runtime_env() -> None:
    app_env = os.getenv("APP_ENV", "development")
    env_file = Path(f".env.{app_env}")
    if env_file.exists():
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)
