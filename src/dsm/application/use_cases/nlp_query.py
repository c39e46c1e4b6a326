"""NLU/NLG/トークナイズ問い合わせのユースケース。"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field

from dsm.application.use_cases.dialogue_turn_loop import (
    NLG_QUESTION,
    NLG_TASK,
    NLU_TASK,
    iter_valid_predictions,
)
from dsm.domain.entities.candidate import PredictionCandidate, TokenizerResult
from dsm.domain.services.entity_numbering import renumber_entities, split_entity_name
from dsm.ports.outbound.predictor_port import PredictorPort
from dsm.ports.outbound.program_codec_port import ProgramCodecPort, ProgramSyntaxError
from dsm.ports.outbound.program_typechecker_port import (
    ProgramTypeError,
    ProgramTypecheckerPort,
)
from dsm.ports.outbound.tokenizer_port import TokenizerPort

_LOG = logging.getLogger(__name__)

SEMANTIC_PARSING_TASK = "semantic_parsing"
FAILED_CODE: tuple[str, ...] = ("bookkeeping", "special", "special:failed")
DEFAULT_LIMIT = 5


class UnsupportedLocaleError(ValueError):
    """サーバーが扱わないロケールを指定された場合の例外。"""


@dataclass(frozen=True, slots=True)
class NLUCandidate:
    """NLU 応答の候補。"""

    code: tuple[str, ...]
    score: float


@dataclass(frozen=True, slots=True)
class NLUQueryResult:
    """NLU 問い合わせの返却値。"""

    candidates: tuple[NLUCandidate, ...]
    tokens: tuple[str, ...]
    entities: Mapping[str, object]
    # 旧フロントエンド分類器との互換用
    intent: Mapping[str, int] = field(
        default_factory=lambda: {"question": 0, "command": 1, "chatty": 0, "other": 0}
    )


class NLPQueryUseCase:
    """単一ロケール向けに NLU/NLG 予測器への問い合わせを行う。"""

    def __init__(
        self,
        *,
        locale: str,
        tokenizer: TokenizerPort,
        nlu: PredictorPort,
        codec: ProgramCodecPort,
        typechecker: ProgramTypecheckerPort | None = None,
        nlg: PredictorPort | None = None,
    ) -> None:
        """ロケールと依存ポートを受け取る。nlg 未指定時は nlu を共用する。"""
        if not locale:
            raise ValueError("locale は空にできません。")
        self._locale = locale
        self._tokenizer = tokenizer
        self._nlu = nlu
        self._nlg = nlg or nlu
        self._codec = codec
        self._typechecker = typechecker

    @property
    def locale(self) -> str:
        """対応ロケールを返す。"""
        return self._locale

    def tokenize(
        self,
        locale: str,
        text: str,
        entities: Mapping[str, object] | None = None,
    ) -> TokenizerResult:
        """発話をトークナイズし、指定があればエンティティ番号を揃える。"""
        self._check_locale(locale)
        tokenized = self._tokenizer.tokenize(text)
        if entities:
            tokenized = renumber_entities(tokenized, entities)
        return tokenized

    def query(
        self,
        locale: str,
        text: str,
        *,
        context: str | None = None,
        limit: int = DEFAULT_LIMIT,
        tokenized: bool = False,
        entities: Mapping[str, object] | None = None,
        skip_typechecking: bool = False,
    ) -> NLUQueryResult:
        """発話を解釈して有効な候補を上位 limit 件返す。"""
        self._check_locale(locale)
        if limit < 0:
            raise ValueError("limit は 0 以上である必要があります。")

        if tokenized:
            tokenizer_result = TokenizerResult(
                tokens=tuple(token for token in text.split(" ") if token),
                entities={
                    name: value
                    for name, value in (entities or {}).items()
                    if split_entity_name(name) is not None
                },
            )
        else:
            tokenizer_result = self.tokenize(locale, text, entities)

        if not tokenizer_result.tokens:
            candidates: tuple[NLUCandidate, ...] = (NLUCandidate(code=FAILED_CODE, score=math.inf),)
        else:
            candidates = self._run_nlu(
                tokenizer_result,
                context=context,
                limit=limit,
                skip_typechecking=skip_typechecking,
            )

        return NLUQueryResult(
            candidates=candidates,
            tokens=tokenizer_result.tokens,
            entities=tokenizer_result.entities,
        )

    def answer(
        self,
        locale: str,
        context: str,
        entities: Mapping[str, object],
        target: str,
        limit: int = DEFAULT_LIMIT,
    ) -> tuple[PredictionCandidate, ...]:
        """agent の対話行為 target に対応する発話候補を返す。"""
        self._check_locale(locale)
        candidates = self._nlg.predict(f"{context} {target}", NLG_QUESTION, NLG_TASK)
        return tuple(
            PredictionCandidate(
                answer=_postprocess_answer(candidate.answer, entities),
                score=candidate.score,
            )
            for candidate in list(candidates)[:limit]
        )

    def _run_nlu(
        self,
        tokenizer_result: TokenizerResult,
        *,
        context: str | None,
        limit: int,
        skip_typechecking: bool,
    ) -> tuple[NLUCandidate, ...]:
        question = " ".join(tokenizer_result.tokens)
        if context is None:
            raw_candidates = self._nlu.predict(question, None, SEMANTIC_PARSING_TASK)
        else:
            raw_candidates = self._nlu.predict(context, question, NLU_TASK)

        if skip_typechecking:
            accepted: list[PredictionCandidate] = list(raw_candidates)
        elif context is None:
            accepted = [
                candidate
                for candidate in raw_candidates
                if self._is_valid_program(candidate, tokenizer_result.entities)
            ]
        else:
            accepted = [
                candidate
                for candidate, _ in iter_valid_predictions(
                    raw_candidates,
                    codec=self._codec,
                    typechecker=self._typechecker,
                    entities=tokenizer_result.entities,
                )
            ]

        return tuple(
            NLUCandidate(code=candidate.tokens, score=candidate.score)
            for candidate in accepted[:limit]
        )

    def _is_valid_program(
        self,
        candidate: PredictionCandidate,
        entities: Mapping[str, object],
    ) -> bool:
        try:
            program = self._codec.parse(candidate.answer, entities)
            if self._typechecker is not None:
                self._typechecker.typecheck(program)
        except (ProgramSyntaxError, ProgramTypeError) as exc:
            _LOG.warning("Dropping NLU candidate: score=%s error=%s", candidate.score, exc)
            return False
        return True

    def _check_locale(self, locale: str) -> None:
        if locale != self._locale:
            raise UnsupportedLocaleError(f"未対応のロケールです: {locale}")


def _postprocess_answer(answer: str, entities: Mapping[str, object]) -> str:
    """応答中のエンティティ名を表示用の値へ置換する。"""
    return " ".join(
        _entity_display(entities[token]) if token in entities else token
        for token in answer.split(" ")
    )


def _entity_display(value: object) -> str:
    if isinstance(value, Mapping):
        display = value.get("display")
        if display is not None:
            return str(display)
        if "value" in value:
            return str(value["value"])
    return str(value)
