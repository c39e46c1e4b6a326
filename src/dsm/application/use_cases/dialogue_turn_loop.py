"""対話状態機械の 1ターン実行ユースケース。"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

from dsm.domain.entities.candidate import PredictionCandidate
from dsm.domain.services.context_preparer import (
    DEFAULT_MAX_RESULT_ROWS,
    prepare_context_for_prediction,
)
from dsm.domain.services.state_applier import compute_new_state
from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueState,
    ResultSet,
    Role,
)
from dsm.domain.value_objects.prediction import ItemUpdate, Prediction
from dsm.ports.outbound.predictor_port import PredictorPort
from dsm.ports.outbound.program_codec_port import ProgramCodecPort, ProgramSyntaxError
from dsm.ports.outbound.program_executor_port import ExecutionError, ProgramExecutorPort
from dsm.ports.outbound.program_typechecker_port import (
    ProgramTypeError,
    ProgramTypecheckerPort,
)
from dsm.ports.outbound.tokenizer_port import TokenizerPort

_LOG = logging.getLogger(__name__)

NLU_TASK = "dialogue_nlu"
POLICY_TASK = "dialogue_policy"
NLG_TASK = "dialogue_nlg"
NLG_QUESTION = "what should the agent say ?"


class NoValidCandidateError(RuntimeError):
    """予測候補がすべて解析・型検査に失敗した場合の例外。"""


@dataclass(frozen=True, slots=True)
class TurnOutcome:
    """1ロール分のターン結果。"""

    role: Role
    state: DialogueState
    prediction: Prediction
    candidate: PredictionCandidate
    utterance: str | None = None


@dataclass(frozen=True, slots=True)
class FullTurnResult:
    """ユーザー発話から agent 応答までの一巡の結果。"""

    user_turn: TurnOutcome
    executed_state: DialogueState
    agent_turn: TurnOutcome

    @property
    def final_state(self) -> DialogueState:
        """次ターンの旧状態となる状態を返す。"""
        return self.agent_turn.state


def iter_valid_predictions(
    candidates: Sequence[PredictionCandidate],
    *,
    codec: ProgramCodecPort,
    typechecker: ProgramTypecheckerPort | None,
    entities: Mapping[str, object] | None = None,
) -> Iterator[tuple[PredictionCandidate, Prediction]]:
    """解析と型検査に通った候補だけをスコア順のまま返す。失敗候補は捨てる。"""
    for candidate in candidates:
        try:
            prediction = codec.parse_prediction(candidate.answer, entities)
            if typechecker is not None:
                for item in prediction.new_items:
                    typechecker.typecheck(item.program)
        except (ProgramSyntaxError, ProgramTypeError) as exc:
            _LOG.warning("Dropping prediction candidate: score=%s error=%s", candidate.score, exc)
            continue
        yield candidate, prediction


class DialogueTurnLoop:
    """文脈準備・予測・状態適用・実行を1ターン単位で司るユースケース。"""

    def __init__(
        self,
        predictor: PredictorPort,
        codec: ProgramCodecPort,
        tokenizer: TokenizerPort,
        executor: ProgramExecutorPort,
        *,
        typechecker: ProgramTypecheckerPort | None = None,
        policy: PredictorPort | None = None,
        nlg: PredictorPort | None = None,
        max_result_rows: int = DEFAULT_MAX_RESULT_ROWS,
    ) -> None:
        """依存ポートと固定パラメータを受けて初期化する。policy 未指定時は predictor を共用する。"""
        if max_result_rows < 0:
            raise ValueError("max_result_rows は 0 以上である必要があります。")
        self._predictor = predictor
        self._codec = codec
        self._tokenizer = tokenizer
        self._executor = executor
        self._typechecker = typechecker
        self._policy = policy or predictor
        self._nlg = nlg
        self._max_result_rows = max_result_rows

    def run_user_turn(self, state: DialogueState, utterance: str) -> TurnOutcome:
        """ユーザー発話を解釈して user 向けの新状態を返す。"""
        normalized = utterance.strip()
        if not normalized:
            raise ValueError("utterance は空にできません。")

        tokenized = self._tokenizer.tokenize(normalized)
        context = prepare_context_for_prediction(
            state,
            Role.USER,
            max_result_rows=self._max_result_rows,
        )
        candidates = self._predictor.predict(
            self._codec.serialize_context(context),
            " ".join(tokenized.tokens),
            NLU_TASK,
        )
        candidate, prediction = self._select_prediction(candidates, tokenized.entities)
        return TurnOutcome(
            role=Role.USER,
            state=compute_new_state(state, prediction, Role.USER),
            prediction=prediction,
            candidate=candidate,
        )

    def execute_pending(self, state: DialogueState) -> DialogueState:
        """confirmed かつ未実行の item を実行し、結果を付与した状態を返す。"""
        updates: list[ItemUpdate] = []
        for index, item in enumerate(state.items):
            if item.confirm is not ConfirmStatus.CONFIRMED or item.results is not None:
                continue
            try:
                results = self._executor.execute(item.program)
            except ExecutionError as exc:
                _LOG.warning(
                    "Program execution failed: function=%s kind=%s",
                    item.program.function,
                    exc.kind,
                )
                results = ResultSet.failed(str(exc.kind))
            updates.append(ItemUpdate(index=index, results=results))

        if not updates:
            return state
        return compute_new_state(state, Prediction(updates=tuple(updates)), Role.AGENT)

    def run_agent_turn(self, state: DialogueState) -> TurnOutcome:
        """対話方策を予測して agent 向けの新状態と応答文を返す。"""
        context = prepare_context_for_prediction(
            state,
            Role.AGENT,
            max_result_rows=self._max_result_rows,
        )
        context_text = self._codec.serialize_context(context)
        candidates = self._policy.predict(context_text, None, POLICY_TASK)
        candidate, prediction = self._select_prediction(candidates, None)
        new_state = compute_new_state(state, prediction, Role.AGENT)

        return TurnOutcome(
            role=Role.AGENT,
            state=new_state,
            prediction=prediction,
            candidate=candidate,
            utterance=self._generate_utterance(context_text, prediction),
        )

    def run_full_turn(self, state: DialogueState, utterance: str) -> FullTurnResult:
        """ユーザーターン・実行・agent ターンを連続実行する。"""
        user_turn = self.run_user_turn(state, utterance)
        executed_state = self.execute_pending(user_turn.state)
        agent_turn = self.run_agent_turn(executed_state)
        return FullTurnResult(
            user_turn=user_turn,
            executed_state=executed_state,
            agent_turn=agent_turn,
        )

    def _select_prediction(
        self,
        candidates: Sequence[PredictionCandidate],
        entities: Mapping[str, object] | None,
    ) -> tuple[PredictionCandidate, Prediction]:
        valid_predictions = iter_valid_predictions(
            candidates,
            codec=self._codec,
            typechecker=self._typechecker,
            entities=entities,
        )
        selected = next(valid_predictions, None)
        if selected is None:
            raise NoValidCandidateError(f"有効な予測候補がありません: candidates={len(candidates)}")
        return selected

    def _generate_utterance(self, context_text: str, prediction: Prediction) -> str | None:
        if self._nlg is None:
            return None
        target = self._codec.serialize_prediction(prediction)
        candidates = self._nlg.predict(f"{context_text} {target}", NLG_QUESTION, NLG_TASK)
        if not candidates:
            return None
        return candidates[0].answer
