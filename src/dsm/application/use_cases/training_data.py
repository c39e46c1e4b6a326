"""記録済み対話から予測器の学習例を構築するユースケース。"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from dsm.domain.services.constants import create_constants, extract_constants
from dsm.domain.services.context_preparer import (
    DEFAULT_MAX_RESULT_ROWS,
    prepare_context_for_prediction,
)
from dsm.domain.services.state_differ import compute_prediction
from dsm.domain.value_objects.constant import Constant
from dsm.domain.value_objects.dialogue_state import DialogueState, Role
from dsm.ports.outbound.program_codec_port import ProgramCodecPort


@dataclass(frozen=True, slots=True)
class DialogueTurnRecord:
    """role のターン終了時点の状態。

    base_state は予測器が文脈として見た状態で、未指定なら直前の記録の state を使う。
    agent ターンではプログラム実行後の状態を指定する。
    """

    role: Role
    state: DialogueState
    base_state: DialogueState | None = None


@dataclass(frozen=True, slots=True)
class TrainingExample:
    """1ターン分の (文脈, 差分) 学習例。"""

    turn_index: int
    role: Role
    context: str
    target: str
    constants: tuple[Constant, ...]


class TrainingDataUseCase:
    """状態差分を教師信号に変換する。"""

    def __init__(
        self,
        codec: ProgramCodecPort,
        *,
        max_result_rows: int = DEFAULT_MAX_RESULT_ROWS,
    ) -> None:
        """コーデックと文脈の結果行上限を受け取る。"""
        self._codec = codec
        self._max_result_rows = max_result_rows

    def build_examples(
        self,
        turns: Sequence[DialogueTurnRecord],
        *,
        initial_state: DialogueState | None = None,
    ) -> tuple[TrainingExample, ...]:
        """各ターンの基準状態から文脈を、基準→直後の差分からターゲットを作る。"""
        old_state = initial_state or DialogueState.empty()
        examples: list[TrainingExample] = []

        for turn_index, turn in enumerate(turns):
            if turn.base_state is not None:
                old_state = turn.base_state
            context = prepare_context_for_prediction(
                old_state,
                turn.role,
                max_result_rows=self._max_result_rows,
            )
            prediction = compute_prediction(old_state, turn.state, turn.role)
            examples.append(
                TrainingExample(
                    turn_index=turn_index,
                    role=turn.role,
                    context=self._codec.serialize_context(context),
                    target=self._codec.serialize_prediction(prediction),
                    constants=extract_constants(turn.state),
                )
            )
            old_state = turn.state

        return tuple(examples)

    def sample_placeholders(
        self,
        example: TrainingExample,
        max_constants: int,
    ) -> dict[str, tuple[Constant, ...]]:
        """学習例に現れた定数種別ごとに置換候補のプレースホルダ定数を返す。"""
        placeholders: dict[str, tuple[Constant, ...]] = {}
        for constant in example.constants:
            if constant.token in placeholders:
                continue
            placeholders[constant.token] = create_constants(
                constant.token,
                constant.type,
                max_constants,
            )
        return placeholders
