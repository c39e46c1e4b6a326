"""プログラム構文コーデックの契約。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from dsm.domain.value_objects.dialogue_state import Program
from dsm.domain.value_objects.prediction import Prediction, PredictionContext


class ProgramSyntaxError(ValueError):
    """テキストをプログラム/予測として解釈できない場合の例外。"""


class ProgramCodecPort(Protocol):
    """プログラム・予測・文脈とテキスト表現を相互変換する抽象ポート。"""

    def parse(self, text: str, entities: Mapping[str, object] | None = None) -> Program:
        """テキストをプログラムへ変換する。"""

    def serialize(self, program: Program) -> str:
        """プログラムをテキストへ変換する。"""

    def parse_prediction(
        self,
        text: str,
        entities: Mapping[str, object] | None = None,
    ) -> Prediction:
        """予測器出力を差分へ変換する。"""

    def serialize_prediction(self, prediction: Prediction) -> str:
        """差分を予測器の学習ターゲット表現へ変換する。"""

    def serialize_context(self, context: PredictionContext) -> str:
        """予測用文脈を予測器入力へ変換する。"""
