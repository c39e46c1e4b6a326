"""系列予測器呼び出しの契約。"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from dsm.domain.entities.candidate import PredictionCandidate


class PredictorPort(Protocol):
    """文脈と質問から候補をスコア順に返す抽象ポート。"""

    def predict(
        self,
        context: str,
        question: str | None,
        task: str,
    ) -> Sequence[PredictionCandidate]:
        """スコア降順の候補列を返す。"""
