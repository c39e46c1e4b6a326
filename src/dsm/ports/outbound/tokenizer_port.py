"""トークナイザの契約。"""

from __future__ import annotations

from typing import Protocol

from dsm.domain.entities.candidate import TokenizerResult


class TokenizerPort(Protocol):
    """発話をトークン列とエンティティへ分解する抽象ポート。"""

    def tokenize(self, text: str) -> TokenizerResult:
        """トークナイズ結果を返す。"""
