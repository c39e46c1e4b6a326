"""予測器・トークナイザとの受け渡しで使うエンティティ。"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class PredictionCandidate:
    """予測器が返すランク付き候補。"""

    answer: str
    score: float

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.answer.strip():
            raise ValueError("answer は空にできません。")

    @property
    def tokens(self) -> tuple[str, ...]:
        """answer を空白区切りのトークン列として返す。"""
        return tuple(self.answer.split(" "))


@dataclass(frozen=True, slots=True)
class TokenizerResult:
    """トークナイズ結果。数値や引用文字列は TYPE_n プレースホルダに置換済み。"""

    tokens: tuple[str, ...]
    raw_tokens: tuple[str, ...] = ()
    entities: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """配列フィールドを tuple に、entities を dict に正規化する。"""
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "raw_tokens", tuple(self.raw_tokens))
        object.__setattr__(self, "entities", dict(self.entities))
