"""予測器が出力する差分と予測器へ渡す文脈の値オブジェクト。"""

from __future__ import annotations

from dataclasses import dataclass

from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueAct,
    DialogueItem,
    Program,
    ResultSet,
    Role,
)


@dataclass(frozen=True, slots=True)
class ItemUpdate:
    """既存 item に対する確認状態の前進と結果付与。"""

    index: int
    confirm: ConfirmStatus | None = None
    results: ResultSet | None = None

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if self.index < 0:
            raise ValueError("index は 0 以上である必要があります。")
        if self.confirm is None and self.results is None:
            raise ValueError("confirm と results のどちらかは必要です。")


@dataclass(frozen=True, slots=True)
class Prediction:
    """旧状態から新状態を再構成するための最小差分。"""

    updates: tuple[ItemUpdate, ...] = ()
    new_items: tuple[DialogueItem, ...] = ()
    dialogue_act: DialogueAct | None = None

    def __post_init__(self) -> None:
        """配列フィールドを tuple に正規化する。"""
        object.__setattr__(self, "updates", tuple(self.updates))
        object.__setattr__(self, "new_items", tuple(self.new_items))

    @classmethod
    def empty(cls) -> Prediction:
        """何も変えない差分を返す。"""
        return cls()

    @property
    def is_empty(self) -> bool:
        """差分が空かどうかを返す。"""
        return not self.updates and not self.new_items and self.dialogue_act is None


@dataclass(frozen=True, slots=True)
class ContextItem:
    """予測器に見せる item の射影。"""

    program: Program
    confirm: ConfirmStatus
    results: ResultSet | None


@dataclass(frozen=True, slots=True)
class PredictionContext:
    """ロールごとにマスクした予測用文脈。"""

    role: Role
    items: tuple[ContextItem, ...]
    dialogue_act: DialogueAct | None
