"""対話状態を構成する値オブジェクト群。"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from enum import StrEnum


class Role(StrEnum):
    """状態を生成した話者。"""

    USER = "user"
    AGENT = "agent"


class ConfirmStatus(StrEnum):
    """DialogueItem の確認状態。proposed → accepted → confirmed の順にのみ進む。"""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"

    @property
    def rank(self) -> int:
        """前進順序上の位置を返す。"""
        return _CONFIRM_ORDER.index(self)

    def can_advance_to(self, other: ConfirmStatus) -> bool:
        """other が同じか後ろの状態であれば True を返す。"""
        return other.rank >= self.rank


_CONFIRM_ORDER: tuple[ConfirmStatus, ...] = (
    ConfirmStatus.PROPOSED,
    ConfirmStatus.ACCEPTED,
    ConfirmStatus.CONFIRMED,
)


class DialogueStateError(ValueError):
    """対話状態の操作に関する例外の基底。"""


class StateInvariantViolation(DialogueStateError):
    """ロール依存の状態不変条件違反を表す例外。"""


class IllegalTransitionError(StateInvariantViolation):
    """どの正当なターンでも生じ得ない状態遷移を表す例外。"""


@dataclass(frozen=True, slots=True)
class ProgramValue:
    """プログラム中のリテラル値と意味型。"""

    type: str
    value: object
    display: str | None = None

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.type:
            raise ValueError("type は空にできません。")

    @property
    def surface(self) -> str:
        """表示用の表層形を返す。"""
        if self.display is not None:
            return self.display
        return str(self.value)


@dataclass(frozen=True, slots=True)
class ProgramArgument:
    """名前付き入力引数。"""

    name: str
    value: ProgramValue

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.name:
            raise ValueError("name は空にできません。")


@dataclass(frozen=True, slots=True)
class Program:
    """オントロジー上のコマンド/クエリ。コアは等価比較とリテラル列挙にのみ使う。"""

    function: str
    arguments: tuple[ProgramArgument, ...] = ()

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.function:
            raise ValueError("function は空にできません。")
        object.__setattr__(self, "arguments", tuple(self.arguments))

    def iter_values(self) -> Iterator[ProgramValue]:
        """引数のリテラル値を出現順に返す。"""
        for argument in self.arguments:
            yield argument.value

    def argument_map(self) -> dict[str, object]:
        """引数名から生の値への辞書を返す。"""
        return {argument.name: argument.value.value for argument in self.arguments}


@dataclass(frozen=True, slots=True)
class ResultSet:
    """プログラム実行結果。"""

    rows: tuple[Mapping[str, object], ...] = ()
    count: int | None = None
    more: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        """count を正規化して整合性を検証する。"""
        object.__setattr__(self, "rows", tuple(self.rows))
        if self.count is None:
            object.__setattr__(self, "count", len(self.rows))
        if self.count < len(self.rows):
            raise ValueError("count は rows 件数以上である必要があります。")

    @classmethod
    def failed(cls, error: str) -> ResultSet:
        """実行失敗を表す空の結果を返す。"""
        return cls(rows=(), count=0, more=False, error=error)

    def summary(self) -> ResultSet:
        """行を落として件数とエラーだけを残した結果を返す。"""
        return replace(self, rows=())

    def truncated(self, max_rows: int) -> ResultSet:
        """先頭 max_rows 行に切り詰めた結果を返す。"""
        if len(self.rows) <= max_rows:
            return self
        return replace(self, rows=self.rows[:max_rows], more=True)


@dataclass(frozen=True, slots=True)
class DialogueAct:
    """ターンに付随する対話行為。"""

    name: str
    params: tuple[str, ...] = ()
    policy: str = "default"

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.name:
            raise ValueError("name は空にできません。")
        object.__setattr__(self, "params", tuple(self.params))


@dataclass(frozen=True, slots=True)
class DialogueItem:
    """1つのプログラムと確認状態・実行結果の組。"""

    program: Program
    confirm: ConfirmStatus
    results: ResultSet | None = None

    def advance(
        self,
        *,
        confirm: ConfirmStatus | None = None,
        results: ResultSet | None = None,
    ) -> DialogueItem:
        """確認状態の前進と結果付与を適用した新しい item を返す。"""
        next_confirm = self.confirm
        if confirm is not None:
            if not self.confirm.can_advance_to(confirm):
                raise IllegalTransitionError(
                    f"confirm を {self.confirm} から {confirm} へ戻すことはできません。"
                )
            next_confirm = confirm

        next_results = self.results
        if results is not None:
            if self.results is not None:
                raise IllegalTransitionError(
                    f"{self.program.function} の results は既に設定済みです。"
                )
            next_results = results

        return DialogueItem(program=self.program, confirm=next_confirm, results=next_results)


@dataclass(frozen=True, slots=True)
class DialogueState:
    """ターン順に並んだ DialogueItem 列と直近の対話行為。"""

    items: tuple[DialogueItem, ...] = ()
    dialogue_act: DialogueAct | None = None

    def __post_init__(self) -> None:
        """items を tuple に正規化する。"""
        object.__setattr__(self, "items", tuple(self.items))

    @classmethod
    def empty(cls) -> DialogueState:
        """対話開始時の空状態を返す。"""
        return cls(items=(), dialogue_act=None)
