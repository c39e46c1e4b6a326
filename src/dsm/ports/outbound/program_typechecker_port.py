"""プログラム型検査の契約。"""

from __future__ import annotations

from typing import Protocol

from dsm.domain.value_objects.dialogue_state import Program


class ProgramTypeError(ValueError):
    """プログラムがスキーマに適合しない場合の例外。"""


class ProgramTypecheckerPort(Protocol):
    """スキーマレジストリに対してプログラムを検査する抽象ポート。"""

    def typecheck(self, program: Program) -> None:
        """不適合なら ProgramTypeError を送出する。"""
