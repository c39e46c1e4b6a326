"""プログラム実行の契約。"""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol

from dsm.domain.value_objects.dialogue_state import Program, ResultSet


class ExecutionErrorKind(StrEnum):
    """実行失敗の分類。"""

    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    RUNTIME_ERROR = "runtime-error"
    TIMEOUT = "timeout"


class ExecutionError(RuntimeError):
    """プログラムを実行できなかった場合の例外。"""

    def __init__(self, kind: ExecutionErrorKind, message: str) -> None:
        """失敗分類とメッセージを受け取る。"""
        super().__init__(message)
        self.kind = kind


class ProgramExecutorPort(Protocol):
    """プログラムを実行またはシミュレートする抽象ポート。"""

    def execute(self, program: Program) -> ResultSet:
        """実行結果を返す。失敗時は ExecutionError を送出する。"""
