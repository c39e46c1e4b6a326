"""外部協調者の in-memory 実装群。"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from dsm.domain.entities.candidate import PredictionCandidate, TokenizerResult
from dsm.domain.value_objects.dialogue_state import Program, ResultSet
from dsm.ports.outbound.predictor_port import PredictorPort
from dsm.ports.outbound.program_executor_port import (
    ExecutionError,
    ExecutionErrorKind,
    ProgramExecutorPort,
)
from dsm.ports.outbound.program_typechecker_port import (
    ProgramTypeError,
    ProgramTypecheckerPort,
)
from dsm.ports.outbound.tokenizer_port import TokenizerPort

_TOKEN_PATTERN = re.compile(
    r'"(?P<quoted>[^"]*)"|(?P<number>-?[0-9]+(?:\.[0-9]+)?)|(?P<word>\w+)|(?P<punct>[^\w\s])'
)

ProgramHandler = Callable[[Mapping[str, object]], Sequence[Mapping[str, object]]]
PredictorResponder = Callable[[str, str | None, str], Sequence[PredictionCandidate]]


class SimpleTokenizerAdapter(TokenizerPort):
    """数値と引用文字列をプレースホルダへ置換する簡易トークナイザ。"""

    def tokenize(self, text: str) -> TokenizerResult:
        """小文字化した語と NUMBER_n / QUOTED_STRING_n からなるトークン列を返す。"""
        tokens: list[str] = []
        raw_tokens: list[str] = []
        entities: dict[str, object] = {}

        for match in _TOKEN_PATTERN.finditer(text):
            raw_tokens.append(match.group(0))
            if match.group("quoted") is not None:
                tokens.append(_entity_name(entities, "QUOTED_STRING", match.group("quoted").strip()))
            elif match.group("number") is not None:
                tokens.append(_entity_name(entities, "NUMBER", _parse_number(match.group("number"))))
            else:
                tokens.append(match.group(0).lower())

        return TokenizerResult(tokens=tokens, raw_tokens=raw_tokens, entities=entities)


class InMemorySchemaRegistryAdapter(ProgramTypecheckerPort):
    """関数名→引数名→型の表でプログラムを検査するスキーマレジストリ。"""

    def __init__(self, schemas: Mapping[str, Mapping[str, str]]) -> None:
        """関数スキーマ表を受け取る。"""
        self._schemas = {function: dict(arguments) for function, arguments in schemas.items()}

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemorySchemaRegistryAdapter:
        """JSON ファイルからスキーマ表を読み込む。"""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"スキーマファイルが JSON object ではありません: {path}")
        return cls(payload)

    def typecheck(self, program: Program) -> None:
        """未知の関数・引数や型不一致があれば ProgramTypeError を送出する。"""
        schema = self._schemas.get(program.function)
        if schema is None:
            raise ProgramTypeError(f"未知の関数です: {program.function}")

        for argument in program.arguments:
            expected_type = schema.get(argument.name)
            if expected_type is None:
                raise ProgramTypeError(f"{program.function} に引数 {argument.name} はありません。")
            if argument.value.type != expected_type:
                raise ProgramTypeError(
                    f"{program.function}.{argument.name} の型が一致しません:"
                    f" expected={expected_type} actual={argument.value.type}"
                )


class SimulatedProgramExecutorAdapter(ProgramExecutorPort):
    """関数名ごとのハンドラでプログラム実行をシミュレートする。"""

    def __init__(
        self,
        handlers: Mapping[str, ProgramHandler] | None = None,
        *,
        max_rows: int | None = None,
    ) -> None:
        """ハンドラ表と結果行の上限を受け取る。"""
        if max_rows is not None and max_rows < 1:
            raise ValueError("max_rows は 1 以上である必要があります。")
        self._handlers = dict(handlers or {})
        self._max_rows = max_rows

    def execute(self, program: Program) -> ResultSet:
        """ハンドラの戻り値を ResultSet に変換する。例外は ExecutionError に分類する。"""
        handler = self._handlers.get(program.function)
        if handler is None:
            raise ExecutionError(ExecutionErrorKind.NOT_FOUND, f"未登録の関数です: {program.function}")

        try:
            rows = tuple(dict(row) for row in handler(program.argument_map()))
        except ExecutionError:
            raise
        except PermissionError as exc:
            raise ExecutionError(ExecutionErrorKind.PERMISSION_DENIED, str(exc)) from exc
        except TimeoutError as exc:
            raise ExecutionError(ExecutionErrorKind.TIMEOUT, str(exc)) from exc
        except Exception as exc:
            raise ExecutionError(
                ExecutionErrorKind.RUNTIME_ERROR,
                f"{exc.__class__.__name__}: {exc}",
            ) from exc

        if self._max_rows is not None and len(rows) > self._max_rows:
            return ResultSet(rows=rows[: self._max_rows], count=len(rows), more=True)
        return ResultSet(rows=rows)


class CallablePredictorAdapter(PredictorPort):
    """応答関数で候補を返すオフライン予測器。呼び出し履歴を保持する。"""

    def __init__(self, responder: PredictorResponder) -> None:
        """候補を生成する応答関数を受け取る。"""
        self._responder = responder
        self.calls: list[tuple[str, str | None, str]] = []

    def predict(
        self,
        context: str,
        question: str | None,
        task: str,
    ) -> Sequence[PredictionCandidate]:
        """応答関数の候補をスコア降順で返す。"""
        self.calls.append((context, question, task))
        candidates = self._responder(context, question, task)
        return tuple(sorted(candidates, key=lambda candidate: candidate.score, reverse=True))


def _entity_name(entities: dict[str, object], entity_type: str, value: object) -> str:
    """同値なら既存名を返し、なければ次の番号で登録する。"""
    for name, existing in entities.items():
        if name.startswith(f"{entity_type}_") and existing == value:
            return name
    index = sum(1 for name in entities if name.startswith(f"{entity_type}_"))
    name = f"{entity_type}_{index}"
    entities[name] = value
    return name


def _parse_number(text: str) -> int | float:
    if "." in text:
        return float(text)
    return int(text)
