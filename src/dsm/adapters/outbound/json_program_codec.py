"""プログラム・差分・文脈を JSON テキストで表現するコーデックアダプタ。"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueAct,
    DialogueItem,
    DialogueState,
    Program,
    ProgramArgument,
    ProgramValue,
    ResultSet,
)
from dsm.domain.value_objects.prediction import (
    ContextItem,
    ItemUpdate,
    Prediction,
    PredictionContext,
)
from dsm.ports.outbound.program_codec_port import ProgramCodecPort, ProgramSyntaxError

_T = TypeVar("_T")


class JsonProgramCodecAdapter(ProgramCodecPort):
    """JSON object をプログラム/差分の構文として扱う。

    引数値は {"type", "value", "display"} もしくは
    {"type", "placeholder": "NUMBER_0"} の形で、後者は entities から値を解決する。
    """

    def parse(self, text: str, entities: Mapping[str, object] | None = None) -> Program:
        """JSON テキストをプログラムへ変換する。"""
        payload = _load_object(text)
        return _convert(lambda: program_from_payload(payload, entities or {}))

    def serialize(self, program: Program) -> str:
        """プログラムを JSON テキストへ変換する。"""
        return _dump(program_to_payload(program))

    def parse_prediction(
        self,
        text: str,
        entities: Mapping[str, object] | None = None,
    ) -> Prediction:
        """JSON テキストを差分へ変換する。"""
        payload = _load_object(text)
        return _convert(lambda: prediction_from_payload(payload, entities or {}))

    def serialize_prediction(self, prediction: Prediction) -> str:
        """差分を JSON テキストへ変換する。"""
        return _dump(prediction_to_payload(prediction))

    def serialize_context(self, context: PredictionContext) -> str:
        """予測用文脈を JSON テキストへ変換する。"""
        return _dump(context_to_payload(context))


def program_to_payload(program: Program) -> dict[str, Any]:
    """プログラムを JSON 互換の辞書へ変換する。"""
    return {
        "function": program.function,
        "arguments": [
            {
                "name": argument.name,
                "type": argument.value.type,
                "value": argument.value.value,
                "display": argument.value.display,
            }
            for argument in program.arguments
        ],
    }


def results_to_payload(results: ResultSet | None) -> dict[str, Any] | None:
    """実行結果を JSON 互換の辞書へ変換する。"""
    if results is None:
        return None
    return {
        "rows": [dict(row) for row in results.rows],
        "count": results.count,
        "more": results.more,
        "error": results.error,
    }


def dialogue_act_to_payload(dialogue_act: DialogueAct | None) -> dict[str, Any] | None:
    """対話行為を JSON 互換の辞書へ変換する。"""
    if dialogue_act is None:
        return None
    return {
        "name": dialogue_act.name,
        "params": list(dialogue_act.params),
        "policy": dialogue_act.policy,
    }


def item_to_payload(item: DialogueItem | ContextItem) -> dict[str, Any]:
    """item を JSON 互換の辞書へ変換する。"""
    return {
        "program": program_to_payload(item.program),
        "confirm": str(item.confirm),
        "results": results_to_payload(item.results),
    }


def state_to_payload(state: DialogueState) -> dict[str, Any]:
    """対話状態を JSON 互換の辞書へ変換する。"""
    return {
        "dialogue_act": dialogue_act_to_payload(state.dialogue_act),
        "items": [item_to_payload(item) for item in state.items],
    }


def prediction_to_payload(prediction: Prediction) -> dict[str, Any]:
    """差分を JSON 互換の辞書へ変換する。"""
    return {
        "updates": [
            {
                "index": update.index,
                "confirm": str(update.confirm) if update.confirm is not None else None,
                "results": results_to_payload(update.results),
            }
            for update in prediction.updates
        ],
        "new_items": [item_to_payload(item) for item in prediction.new_items],
        "dialogue_act": dialogue_act_to_payload(prediction.dialogue_act),
    }


def context_to_payload(context: PredictionContext) -> dict[str, Any]:
    """予測用文脈を JSON 互換の辞書へ変換する。"""
    return {
        "role": str(context.role),
        "dialogue_act": dialogue_act_to_payload(context.dialogue_act),
        "items": [item_to_payload(item) for item in context.items],
    }


def program_from_payload(payload: Mapping[str, Any], entities: Mapping[str, object]) -> Program:
    """辞書からプログラムを復元する。"""
    arguments = tuple(
        ProgramArgument(name=argument["name"], value=_value_from_payload(argument, entities))
        for argument in _as_list(payload.get("arguments", []), field_name="arguments")
    )
    return Program(function=payload["function"], arguments=arguments)


def prediction_from_payload(
    payload: Mapping[str, Any],
    entities: Mapping[str, object],
) -> Prediction:
    """辞書から差分を復元する。"""
    updates = tuple(
        ItemUpdate(
            index=update["index"],
            confirm=_confirm_or_none(update.get("confirm")),
            results=_results_from_payload(update.get("results")),
        )
        for update in _as_list(payload.get("updates", []), field_name="updates")
    )
    new_items = tuple(
        DialogueItem(
            program=program_from_payload(item["program"], entities),
            confirm=ConfirmStatus(item["confirm"]),
            results=_results_from_payload(item.get("results")),
        )
        for item in _as_list(payload.get("new_items", []), field_name="new_items")
    )
    return Prediction(
        updates=updates,
        new_items=new_items,
        dialogue_act=_dialogue_act_from_payload(payload.get("dialogue_act")),
    )


def _value_from_payload(argument: Mapping[str, Any], entities: Mapping[str, object]) -> ProgramValue:
    placeholder = argument.get("placeholder")
    if placeholder is None:
        return ProgramValue(
            type=argument["type"],
            value=argument["value"],
            display=argument.get("display"),
        )
    if placeholder not in entities:
        raise ProgramSyntaxError(f"未定義のエンティティを参照しています: {placeholder}")
    return ProgramValue(type=argument["type"], value=entities[placeholder])


def _results_from_payload(payload: Mapping[str, Any] | None) -> ResultSet | None:
    if payload is None:
        return None
    return ResultSet(
        rows=tuple(dict(row) for row in _as_list(payload.get("rows", []), field_name="rows")),
        count=payload.get("count"),
        more=bool(payload.get("more", False)),
        error=payload.get("error"),
    )


def _dialogue_act_from_payload(payload: Mapping[str, Any] | None) -> DialogueAct | None:
    if payload is None:
        return None
    return DialogueAct(
        name=payload["name"],
        params=tuple(_as_list(payload.get("params", []), field_name="params")),
        policy=payload.get("policy", "default"),
    )


def _confirm_or_none(value: str | None) -> ConfirmStatus | None:
    if value is None:
        return None
    return ConfirmStatus(value)


def _as_list(value: object, *, field_name: str) -> Sequence[Any]:
    if not isinstance(value, list):
        raise ProgramSyntaxError(f"{field_name} は配列である必要があります。")
    return value


def _convert(build: Callable[[], _T]) -> _T:
    try:
        return build()
    except ProgramSyntaxError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ProgramSyntaxError(f"構文が不正です: {exc.__class__.__name__}: {exc}") from exc


def _load_object(text: str) -> Mapping[str, Any]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProgramSyntaxError("JSON のパースに失敗しました。") from exc
    if not isinstance(payload, dict):
        raise ProgramSyntaxError("JSON object ではありません。")
    return payload


def _dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)
