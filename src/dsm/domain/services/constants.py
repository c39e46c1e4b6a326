"""状態中のリテラル抽出と、データ拡張用プレースホルダ定数の生成。"""

from __future__ import annotations

import re
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping
from datetime import date, timedelta
from itertools import count, islice

from dsm.domain.value_objects.constant import Constant
from dsm.domain.value_objects.dialogue_state import DialogueState, ProgramValue

_NON_CONSTANT_TYPES: tuple[str, ...] = ("Boolean", "Enum")
_MEASURE_PATTERN = re.compile(r"^Measure\((?P<unit>[^)]+)\)$")
_ENTITY_PATTERN = re.compile(r"^Entity\((?P<kind>[^)]+)\)$")
_STRING_ENTITY_TOKENS: Mapping[str, str] = {
    "tt:url": "URL",
    "tt:username": "USERNAME",
    "tt:hashtag": "HASHTAG",
    "tt:phone_number": "PHONE_NUMBER",
    "tt:email_address": "EMAIL_ADDRESS",
    "tt:path_name": "PATH_NAME",
    "tt:picture": "PICTURE",
}
_SIMPLE_TOKENS: Mapping[str, str] = {
    "Number": "NUMBER",
    "String": "QUOTED_STRING",
    "Currency": "CURRENCY",
    "Location": "LOCATION",
    "Date": "DATE",
    "Time": "TIME",
}
_HOURS_PER_DAY = 24
_BASE_DATE = date(2018, 1, 1)


def token_for_type(value_type: str) -> str | None:
    """意味型に対応するプレースホルダ種別を返す。定数にならない型は None。"""
    if value_type.startswith(_NON_CONSTANT_TYPES):
        return None
    if value_type in _SIMPLE_TOKENS:
        return _SIMPLE_TOKENS[value_type]

    measure_match = _MEASURE_PATTERN.match(value_type)
    if measure_match is not None:
        unit = measure_match.group("unit")
        return "DURATION" if unit == "ms" else f"MEASURE_{unit}"

    entity_match = _ENTITY_PATTERN.match(value_type)
    if entity_match is not None:
        kind = entity_match.group("kind")
        return _STRING_ENTITY_TOKENS.get(kind, f"GENERIC_ENTITY_{kind}")
    return None


def extract_constants(state: DialogueState) -> tuple[Constant, ...]:
    """状態内の全プログラムから重複のない定数を出現順に返す。"""
    seen: set[tuple[str, Hashable]] = set()
    constants: list[Constant] = []

    for value in _iter_state_values(state):
        token = token_for_type(value.type)
        if token is None:
            continue
        key = (value.type, _freeze(value.value))
        if key in seen:
            continue
        seen.add(key)
        constants.append(
            Constant(token=token, type=value.type, value=value.value, display=value.surface)
        )
    return tuple(constants)


def create_constants(token: str, value_type: str, max_constants: int) -> tuple[Constant, ...]:
    """token 種別のプレースホルダ定数を最大 max_constants 件生成する。"""
    if max_constants < 0:
        raise ValueError("max_constants は 0 以上である必要があります。")

    factory = _value_factory(token)
    if factory is None:
        return ()
    return tuple(
        Constant(token=token, type=value_type, value=value, display=f"{token}_{index}")
        for index, value in islice(enumerate(factory()), max_constants)
    )


def _iter_state_values(state: DialogueState) -> Iterator[ProgramValue]:
    for item in state.items:
        yield from item.program.iter_values()


def _value_factory(token: str) -> Callable[[], Iterable[object]] | None:
    if token == "NUMBER":
        return lambda: (2 + index for index in count())
    if token == "CURRENCY":
        return lambda: ({"value": 2 + index, "code": "usd"} for index in count())
    if token == "DURATION":
        return lambda: ({"value": 2 + index, "unit": "ms"} for index in count())
    if token.startswith("MEASURE_"):
        unit = token[len("MEASURE_") :]
        return lambda: ({"value": 2 + index, "unit": unit} for index in count())
    if token == "LOCATION":
        return lambda: (
            {"latitude": 2 + index, "longitude": 2 + index, "display": None} for index in count()
        )
    if token == "DATE":
        return lambda: (
            (_BASE_DATE + timedelta(days=1 + index)).isoformat() for index in count()
        )
    if token == "TIME":
        return lambda: ({"hour": hour, "minute": 0, "second": 0} for hour in range(_HOURS_PER_DAY))
    if token == "QUOTED_STRING" or token in _STRING_ENTITY_TOKENS.values():
        return lambda: (f"str:{token}::{index}:" for index in count())
    if token.startswith("GENERIC_ENTITY_"):
        kind = token[len("GENERIC_ENTITY_") :]
        return lambda: (f"str:ENTITY_{kind}::{index}:" for index in count())
    return None


def _freeze(value: object) -> Hashable:
    """dict/list を含む値を比較用の hashable に変換する。"""
    if isinstance(value, Mapping):
        return tuple(sorted((str(key), _freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value
