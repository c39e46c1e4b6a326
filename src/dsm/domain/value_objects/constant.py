"""データ拡張で使う定数の値オブジェクト。"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Constant:
    """リテラル値と意味型、プレースホルダ種別の組。"""

    token: str
    type: str
    value: object
    display: str
