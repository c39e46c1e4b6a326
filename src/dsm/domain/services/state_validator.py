"""ロール依存の状態不変条件を検証する。"""

from __future__ import annotations

from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueState,
    Role,
    StateInvariantViolation,
)


def validate_state(state: DialogueState, role: Role) -> None:
    """state が role の不変条件を満たさなければ StateInvariantViolation を送出する。

    user: proposed の item を含まない。
    agent: confirmed かつ results 未設定の item を含まない。
    """
    if role is Role.USER:
        for index, item in enumerate(state.items):
            if item.confirm is ConfirmStatus.PROPOSED:
                raise StateInvariantViolation(
                    f"user 向け状態に proposed の item があります: index={index}"
                    f" function={item.program.function}"
                )
    elif role is Role.AGENT:
        for index, item in enumerate(state.items):
            if item.confirm is ConfirmStatus.CONFIRMED and item.results is None:
                raise StateInvariantViolation(
                    f"agent 向け状態に未実行の confirmed item があります: index={index}"
                    f" function={item.program.function}"
                )
    else:
        raise ValueError(f"未対応の role です: {role!r}")
