"""予測（差分）を旧状態へ適用して新状態を構築する。"""

from __future__ import annotations

from dsm.domain.services.state_validator import validate_state
from dsm.domain.value_objects.dialogue_state import (
    DialogueItem,
    DialogueState,
    IllegalTransitionError,
    Role,
)
from dsm.domain.value_objects.prediction import Prediction


def compute_new_state(
    old_state: DialogueState,
    prediction: Prediction,
    role: Role,
) -> DialogueState:
    """prediction を old_state に適用し、role の不変条件を満たす新状態を返す。

    confirm の後退・設定済み results の上書き・範囲外 index は
    IllegalTransitionError、結果状態の不変条件違反は StateInvariantViolation として送出する。
    """
    items: list[DialogueItem] = list(old_state.items)
    updated_indices: set[int] = set()

    for update in prediction.updates:
        if update.index >= len(items):
            raise IllegalTransitionError(
                f"存在しない item への更新です: index={update.index} size={len(items)}"
            )
        if update.index in updated_indices:
            raise IllegalTransitionError(f"index={update.index} への更新が重複しています。")
        updated_indices.add(update.index)
        items[update.index] = items[update.index].advance(
            confirm=update.confirm,
            results=update.results,
        )

    items.extend(prediction.new_items)
    new_state = DialogueState(
        items=tuple(items),
        dialogue_act=prediction.dialogue_act or old_state.dialogue_act,
    )
    validate_state(new_state, role)
    return new_state
