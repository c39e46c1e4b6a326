"""旧状態から新状態への遷移を説明する最小差分を計算する。"""

from __future__ import annotations

from dsm.domain.services.state_validator import validate_state
from dsm.domain.value_objects.dialogue_state import (
    DialogueItem,
    DialogueState,
    IllegalTransitionError,
    Role,
)
from dsm.domain.value_objects.prediction import ItemUpdate, Prediction


def compute_prediction(
    old_state: DialogueState,
    new_state: DialogueState,
    role: Role,
) -> Prediction:
    """role のターンで old_state を new_state にした予測（差分）を返す。

    予測器の学習ターゲットとなる符号化であり、
    compute_new_state(old_state, 結果, role) == new_state が成り立つ。
    同じ位置の program が変わる遷移は正当な差分ではないため拒否する。
    """
    old_items = old_state.items
    new_items = new_state.items
    if len(new_items) < len(old_items):
        raise IllegalTransitionError(
            f"item を削除する遷移は表現できません: old={len(old_items)} new={len(new_items)}"
        )

    updates: list[ItemUpdate] = []
    for index, (old_item, new_item) in enumerate(zip(old_items, new_items)):
        update = _diff_item(index, old_item, new_item)
        if update is not None:
            updates.append(update)

    dialogue_act = None
    if new_state.dialogue_act != old_state.dialogue_act:
        if new_state.dialogue_act is None:
            raise IllegalTransitionError("dialogue_act を消去する遷移は表現できません。")
        dialogue_act = new_state.dialogue_act

    validate_state(new_state, role)
    return Prediction(
        updates=tuple(updates),
        new_items=new_items[len(old_items) :],
        dialogue_act=dialogue_act,
    )


def _diff_item(index: int, old_item: DialogueItem, new_item: DialogueItem) -> ItemUpdate | None:
    if new_item.program != old_item.program:
        raise IllegalTransitionError(
            f"index={index} の program が変更されています。変更後のプログラムは新しい item として追加してください。"
        )
    if not old_item.confirm.can_advance_to(new_item.confirm):
        raise IllegalTransitionError(
            f"index={index} の confirm が {old_item.confirm} から {new_item.confirm} へ後退しています。"
        )
    if old_item.results is not None and new_item.results != old_item.results:
        raise IllegalTransitionError(f"index={index} の results は設定後に変更できません。")

    confirm = new_item.confirm if new_item.confirm is not old_item.confirm else None
    results = new_item.results if old_item.results is None else None
    if confirm is None and results is None:
        return None
    return ItemUpdate(index=index, confirm=confirm, results=results)
