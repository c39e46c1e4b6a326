"""予測器へ渡す文脈を状態から射影する。"""

from __future__ import annotations

from dsm.domain.value_objects.dialogue_state import DialogueItem, DialogueState, ResultSet, Role
from dsm.domain.value_objects.prediction import ContextItem, PredictionContext

DEFAULT_MAX_RESULT_ROWS = 3


def prepare_context_for_prediction(
    state: DialogueState,
    role: Role,
    *,
    max_result_rows: int = DEFAULT_MAX_RESULT_ROWS,
) -> PredictionContext:
    """role の予測器が参照してよい情報だけを残した文脈を返す。

    最新の実行結果以外は行を落として件数とエラーのみ残す。
    user 向けでは最新結果も max_result_rows 行までに切り詰める。
    """
    if max_result_rows < 0:
        raise ValueError("max_result_rows は 0 以上である必要があります。")

    last_executed = _last_executed_index(state)
    context_items = tuple(
        ContextItem(
            program=item.program,
            confirm=item.confirm,
            results=_mask_results(
                item.results,
                is_latest=index == last_executed,
                role=role,
                max_result_rows=max_result_rows,
            ),
        )
        for index, item in enumerate(state.items)
    )
    return PredictionContext(role=role, items=context_items, dialogue_act=state.dialogue_act)


def _last_executed_index(state: DialogueState) -> int | None:
    last: int | None = None
    for index, item in enumerate(state.items):
        if _is_executed(item):
            last = index
    return last


def _is_executed(item: DialogueItem) -> bool:
    return item.results is not None


def _mask_results(
    results: ResultSet | None,
    *,
    is_latest: bool,
    role: Role,
    max_result_rows: int,
) -> ResultSet | None:
    if results is None:
        return None
    if not is_latest:
        return results.summary()
    if role is Role.USER:
        return results.truncated(max_result_rows)
    return results
