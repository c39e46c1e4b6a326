import pytest

from dsm.domain.services.state_validator import validate_state
from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueItem,
    DialogueState,
    Program,
    ResultSet,
    Role,
    StateInvariantViolation,
)


def _item(confirm: ConfirmStatus, results: ResultSet | None = None) -> DialogueItem:
    return DialogueItem(
        program=Program(function="get_current_weather"),
        confirm=confirm,
        results=results,
    )


def test_empty_state_is_valid_for_both_roles() -> None:
    validate_state(DialogueState.empty(), Role.USER)
    validate_state(DialogueState.empty(), Role.AGENT)


def test_user_state_rejects_proposed_item() -> None:
    state = DialogueState(items=(_item(ConfirmStatus.PROPOSED),))

    with pytest.raises(StateInvariantViolation, match="proposed"):
        validate_state(state, Role.USER)


def test_agent_state_allows_proposed_item() -> None:
    state = DialogueState(items=(_item(ConfirmStatus.PROPOSED),))

    validate_state(state, Role.AGENT)


def test_agent_state_rejects_confirmed_item_without_results() -> None:
    state = DialogueState(items=(_item(ConfirmStatus.CONFIRMED),))

    with pytest.raises(StateInvariantViolation, match="confirmed"):
        validate_state(state, Role.AGENT)


def test_user_state_allows_confirmed_item_without_results() -> None:
    state = DialogueState(items=(_item(ConfirmStatus.CONFIRMED),))

    validate_state(state, Role.USER)


def test_confirmed_item_with_results_is_valid_for_agent() -> None:
    state = DialogueState(
        items=(_item(ConfirmStatus.CONFIRMED, ResultSet(rows=({"temp": 72},))),)
    )

    validate_state(state, Role.AGENT)


def test_violation_message_contains_offending_index() -> None:
    state = DialogueState(
        items=(
            _item(ConfirmStatus.ACCEPTED),
            _item(ConfirmStatus.PROPOSED),
        )
    )

    with pytest.raises(StateInvariantViolation) as exc_info:
        validate_state(state, Role.USER)

    assert "index=1" in str(exc_info.value)


def test_confirm_status_order_is_forward_only() -> None:
    assert ConfirmStatus.PROPOSED.can_advance_to(ConfirmStatus.ACCEPTED)
    assert ConfirmStatus.ACCEPTED.can_advance_to(ConfirmStatus.CONFIRMED)
    assert ConfirmStatus.CONFIRMED.can_advance_to(ConfirmStatus.CONFIRMED)
    assert not ConfirmStatus.CONFIRMED.can_advance_to(ConfirmStatus.ACCEPTED)
    assert not ConfirmStatus.ACCEPTED.can_advance_to(ConfirmStatus.PROPOSED)
