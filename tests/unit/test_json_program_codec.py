import json

import pytest

from dsm.adapters.outbound.json_program_codec import JsonProgramCodecAdapter, state_to_payload
from dsm.domain.services.context_preparer import prepare_context_for_prediction
from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueAct,
    DialogueItem,
    DialogueState,
    Program,
    ProgramArgument,
    ProgramValue,
    ResultSet,
    Role,
)
from dsm.domain.value_objects.prediction import ItemUpdate, Prediction
from dsm.ports.outbound.program_codec_port import ProgramSyntaxError


def test_parse_resolves_placeholder_from_entities() -> None:
    codec = JsonProgramCodecAdapter()
    text = json.dumps(
        {
            "function": "find_restaurant",
            "arguments": [{"name": "party_size", "type": "Number", "placeholder": "NUMBER_0"}],
        }
    )

    program = codec.parse(text, {"NUMBER_0": 4})

    assert program == Program(
        function="find_restaurant",
        arguments=(ProgramArgument(name="party_size", value=ProgramValue(type="Number", value=4)),),
    )


def test_parse_rejects_undefined_placeholder() -> None:
    codec = JsonProgramCodecAdapter()
    text = json.dumps(
        {
            "function": "find_restaurant",
            "arguments": [{"name": "party_size", "type": "Number", "placeholder": "NUMBER_3"}],
        }
    )

    with pytest.raises(ProgramSyntaxError, match="NUMBER_3"):
        codec.parse(text, {"NUMBER_0": 4})


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        '{"arguments": []}',
        '{"function": "f", "arguments": {"name": "x"}}',
        '{"updates": [{"index": 0, "confirm": "maybe"}]}',
        '{"updates": [{"index": -1, "confirm": "accepted"}]}',
    ],
)
def test_malformed_text_raises_program_syntax_error(text: str) -> None:
    codec = JsonProgramCodecAdapter()

    with pytest.raises(ProgramSyntaxError):
        if "updates" in text:
            codec.parse_prediction(text)
        else:
            codec.parse(text)


def test_serialized_prediction_parses_back() -> None:
    codec = JsonProgramCodecAdapter()
    prediction = Prediction(
        updates=(
            ItemUpdate(
                index=0,
                confirm=ConfirmStatus.CONFIRMED,
                results=ResultSet(rows=({"temp": 72},)),
            ),
        ),
        new_items=(
            DialogueItem(
                program=Program(
                    function="set_alarm",
                    arguments=(
                        ProgramArgument(
                            name="time",
                            value=ProgramValue(type="Time", value={"hour": 7}, display="7 am"),
                        ),
                    ),
                ),
                confirm=ConfirmStatus.PROPOSED,
            ),
        ),
        dialogue_act=DialogueAct(name="sys_confirm", params=("time",)),
    )

    assert codec.parse_prediction(codec.serialize_prediction(prediction)) == prediction


def test_serialize_context_uses_masked_results() -> None:
    codec = JsonProgramCodecAdapter()
    state = DialogueState(
        items=(
            DialogueItem(
                program=Program(function="find_hotel"),
                confirm=ConfirmStatus.CONFIRMED,
                results=ResultSet(rows=tuple({"id": index} for index in range(5))),
            ),
        )
    )

    payload = json.loads(
        codec.serialize_context(prepare_context_for_prediction(state, Role.USER, max_result_rows=1))
    )

    assert payload["role"] == "user"
    assert payload["items"][0]["results"] == {
        "rows": [{"id": 0}],
        "count": 5,
        "more": True,
        "error": None,
    }


def test_state_to_payload_is_json_serializable() -> None:
    state = DialogueState(
        items=(DialogueItem(program=Program(function="get_current_weather"), confirm=ConfirmStatus.ACCEPTED),),
        dialogue_act=DialogueAct(name="sys_greet"),
    )

    payload = state_to_payload(state)

    assert json.loads(json.dumps(payload)) == {
        "dialogue_act": {"name": "sys_greet", "params": [], "policy": "default"},
        "items": [
            {
                "program": {"function": "get_current_weather", "arguments": []},
                "confirm": "accepted",
                "results": None,
            }
        ],
    }
