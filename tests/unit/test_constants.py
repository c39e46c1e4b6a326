import pytest

from dsm.domain.services.constants import create_constants, extract_constants, token_for_type
from dsm.domain.value_objects.dialogue_state import (
    ConfirmStatus,
    DialogueItem,
    DialogueState,
    Program,
    ProgramArgument,
    ProgramValue,
)


def _item(*arguments: tuple[str, ProgramValue]) -> DialogueItem:
    return DialogueItem(
        program=Program(
            function="find_restaurant",
            arguments=tuple(ProgramArgument(name=name, value=value) for name, value in arguments),
        ),
        confirm=ConfirmStatus.ACCEPTED,
    )


def test_token_for_type_maps_semantic_types() -> None:
    assert token_for_type("Number") == "NUMBER"
    assert token_for_type("String") == "QUOTED_STRING"
    assert token_for_type("Measure(ms)") == "DURATION"
    assert token_for_type("Measure(C)") == "MEASURE_C"
    assert token_for_type("Entity(tt:url)") == "URL"
    assert token_for_type("Entity(org:restaurant)") == "GENERIC_ENTITY_org:restaurant"
    assert token_for_type("Boolean") is None
    assert token_for_type("Enum(low,high)") is None


def test_extract_constants_returns_distinct_values_in_order() -> None:
    state = DialogueState(
        items=(
            _item(
                ("cuisine", ProgramValue(type="String", value="thai")),
                ("party_size", ProgramValue(type="Number", value=4)),
                ("outdoor", ProgramValue(type="Boolean", value=True)),
            ),
            _item(
                ("cuisine", ProgramValue(type="String", value="thai")),
                ("location", ProgramValue(
                    type="Location",
                    value={"latitude": 1.0, "longitude": 2.0},
                    display="palo alto",
                )),
            ),
        )
    )

    constants = extract_constants(state)

    assert [(constant.token, constant.value) for constant in constants] == [
        ("QUOTED_STRING", "thai"),
        ("NUMBER", 4),
        ("LOCATION", {"latitude": 1.0, "longitude": 2.0}),
    ]
    assert constants[2].display == "palo alto"
    assert constants[1].display == "4"


def test_extract_constants_of_empty_state_is_empty() -> None:
    assert extract_constants(DialogueState.empty()) == ()


def test_create_constants_is_capped_and_tagged() -> None:
    constants = create_constants("NUMBER", "Number", 5)

    assert len(constants) == 5
    assert all(constant.token == "NUMBER" and constant.type == "Number" for constant in constants)
    assert [constant.value for constant in constants] == [2, 3, 4, 5, 6]
    assert [constant.display for constant in constants][:2] == ["NUMBER_0", "NUMBER_1"]


def test_create_constants_stops_at_available_count() -> None:
    assert len(create_constants("TIME", "Time", 100)) == 24
    assert create_constants("UNKNOWN_TOKEN", "Unknown", 10) == ()
    assert create_constants("NUMBER", "Number", 0) == ()


def test_create_constants_generates_type_specific_values() -> None:
    assert create_constants("DATE", "Date", 2)[1].value == "2018-01-03"
    assert create_constants("MEASURE_C", "Measure(C)", 1)[0].value == {"value": 2, "unit": "C"}
    assert create_constants("QUOTED_STRING", "String", 1)[0].value == "str:QUOTED_STRING::0:"
    assert (
        create_constants("GENERIC_ENTITY_org:restaurant", "Entity(org:restaurant)", 1)[0].value
        == "str:ENTITY_org:restaurant::0:"
    )


def test_create_constants_rejects_negative_count() -> None:
    with pytest.raises(ValueError):
        create_constants("NUMBER", "Number", -1)
