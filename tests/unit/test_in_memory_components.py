import json
from collections.abc import Mapping

import pytest

from dsm.adapters.outbound.in_memory_components import (
    CallablePredictorAdapter,
    InMemorySchemaRegistryAdapter,
    SimpleTokenizerAdapter,
    SimulatedProgramExecutorAdapter,
)
from dsm.domain.entities.candidate import PredictionCandidate
from dsm.domain.value_objects.dialogue_state import Program, ProgramArgument, ProgramValue
from dsm.ports.outbound.program_executor_port import ExecutionError, ExecutionErrorKind
from dsm.ports.outbound.program_typechecker_port import ProgramTypeError


def _restaurant(party_size: ProgramValue) -> Program:
    return Program(
        function="find_restaurant",
        arguments=(ProgramArgument(name="party_size", value=party_size),),
    )


def test_tokenizer_replaces_numbers_and_quoted_strings() -> None:
    tokenizer = SimpleTokenizerAdapter()

    result = tokenizer.tokenize('Book "Thai Palace" for 4 at 7, not 4.5')

    assert result.tokens == (
        "book", "QUOTED_STRING_0", "for", "NUMBER_0", "at", "NUMBER_1", ",", "not", "NUMBER_2",
    )
    assert result.entities == {
        "QUOTED_STRING_0": "Thai Palace",
        "NUMBER_0": 4,
        "NUMBER_1": 7,
        "NUMBER_2": 4.5,
    }
    assert result.raw_tokens[1] == '"Thai Palace"'


def test_tokenizer_reuses_name_for_repeated_value() -> None:
    result = SimpleTokenizerAdapter().tokenize("4 or 4")

    assert result.tokens == ("NUMBER_0", "or", "NUMBER_0")
    assert result.entities == {"NUMBER_0": 4}


def test_schema_registry_accepts_well_typed_program() -> None:
    registry = InMemorySchemaRegistryAdapter({"find_restaurant": {"party_size": "Number"}})

    registry.typecheck(_restaurant(ProgramValue(type="Number", value=4)))


def test_schema_registry_rejects_unknown_function_argument_and_type() -> None:
    registry = InMemorySchemaRegistryAdapter({"find_restaurant": {"party_size": "Number"}})

    with pytest.raises(ProgramTypeError, match="未知の関数"):
        registry.typecheck(Program(function="book_flight"))
    with pytest.raises(ProgramTypeError, match="cuisine"):
        registry.typecheck(
            Program(
                function="find_restaurant",
                arguments=(ProgramArgument(name="cuisine", value=ProgramValue(type="String", value="thai")),),
            )
        )
    with pytest.raises(ProgramTypeError, match="型が一致しません"):
        registry.typecheck(_restaurant(ProgramValue(type="String", value="four")))


def test_schema_registry_loads_from_json_file(tmp_path) -> None:
    schema_file = tmp_path / "schema.json"
    schema_file.write_text(json.dumps({"find_restaurant": {"party_size": "Number"}}), encoding="utf-8")

    registry = InMemorySchemaRegistryAdapter.from_json_file(schema_file)

    registry.typecheck(_restaurant(ProgramValue(type="Number", value=2)))


def test_executor_returns_rows_and_marks_truncation() -> None:
    def find_restaurant(arguments: Mapping[str, object]) -> list[dict[str, object]]:
        return [{"name": f"r{index}", "size": arguments["party_size"]} for index in range(3)]

    executor = SimulatedProgramExecutorAdapter({"find_restaurant": find_restaurant}, max_rows=2)

    results = executor.execute(_restaurant(ProgramValue(type="Number", value=4)))

    assert results.rows == ({"name": "r0", "size": 4}, {"name": "r1", "size": 4})
    assert results.count == 3
    assert results.more is True


@pytest.mark.parametrize(
    ("raised", "expected_kind"),
    [
        (PermissionError("denied"), ExecutionErrorKind.PERMISSION_DENIED),
        (TimeoutError("slow"), ExecutionErrorKind.TIMEOUT),
        (KeyError("party_size"), ExecutionErrorKind.RUNTIME_ERROR),
    ],
)
def test_executor_classifies_handler_failures(
    raised: Exception,
    expected_kind: ExecutionErrorKind,
) -> None:
    def failing(arguments: Mapping[str, object]) -> list[dict[str, object]]:
        del arguments
        raise raised

    executor = SimulatedProgramExecutorAdapter({"find_restaurant": failing})

    with pytest.raises(ExecutionError) as exc_info:
        executor.execute(_restaurant(ProgramValue(type="Number", value=4)))

    assert exc_info.value.kind is expected_kind


def test_executor_reports_missing_handler_as_not_found() -> None:
    with pytest.raises(ExecutionError) as exc_info:
        SimulatedProgramExecutorAdapter().execute(Program(function="book_flight"))

    assert exc_info.value.kind is ExecutionErrorKind.NOT_FOUND


def test_callable_predictor_sorts_candidates_and_records_calls() -> None:
    predictor = CallablePredictorAdapter(
        lambda context, question, task: [
            PredictionCandidate(answer="low", score=0.1),
            PredictionCandidate(answer="high", score=0.9),
        ]
    )

    candidates = predictor.predict("ctx", "question", "dialogue_nlu")

    assert [candidate.answer for candidate in candidates] == ["high", "low"]
    assert predictor.calls == [("ctx", "question", "dialogue_nlu")]
