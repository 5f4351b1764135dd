"""Tests for the comparator circuit."""

from __future__ import annotations

import pytest

from claimproof.circuits.comparator import (
    ComparatorCircuit,
    comparator_inputs,
    evaluate_comparison,
)
from claimproof.config import (
    CLAIM_TYPE_CONTAINS,
    CLAIM_TYPE_EQ,
    CLAIM_TYPE_GT,
    CLAIM_TYPE_LT,
    CLAIM_TYPE_NEQ,
    CLAIM_TYPE_RANGE,
)
from claimproof.exceptions import UnsatisfiedConstraintError

MAX_DATA = 8
MAX_PATTERN = 4


@pytest.fixture(scope="module")
def circuit() -> ComparatorCircuit:
    return ComparatorCircuit(MAX_DATA, MAX_PATTERN)


def _run(circuit: ComparatorCircuit, claim_type: int, data: bytes, **kwargs) -> int:
    inputs = comparator_inputs(
        claim_type, data, max_data_length=MAX_DATA, max_pattern_length=MAX_PATTERN, **kwargs
    )
    result = circuit.evaluate(inputs)["result"]
    reference = evaluate_comparison(
        inputs["claim_type"],
        inputs["threshold"],
        inputs["threshold_max"],
        inputs["data"],
        inputs["data_length"],
        inputs["pattern"],
        inputs["pattern_length"],
    )
    assert result == reference
    return result


def le(value: int, width: int = 2) -> bytes:
    return value.to_bytes(width, "little")


@pytest.mark.parametrize(
    "claim_type, value, threshold, expected",
    [
        (CLAIM_TYPE_GT, 1000, 500, 1),
        (CLAIM_TYPE_GT, 1000, 1000, 0),
        (CLAIM_TYPE_GT, 1000, 1500, 0),
        (CLAIM_TYPE_LT, 1000, 1500, 1),
        (CLAIM_TYPE_LT, 1000, 1000, 0),
        (CLAIM_TYPE_EQ, 1000, 1000, 1),
        (CLAIM_TYPE_EQ, 1000, 999, 0),
        (CLAIM_TYPE_NEQ, 1000, 999, 1),
        (CLAIM_TYPE_NEQ, 1000, 1000, 0),
    ],
)
def test_numeric_comparisons(
    circuit: ComparatorCircuit, claim_type: int, value: int, threshold: int, expected: int
) -> None:
    assert _run(circuit, claim_type, le(value), threshold=threshold) == expected


@pytest.mark.parametrize(
    "value, low, high, expected",
    [(10, 10, 20, 1), (20, 10, 20, 1), (15, 10, 20, 1), (9, 10, 20, 0), (21, 10, 20, 0)],
)
def test_range_is_inclusive(
    circuit: ComparatorCircuit, value: int, low: int, high: int, expected: int
) -> None:
    assert (
        _run(circuit, CLAIM_TYPE_RANGE, le(value), threshold=low, threshold_max=high)
        == expected
    )


def test_contains_hello_el(circuit: ComparatorCircuit) -> None:
    assert _run(circuit, CLAIM_TYPE_CONTAINS, b"Hello", pattern=b"el") == 1


@pytest.mark.parametrize(
    "data, pattern, expected",
    [
        (b"Hello", b"lo", 1),
        (b"Hello", b"Hlo", 0),  # subsequence, not substring
        (b"Hello", b"", 0),
        (b"Hello", b"Hello"[:4], 1),
        (b"abc", b"abcd", 0),
    ],
)
def test_contains_is_substring(
    circuit: ComparatorCircuit, data: bytes, pattern: bytes, expected: int
) -> None:
    assert _run(circuit, CLAIM_TYPE_CONTAINS, data, pattern=pattern) == expected


def test_contains_ignores_bytes_past_data_length(circuit: ComparatorCircuit) -> None:
    inputs = comparator_inputs(
        CLAIM_TYPE_CONTAINS,
        b"Hello",
        pattern=b"lo",
        max_data_length=MAX_DATA,
        max_pattern_length=MAX_PATTERN,
    )
    inputs["data_length"] = 3
    assert circuit.evaluate(inputs)["result"] == 0


def test_value_ignores_bytes_past_data_length(circuit: ComparatorCircuit) -> None:
    inputs = comparator_inputs(
        CLAIM_TYPE_EQ, le(0x0201), threshold=1, max_data_length=MAX_DATA, max_pattern_length=MAX_PATTERN
    )
    inputs["data_length"] = 1
    assert circuit.evaluate(inputs)["result"] == 1


@pytest.mark.parametrize("claim_type", [0, 7, 255])
def test_unknown_claim_type_yields_zero(circuit: ComparatorCircuit, claim_type: int) -> None:
    assert _run(circuit, claim_type, le(1000), threshold=1) == 0


def test_non_byte_data_is_rejected(circuit: ComparatorCircuit) -> None:
    inputs = comparator_inputs(
        CLAIM_TYPE_GT, b"\x01", max_data_length=MAX_DATA, max_pattern_length=MAX_PATTERN
    )
    inputs["data"][0] = 256
    with pytest.raises(UnsatisfiedConstraintError):
        circuit.evaluate(inputs)


def test_array_length_is_fixed(circuit: ComparatorCircuit) -> None:
    inputs = comparator_inputs(
        CLAIM_TYPE_GT, b"\x01", max_data_length=MAX_DATA, max_pattern_length=MAX_PATTERN
    )
    inputs["data"] = inputs["data"][:-1]
    with pytest.raises(ValueError, match="exactly"):
        circuit.evaluate(inputs)


def test_constraint_shape_does_not_depend_on_values(circuit: ComparatorCircuit) -> None:
    zero = circuit.build()
    filled = circuit.build(
        comparator_inputs(
            CLAIM_TYPE_CONTAINS,
            b"Hello",
            pattern=b"el",
            max_data_length=MAX_DATA,
            max_pattern_length=MAX_PATTERN,
        )
    )
    assert zero.num_constraints == filled.num_constraints
    assert zero.num_wires == filled.num_wires
