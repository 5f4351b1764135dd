"""Tests for the sponge hash."""

from __future__ import annotations

import pytest

from claimproof.circuits.constraints import ConstraintSystem
from claimproof.circuits.sponge import (
    domain_hash,
    hash_bytes,
    mds_matrix,
    pack_bytes,
    permute,
    sponge_hash,
    sponge_hash_gadget,
)
from claimproof.config import FIELD_MODULUS


def test_hash_is_deterministic_field_element() -> None:
    first = sponge_hash([1, 2, 3])
    assert first == sponge_hash([1, 2, 3])
    assert 0 <= first < FIELD_MODULUS


def test_arity_is_bound_into_the_hash() -> None:
    assert sponge_hash([1]) != sponge_hash([1, 0])
    assert sponge_hash([]) != sponge_hash([0])


def test_order_matters() -> None:
    assert sponge_hash([1, 2]) != sponge_hash([2, 1])


def test_mds_matrix_is_invertible_cauchy() -> None:
    matrix = mds_matrix()
    assert len(matrix) == 3
    assert all(0 < entry < FIELD_MODULUS for row in matrix for entry in row)
    assert len({entry for row in matrix for entry in row}) > 1


def test_permutation_changes_state() -> None:
    assert permute([0, 0, 0]) != [0, 0, 0]


@pytest.mark.parametrize("inputs", [[], [7], [1, 2, 3], list(range(10))])
def test_gadget_matches_native_hash(inputs: list) -> None:
    cs = ConstraintSystem("sponge")
    wires = [cs.alloc(v) for v in inputs]
    digest = sponge_hash_gadget(cs, wires)
    assert cs.value(digest) == sponge_hash(inputs)
    assert cs.is_satisfied()


def test_pack_bytes_little_endian_chunks() -> None:
    data = bytes(range(40))
    chunks = pack_bytes(data)
    assert len(chunks) == 2
    assert chunks[0] == int.from_bytes(data[:31], "little")
    assert chunks[1] == int.from_bytes(data[31:], "little")
    assert hash_bytes(data) == sponge_hash(chunks)


def test_domain_hash_normalizes_case_and_whitespace() -> None:
    assert domain_hash("Example.COM ") == domain_hash("example.com")
    assert domain_hash("example.com") != domain_hash("example.org")
