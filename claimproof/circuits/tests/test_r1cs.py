"""Tests for the r1cs/wtns codecs and circuit input JSON."""

from __future__ import annotations

import io
import json
import struct
from pathlib import Path

import pytest

from claimproof.circuits.comparator import ComparatorCircuit, comparator_inputs
from claimproof.circuits.r1cs import (
    FormatError,
    decode_wtns,
    dump_circuit_json,
    encode_r1cs,
    read_r1cs_header,
    read_wtns,
    to_circuit_json,
    write_r1cs,
    write_symbols,
    write_wtns,
)
from claimproof.config import CLAIM_TYPE_GT, FIELD_MODULUS


@pytest.fixture(scope="module")
def witness_cs():
    circuit = ComparatorCircuit(4, 2)
    inputs = comparator_inputs(
        CLAIM_TYPE_GT, b"\x10", threshold=3, max_data_length=4, max_pattern_length=2
    )
    return circuit.calculate_witness(inputs)


def test_r1cs_header_counts(witness_cs) -> None:
    header = read_r1cs_header(encode_r1cs(witness_cs))
    assert header.field_size == 32
    assert header.prime == FIELD_MODULUS
    assert header.n_wires == witness_cs.num_wires
    assert header.n_pub_out == 1
    assert header.n_pub_in == 3
    assert header.n_prv_in == 4 + 1 + 2 + 1
    assert header.n_constraints == witness_cs.num_constraints


def test_r1cs_file_layout(witness_cs, tmp_path: Path) -> None:
    path = write_r1cs(witness_cs, tmp_path / "circuit.r1cs")
    data = path.read_bytes()
    assert data[:4] == b"r1cs"
    version, n_sections = struct.unpack_from("<II", data, 4)
    assert (version, n_sections) == (1, 3)


def test_wtns_matches_witness(witness_cs, tmp_path: Path) -> None:
    witness = witness_cs.witness()
    path = write_wtns(witness, tmp_path / "witness.wtns")
    assert path.read_bytes()[:4] == b"wtns"
    assert read_wtns(path) == witness
    assert witness[0] == 1
    assert witness[1] == 1  # result: 16 > 3


def test_wtns_rejects_bad_magic() -> None:
    with pytest.raises(FormatError):
        decode_wtns(b"r1cs" + b"\x00" * 8)


def test_wtns_rejects_truncated_section() -> None:
    with pytest.raises(FormatError):
        decode_wtns(b"wtns" + struct.pack("<II", 2, 1) + struct.pack("<IQ", 1, 100))


def test_symbols_list_every_wire(witness_cs) -> None:
    stream = io.BytesIO()
    write_symbols(witness_cs, stream)
    lines = stream.getvalue().decode().splitlines()
    assert len(lines) == witness_cs.num_wires
    assert lines[1] == "1,1,0,main.result"


def test_circuit_json_uses_decimal_strings() -> None:
    encoded = to_circuit_json({"threshold": 2**200, "data": [1, 2], "flag": True})
    assert encoded == {"threshold": str(2**200), "data": ["1", "2"], "flag": "1"}
    assert json.loads(dump_circuit_json({"x": 5})) == {"x": "5"}
