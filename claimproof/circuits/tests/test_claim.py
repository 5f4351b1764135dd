"""Tests for the claim circuit and its specializations."""

from __future__ import annotations

import pytest

from claimproof.circuits.authenticity import TemplateDescriptor
from claimproof.circuits.claim import (
    ClaimCircuit,
    balance_proof_circuit,
    build_circuit,
    commit_bytes,
    follower_proof_circuit,
)
from claimproof.config import CLAIM_TYPE_GT, CLAIM_TYPE_LT
from claimproof.exceptions import UnsatisfiedConstraintError

DOMAIN = "bank.example.com"
MAX_DATA = 16
MAX_TLS = 8


@pytest.fixture(scope="module")
def circuit() -> ClaimCircuit:
    return ClaimCircuit(MAX_DATA, MAX_TLS, template_data_size=4, max_domains=2)


@pytest.fixture(scope="module")
def descriptor() -> TemplateDescriptor:
    return TemplateDescriptor.build(
        template_id=3,
        version=1,
        valid_from=0,
        valid_until=2**32 - 1,
        template_data=[1, 2],
        domains=[DOMAIN],
        data_size=4,
        max_domains=2,
    )


def _inputs(circuit, descriptor, record: bytes, **overrides) -> dict:
    params = dict(
        threshold_value=500,
        timestamp_min=0,
        timestamp_max=2_000,
        claim_type=CLAIM_TYPE_GT,
    )
    params.update(overrides)
    return circuit.inputs_for(record, b"session!", descriptor, DOMAIN, **params)


def test_balance_bytes_above_threshold(circuit, descriptor) -> None:
    outputs = circuit.evaluate(_inputs(circuit, descriptor, bytes([232, 3])))
    assert outputs["proof_valid"] == 1


def test_balance_bytes_below_threshold(circuit, descriptor) -> None:
    outputs = circuit.evaluate(
        _inputs(circuit, descriptor, bytes([232, 3]), threshold_value=1_500)
    )
    assert outputs["proof_valid"] == 0


def test_commitment_outputs(circuit, descriptor) -> None:
    record = bytes([232, 3])
    inputs = _inputs(circuit, descriptor, record)
    outputs = circuit.evaluate(inputs)
    assert outputs["data_hash"] == commit_bytes(inputs["extracted_data"], len(record))
    assert outputs["session_hash"] == commit_bytes(inputs["tls_session_data"], 8)

    other = circuit.evaluate(_inputs(circuit, descriptor, bytes([233, 3])))
    assert other["data_hash"] != outputs["data_hash"]
    assert other["session_hash"] == outputs["session_hash"]


def test_full_record_layout(circuit, descriptor) -> None:
    timestamp = 1_700
    record = timestamp.to_bytes(8, "little") + (42_000).to_bytes(8, "little")
    threshold = timestamp + 10_000 * 2**64
    inputs = _inputs(
        circuit,
        descriptor,
        record,
        threshold_value=threshold,
        timestamp_min=1_000,
        timestamp_max=2_000,
    )
    assert inputs["data_length"] == MAX_DATA
    assert circuit.evaluate(inputs)["proof_valid"] == 1

    too_high = dict(inputs, threshold_value=timestamp + 50_000 * 2**64)
    assert circuit.evaluate(too_high)["proof_valid"] == 0


def test_empty_data_never_proves(circuit, descriptor) -> None:
    inputs = _inputs(circuit, descriptor, b"", claim_type=CLAIM_TYPE_LT)
    assert inputs["data_length"] == 0
    assert circuit.evaluate(inputs)["proof_valid"] == 0


def test_data_length_above_maximum_is_unsatisfiable(circuit, descriptor) -> None:
    inputs = _inputs(circuit, descriptor, bytes([232, 3]))
    inputs["data_length"] = MAX_DATA + 1
    with pytest.raises(UnsatisfiedConstraintError, match="data_length_bound"):
        circuit.evaluate(inputs)


def test_stale_timestamp_is_rejected(circuit, descriptor) -> None:
    # bytes [232, 3] read as timestamp 1000
    inputs = _inputs(circuit, descriptor, bytes([232, 3]), timestamp_min=1_001)
    assert circuit.evaluate(inputs)["proof_valid"] == 0


def test_unauthorized_domain_is_rejected(circuit, descriptor) -> None:
    inputs = circuit.inputs_for(
        bytes([232, 3]),
        b"",
        descriptor,
        "evil.example.com",
        threshold_value=500,
        timestamp_min=0,
        timestamp_max=2_000,
    )
    assert circuit.evaluate(inputs)["proof_valid"] == 0


def test_public_signal_layout(circuit, descriptor) -> None:
    cs = circuit.calculate_witness(_inputs(circuit, descriptor, bytes([232, 3])))
    assert cs.public_signal_names() == [
        "proof_valid",
        "data_hash",
        "session_hash",
        "template_hash",
        "claim_type",
        "threshold_value",
        "domain_hash",
        "timestamp_min",
        "timestamp_max",
    ]
    assert circuit.public_signal_names() == cs.public_signal_names()
    assert cs.public_signals()[0] == 1


def test_specializations_fix_claim_type() -> None:
    balance = balance_proof_circuit()
    follower = follower_proof_circuit()
    assert "claim_type" not in balance.public_signal_names()
    assert "claim_type" not in balance.input_names()
    assert "claim_type" not in follower.input_names()
    assert (balance.max_data_length, balance.max_tls_length) == (32, 256)
    assert (follower.max_data_length, follower.max_tls_length) == (16, 128)
    assert balance.public_input_names() == [
        "template_hash",
        "threshold_value",
        "domain_hash",
        "timestamp_min",
        "timestamp_max",
    ]


def test_fixed_claim_type_behaves_as_greater_than(descriptor) -> None:
    fixed = ClaimCircuit(
        MAX_DATA, MAX_TLS, template_data_size=4, max_domains=2, fixed_claim_type=CLAIM_TYPE_GT
    )
    inputs = fixed.inputs_for(
        bytes([232, 3]),
        b"",
        descriptor,
        DOMAIN,
        threshold_value=500,
        timestamp_min=0,
        timestamp_max=2_000,
    )
    assert "claim_type" not in inputs
    assert fixed.evaluate(inputs)["proof_valid"] == 1


def test_build_circuit_by_name() -> None:
    assert build_circuit("balance_proof").name == "balance_proof"
    assert build_circuit("generic_proof").max_data_length == 64
    with pytest.raises(ValueError, match="Unknown circuit"):
        build_circuit("no_such_circuit")


@pytest.mark.slow
def test_generic_circuit_setup_shape() -> None:
    cs = build_circuit("generic_proof").build()
    assert cs.num_constraints > 0
    assert cs.public_signal_names()[:3] == ["proof_valid", "data_hash", "session_hash"]
