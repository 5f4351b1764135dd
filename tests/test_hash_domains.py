"""
The input mapper's SHA-256 fingerprints and the circuit's sponge
commitments live in different hash domains.

Fingerprints identify inputs in logs and metadata; only the sponge values
are bound by the circuit. These tests pin down that the two never coincide,
so nothing downstream mistakes one for the other.
"""

from datetime import datetime, timezone

from claimproof.circuits.claim import commit_bytes
from claimproof.proving.signals import (
    build_claim_signals,
    descriptor_for,
    encode_record,
)
from claimproof.templates.mapper import CircuitMapper, canonical_json, fingerprint
from claimproof.testing import compact_claim_circuit
from claimproof.types import CircuitConfig, ExtractedData, Template

NOW = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
NOW_S = int(NOW.timestamp())
CONFIG = CircuitConfig("numeric", "comparison", 32)

TEMPLATE = Template(
    domain="bank.example.com",
    name="example-bank",
    selectors={"balance": ".balance"},
    extractors={"balanceGreaterThan": "greater_than(balance, $amount)"},
)

DATA = ExtractedData(
    raw={"balance": "$2,500"},
    processed={"balance": 2500},
    timestamp=NOW_S * 1000,
    url="https://bank.example.com/",
    domain="bank.example.com",
)


def _circuit_input():
    return CircuitMapper().convert(
        TEMPLATE, DATA, "balanceGreaterThan", {"amount": 1000}, config=CONFIG, now=NOW
    )


def test_data_hash_is_not_the_circuit_commitment():
    circuit_input = _circuit_input()
    circuit = compact_claim_circuit(CONFIG)
    signals = build_claim_signals(
        circuit,
        circuit_input,
        CONFIG,
        descriptor_for(TEMPLATE, data_size=4, max_domains=4),
        "bank.example.com",
        b"",
        NOW_S,
    )
    outputs = circuit.evaluate(signals)

    record = encode_record(circuit_input.timestamp, circuit_input.actual_value)
    assert outputs["proof_valid"] == 1
    assert outputs["data_hash"] == commit_bytes(signals["extracted_data"], len(record))
    assert str(outputs["data_hash"]) != circuit_input.data_hash

    mapper_bytes = canonical_json(dict(DATA.processed))
    assert circuit_input.data_hash == fingerprint(mapper_bytes)
    assert commit_bytes(list(mapper_bytes), len(mapper_bytes)) != int(circuit_input.data_hash)


def test_template_hash_is_not_the_descriptor_commitment():
    circuit_input = _circuit_input()
    descriptor = descriptor_for(TEMPLATE, data_size=4, max_domains=4)

    assert descriptor.template_id == int(circuit_input.template_hash)
    assert descriptor.commitment() != int(circuit_input.template_hash)


def test_fingerprints_fit_in_eight_bytes():
    circuit_input = _circuit_input()
    for value in (circuit_input.data_hash, circuit_input.claim_hash, circuit_input.template_hash):
        assert 0 <= int(value) < 2**64
