"""Tests for simulated TLS session evidence."""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone

from cryptography import x509
from cryptography.x509.oid import NameOID

from claimproof.proving.evidence import (
    HANDSHAKE_TYPES,
    SimulatedEvidenceSource,
    encode_evidence,
)

NOW_S = 1_717_243_200.25


def _capture(domain="bank.example.com"):
    return SimulatedEvidenceSource(clock=lambda: NOW_S).capture(domain)


def test_certificate_names_the_domain():
    evidence = _capture()
    cert = x509.load_pem_x509_certificate(base64.b64decode(evidence.server_certificate))
    cn = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
    assert cn == "bank.example.com"
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["bank.example.com"]
    issued = datetime.fromtimestamp(NOW_S, timezone.utc)
    assert cert.not_valid_before_utc < issued
    assert cert.not_valid_after_utc > issued


def test_session_keys_have_expected_sizes():
    keys = _capture().session_keys
    assert len(keys["clientRandom"]) == 2 + 64
    assert len(keys["serverRandom"]) == 2 + 64
    assert len(keys["masterSecret"]) == 2 + 96
    assert all(value.startswith("0x") for value in keys.values())


def test_handshake_transcript():
    messages = _capture().handshake_messages
    assert len(messages) == len(HANDSHAKE_TYPES) == 6
    for message, (_, code) in zip(messages, HANDSHAKE_TYPES):
        assert message[2:4] == f"{code:02x}"
        assert len(message) == 2 + 2 + 128


def test_timestamp_from_clock():
    assert _capture().timestamp == 1_717_243_200_250


def test_captures_are_independent():
    first, second = _capture(), _capture()
    assert first.session_keys != second.session_keys


def test_encode_evidence_is_canonical():
    evidence = _capture()
    encoded = encode_evidence(evidence)
    assert encode_evidence(evidence) == encoded
    decoded = json.loads(encoded)
    assert list(decoded) == sorted(decoded)
    assert b" " not in encoded
