"""Tests for the Circuit Input Mapper."""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone

import pytest

from claimproof.config import MAX_CLAIM_LENGTH
from claimproof.templates.mapper import (
    CircuitMapper,
    canonical_json,
    claim_payload,
    fingerprint,
    template_fingerprint,
)
from claimproof.types import CircuitConfig, ExtractedData, Template

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
NOW_S = int(NOW.timestamp())


@pytest.fixture
def mapper() -> CircuitMapper:
    return CircuitMapper()


@pytest.fixture
def template() -> Template:
    return Template(
        domain="bank.example.com",
        name="example-bank",
        selectors={"balance": ".balance", "followers": ".followers"},
        extractors={"balanceGreaterThan": "greater_than(balance, $amount)"},
    )


def _data(raw=None, processed=None, timestamp_s: int = NOW_S) -> ExtractedData:
    return ExtractedData(
        raw=raw if raw is not None else {"balance": "$1,234.56"},
        processed=processed if processed is not None else {"balance": 1234},
        timestamp=timestamp_s * 1000,
        url="https://bank.example.com/account",
        domain="bank.example.com",
    )


def test_convert_balance_claim(mapper, template) -> None:
    result = mapper.convert(template, _data(), "balanceGreaterThan", {"amount": 1000}, now=NOW)
    assert result.actual_value == 1234
    assert result.threshold == 1000
    assert result.timestamp == NOW_S
    assert (result.data_type, result.claim_type) == (0, 0)
    assert len(result.data) == 32
    assert len(result.claim) == MAX_CLAIM_LENGTH
    assert bytes(result.data).rstrip(b"\0") == b'{"balance":1234}'
    assert bytes(result.claim) == b'{"amount":1000,"'


def test_boolean_claim_codes(mapper, template) -> None:
    data = _data(raw={"followers": "25K"})
    result = mapper.convert(template, data, "isInfluencer", now=NOW)
    assert (result.data_type, result.claim_type) == (2, 1)
    assert result.actual_value == 1
    assert result.threshold == 0


@pytest.mark.parametrize("size", [0, 1, 31, 32, 33, 500])
def test_fixed_width_for_any_input_size(mapper, template, size: int) -> None:
    processed = {"note": "x" * size}
    claim_params = {"amount": 1, "memo": "y" * size}
    result = mapper.convert(
        template, _data(processed=processed), "balanceGreaterThan", claim_params, now=NOW
    )
    assert len(result.data) == 32
    assert len(result.claim) == MAX_CLAIM_LENGTH


def test_configured_width_is_used(mapper, template) -> None:
    config = CircuitConfig("numeric", "comparison", 64)
    result = mapper.convert(
        template, _data(), "balanceGreaterThan", {"amount": 1}, config=config, now=NOW
    )
    assert len(result.data) == 64


def test_hashes_are_sha256_fingerprints(mapper, template) -> None:
    data = _data()
    params = {"amount": 1000}
    result = mapper.convert(template, data, "balanceGreaterThan", params, now=NOW)
    assert result.data_hash == fingerprint(canonical_json({"balance": 1234}))
    assert result.claim_hash == fingerprint(claim_payload("balanceGreaterThan", params))
    assert result.template_hash == template_fingerprint(template)
    assert 0 <= int(result.data_hash) < 2**64


def test_canonical_encoding_ignores_key_order() -> None:
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert canonical_json({"x": "é"}) == '{"x":"é"}'.encode("utf-8")


def test_template_fingerprint_ignores_extractors(template) -> None:
    changed = dataclasses.replace(template, extractors={})
    assert template_fingerprint(changed) == template_fingerprint(template)
    moved = dataclasses.replace(template, domain="other.example.com")
    assert template_fingerprint(moved) != template_fingerprint(template)


def test_unknown_claim_defaults_to_zero(mapper, template, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="claimproof.templates.mapper"):
        result = mapper.convert(template, _data(), "hasGoldStatus", now=NOW)
    assert result.actual_value == 0
    assert (result.data_type, result.claim_type) == (0, 0)
    assert "Unknown claim type: hasGoldStatus" in caplog.text


def test_unknown_claim_uses_template_extractor(mapper) -> None:
    template = Template(
        domain="bank.example.com",
        name="gold",
        extractors={"hasGoldStatus": 'equals(tier, "gold")'},
    )
    result = mapper.convert(template, _data(raw={"tier": "gold"}), "hasGoldStatus", now=NOW)
    assert result.actual_value == 1


class TestValidate:
    def _input(self, mapper, template, **changes):
        result = mapper.convert(template, _data(), "balanceGreaterThan", {"amount": 1}, now=NOW)
        return dataclasses.replace(result, **changes)

    def test_valid_input(self, mapper, template):
        circuit_input = self._input(mapper, template)
        assert mapper.validate(circuit_input, now=NOW_S) == []
        assert mapper.is_valid(circuit_input, now=NOW_S)

    def test_timestamp_window(self, mapper, template):
        assert mapper.is_valid(self._input(mapper, template, timestamp=NOW_S + 300), now=NOW_S)
        assert mapper.validate(
            self._input(mapper, template, timestamp=NOW_S + 301), now=NOW_S
        ) == ["Timestamp is too far in the future"]
        assert mapper.is_valid(self._input(mapper, template, timestamp=NOW_S - 86_400), now=NOW_S)
        assert mapper.validate(
            self._input(mapper, template, timestamp=NOW_S - 86_401), now=NOW_S
        ) == ["Timestamp is too old"]

    def test_reports_every_violation(self, mapper, template):
        circuit_input = self._input(
            mapper,
            template,
            data_hash="",
            claim=(1, 2, 3),
            data_type=3,
            claim_type=-1,
        )
        errors = mapper.validate(circuit_input, now=NOW_S)
        assert errors == [
            "Missing required hash field: data_hash",
            "Claim array must have exactly 16 elements, got 3",
            "Invalid data type: 3",
            "Invalid claim type: -1",
        ]

    def test_oversized_data_array(self, mapper, template):
        circuit_input = self._input(mapper, template, data=(0,) * 65)
        assert mapper.validate(circuit_input, now=NOW_S) == [
            "Data array exceeds maximum length: 65 > 64"
        ]

    def test_non_byte_elements(self, mapper, template):
        circuit_input = self._input(mapper, template, data=(256,) + (0,) * 31)
        assert mapper.validate(circuit_input, now=NOW_S) == [
            "Data and claim arrays must hold byte values"
        ]
