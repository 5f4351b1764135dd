"""Tests for the Template-Circuit Registry."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from claimproof.exceptions import ConfigurationError
from claimproof.templates.registry import TemplateCircuitRegistry
from claimproof.types import CircuitConfig, ExtractedData, Template

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def explicit_template() -> Template:
    return Template.from_dict(
        {
            "domain": "bank.example.com",
            "name": "example-bank",
            "selectors": {"balance": ".balance", "currency": ".ccy", "age": ".age"},
            "extractors": {"ageOver": "number(age)"},
            "circuitConfig": {
                "dataType": "numeric",
                "claimType": "comparison",
                "maxDataLength": 32,
                "supportedClaims": [
                    {
                        "name": "balanceGreaterThan",
                        "dataType": "numeric",
                        "claimType": "comparison",
                        "maxDataLength": 64,
                    },
                    {
                        "name": "isVerifiedAccount",
                        "dataType": "boolean",
                        "claimType": "existence",
                    },
                    {
                        "name": "currencyCheck",
                        "dataType": "string",
                        "claimType": "pattern",
                        "pattern": "^[A-Z]{3}$",
                    },
                    {
                        "name": "ageOver",
                        "dataType": "numeric",
                        "claimType": "comparison",
                        "validation": [
                            {
                                "field": "age",
                                "type": "range",
                                "constraint": {"min": 18},
                                "errorMessage": "Too young",
                            }
                        ],
                    },
                ],
            },
        }
    )


def inferred_template() -> Template:
    return Template(
        domain="social.example.com",
        name="example-social",
        selectors={"followers": ".followers", "badge": ".badge"},
        extractors={
            "followersGreaterThan": "followers_over(followers, $count)",
            "hasVerifiedBadge": "truthy(badge)",
            "currencyCheck": 'equals(currency, "USD")',
            "accountAge": "number(age)",
        },
    )


def _data(raw=None, processed=None, domain: str = "bank.example.com") -> ExtractedData:
    return ExtractedData(
        raw=raw or {},
        processed=processed or {},
        timestamp=int(NOW.timestamp()) * 1000,
        url=f"https://{domain}/",
        domain=domain,
    )


@pytest.fixture
def registry() -> TemplateCircuitRegistry:
    registry = TemplateCircuitRegistry()
    registry.register(explicit_template())
    registry.register(inferred_template())
    return registry


class TestConfiguration:
    def test_explicit_claims(self, registry):
        assert registry.get_supported_claims("bank.example.com") == [
            "balanceGreaterThan",
            "isVerifiedAccount",
            "currencyCheck",
            "ageOver",
        ]
        assert registry.get_circuit_config("bank.example.com", "balanceGreaterThan") == (
            CircuitConfig("numeric", "comparison", 64)
        )
        assert registry.get_circuit_config("bank.example.com", "isVerifiedAccount") == (
            CircuitConfig("boolean", "existence", 32)
        )

    def test_inferred_claims(self, registry):
        domain = "social.example.com"
        assert registry.get_circuit_config(domain, "followersGreaterThan").signature == (
            "generic_numeric_comparison_32"
        )
        assert registry.get_circuit_config(domain, "hasVerifiedBadge").signature == (
            "generic_boolean_existence_32"
        )
        assert registry.get_circuit_config(domain, "currencyCheck").signature == (
            "generic_string_pattern_32"
        )
        assert registry.get_circuit_config(domain, "accountAge").signature == (
            "generic_numeric_comparison_32"
        )

    def test_unknown_lookups(self, registry):
        assert registry.get_circuit_config("nowhere.example.com", "x") is None
        assert registry.get_circuit_config("bank.example.com", "hasVerifiedBadge") is None
        assert registry.get_supported_claims("nowhere.example.com") == []

    def test_rules_and_input_mappings(self, registry):
        explicit = registry.get_claim_mapping("bank.example.com", "balanceGreaterThan")
        assert [r.error_message for r in explicit.validation_rules] == [
            "Value must be numeric for comparison"
        ]
        assert dict(explicit.input_mappings) == {
            "balance": "balance",
            "availableBalance": "availableBalance",
        }

        inferred = registry.get_claim_mapping("social.example.com", "followersGreaterThan")
        assert [r.error_message for r in inferred.validation_rules] == [
            "Numeric value required for comparison"
        ]
        badge = registry.get_claim_mapping("social.example.com", "hasVerifiedBadge")
        assert [r.type for r in badge.validation_rules] == ["required"]

        custom = registry.get_claim_mapping("bank.example.com", "ageOver")
        assert set(custom.input_mappings) == {"balance", "currency", "age"}


class TestValidateData:
    def test_missing_registration(self, registry):
        assert registry.validate_data_for_circuit("nowhere.example.com", "x", _data()) == [
            "Template mapping not found"
        ]
        assert registry.validate_data_for_circuit("bank.example.com", "x", _data()) == [
            "Claim mapping not found"
        ]

    def test_valid_balance(self, registry):
        data = _data(raw={"balance": "$1,500"}, processed={"balance": 1500})
        errors = registry.validate_data_for_circuit(
            "bank.example.com", "balanceGreaterThan", data, now=NOW
        )
        assert errors == []

    def test_missing_balance(self, registry):
        errors = registry.validate_data_for_circuit(
            "bank.example.com", "balanceGreaterThan", _data(), now=NOW
        )
        assert errors == ["Value must be numeric for comparison"]

    def test_errors_accumulate(self, registry):
        data = _data(processed={"balance": "$1,000", "note": "x" * 300})
        errors = registry.validate_data_for_circuit(
            "bank.example.com", "balanceGreaterThan", data, now=NOW
        )
        assert errors == [
            "Value must be numeric for comparison",
            "Data size exceeds maximum length for circuit: 64",
            "Field balance appears to be numeric but cannot be parsed",
        ]

    def test_boolean_circuit_needs_boolean_value(self, registry):
        raw = {"accountStatus": "verified"}
        without = registry.validate_data_for_circuit(
            "bank.example.com", "isVerifiedAccount", _data(raw=raw, processed={"s": "ok"})
        )
        assert without == ["No boolean values found for boolean circuit type"]
        with_flag = registry.validate_data_for_circuit(
            "bank.example.com", "isVerifiedAccount", _data(raw=raw, processed={"verified": True})
        )
        assert with_flag == []

    def test_pattern_rule_checks_source_value(self, registry):
        lower = registry.validate_data_for_circuit(
            "bank.example.com", "currencyCheck", _data(raw={"currency": "usd"})
        )
        assert lower == ["Value does not match required pattern"]
        upper = registry.validate_data_for_circuit(
            "bank.example.com", "currencyCheck", _data(raw={"currency": "USD"})
        )
        assert upper == []

    def test_range_rule_on_named_field(self, registry):
        errors = registry.validate_data_for_circuit(
            "bank.example.com", "ageOver", _data(raw={"age": "16"}, processed={"age": 16})
        )
        assert errors == ["Too young"]
        assert registry.validate_data_for_circuit(
            "bank.example.com", "ageOver", _data(raw={"age": "30"}, processed={"age": 30})
        ) == []


class TestRegistration:
    def test_generate_circuit_input_uses_claim_config(self, registry):
        data = _data(raw={"balance": "$1,500"}, processed={"balance": 1500})
        circuit_input = registry.generate_circuit_input(
            explicit_template(), data, "balanceGreaterThan", {"amount": 1000}, now=NOW
        )
        assert len(circuit_input.data) == 64
        assert circuit_input.actual_value == 1500

    def test_generate_circuit_input_requires_mapping(self):
        with pytest.raises(ConfigurationError):
            TemplateCircuitRegistry().generate_circuit_input(
                explicit_template(), _data(), "balanceGreaterThan"
            )

    def test_register_is_idempotent(self, registry):
        before = registry.get_mapping("bank.example.com")
        assert registry.register(explicit_template()) is before

    def test_reregistration_replaces_without_touching_old_snapshot(self, registry):
        before = registry.get_mapping("social.example.com")
        updated = Template(
            domain="social.example.com",
            name="example-social-v2",
            extractors={"isInfluencer": "followers_over(followers, 10000)"},
        )
        registry.register(updated)
        assert registry.get_supported_claims("social.example.com") == ["isInfluencer"]
        assert list(before.claim_mappings) == [
            "followersGreaterThan",
            "hasVerifiedBadge",
            "currencyCheck",
            "accountAge",
        ]

    def test_domains_templates_and_clear(self, registry):
        assert registry.registered_domains() == ["bank.example.com", "social.example.com"]
        assert [t.name for t in registry.get_registered_templates()] == [
            "example-bank",
            "example-social",
        ]
        assert "bank.example.com" in registry
        assert len(registry) == 2
        assert len(registry.get_mapping("bank.example.com").circuit_configs) == 4
        registry.clear()
        assert len(registry) == 0
        assert registry.get_supported_claims("bank.example.com") == []
