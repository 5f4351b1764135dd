"""
Template-Circuit Registry.

Holds, per registered template domain, the circuit configuration, the
validation rules and the input-field mapping of every claim the template
supports. Claims come from ``circuitConfig.supportedClaims`` when the
template declares them and are otherwise inferred from extractor names.

The registry is read-mostly. Registration builds a new mapping table and
swaps it in under a lock; readers use whatever snapshot is current and
never block.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config import DEFAULT_MAX_DATA_LENGTH
from ..exceptions import ConfigurationError
from ..types import (
    CircuitConfig,
    CircuitInput,
    ClaimDefinition,
    ExtractedData,
    Template,
    ValidationRule,
)
from .claims import ACTUAL_VALUE, ClaimName, first_present, strategy_for
from .mapper import CircuitMapper

logger = logging.getLogger(__name__)

_NUMERIC_LOOKING = re.compile(r"[0-9.,]+")

# Page fields each known claim reads; other claims map every selector.
_INPUT_FIELDS: Mapping[ClaimName, Tuple[str, ...]] = {
    name: strategy_for(name.value).input_fields for name in ClaimName
}


@dataclass(frozen=True)
class ClaimMapping:
    circuit_config: CircuitConfig
    input_mappings: Mapping[str, str]
    validation_rules: Tuple[ValidationRule, ...]


@dataclass(frozen=True)
class TemplateCircuitMapping:
    template: Template
    base_config: CircuitConfig
    claim_mappings: Mapping[str, ClaimMapping]

    @property
    def domain(self) -> str:
        return self.template.domain

    @property
    def template_name(self) -> str:
        return self.template.name

    @property
    def circuit_configs(self) -> Tuple[CircuitConfig, ...]:
        seen: Dict[str, CircuitConfig] = {}
        for mapping in self.claim_mappings.values():
            seen.setdefault(mapping.circuit_config.signature, mapping.circuit_config)
        return tuple(seen.values())


# ============================================================================
# MAPPING CONSTRUCTION
# ============================================================================


def _base_config(template: Template) -> CircuitConfig:
    config = template.circuit_config
    if config is None:
        return CircuitConfig("numeric", "comparison", DEFAULT_MAX_DATA_LENGTH)
    return CircuitConfig(
        config.data_type or "numeric",
        config.claim_type or "comparison",
        config.max_data_length or DEFAULT_MAX_DATA_LENGTH,
    )


def _merge_rules(*groups: Iterable[ValidationRule]) -> Tuple[ValidationRule, ...]:
    rules: List[ValidationRule] = []
    seen = set()
    for group in groups:
        for rule in group:
            key = (rule.field, rule.type, repr(rule.constraint))
            if key not in seen:
                seen.add(key)
                rules.append(rule)
    return tuple(rules)


def rules_for_definition(definition: ClaimDefinition) -> Tuple[ValidationRule, ...]:
    rules: List[ValidationRule] = []
    if definition.claim_type == "comparison" and definition.data_type == "numeric":
        rules.append(
            ValidationRule(ACTUAL_VALUE, "numeric", "Value must be numeric for comparison")
        )
    elif definition.claim_type == "existence":
        rules.append(
            ValidationRule(ACTUAL_VALUE, "required", "Value must exist for existence check")
        )
    elif definition.claim_type == "pattern" and definition.pattern:
        rules.append(
            ValidationRule(
                ACTUAL_VALUE,
                "pattern",
                "Value does not match required pattern",
                definition.pattern,
            )
        )
    rules.extend(definition.validation)
    return tuple(rules)


def rules_from_extractor_name(name: str) -> Tuple[ValidationRule, ...]:
    rules: List[ValidationRule] = []
    if "GreaterThan" in name or "MinimumBalance" in name:
        rules.append(
            ValidationRule(ACTUAL_VALUE, "numeric", "Numeric value required for comparison")
        )
    if name.startswith(("has", "is")):
        rules.append(
            ValidationRule(ACTUAL_VALUE, "required", "Value must exist for boolean check")
        )
    return tuple(rules)


def infer_config(name: str, base: CircuitConfig) -> CircuitConfig:
    """Circuit configuration implied by an extractor name."""
    if "GreaterThan" in name or "Balance" in name:
        return CircuitConfig("numeric", "comparison", base.max_data_length)
    if name.startswith(("has", "is")):
        return CircuitConfig("boolean", "existence", base.max_data_length)
    if "Check" in name and "currency" in name:
        return CircuitConfig("string", "pattern", base.max_data_length)
    return CircuitConfig("numeric", "comparison", base.max_data_length)


def input_mappings(template: Template, claim: str) -> Dict[str, str]:
    name = ClaimName.parse(claim)
    if name is not None and _INPUT_FIELDS[name]:
        return {field: field for field in _INPUT_FIELDS[name]}
    return {selector: selector for selector in template.selectors}


def build_mapping(template: Template) -> TemplateCircuitMapping:
    base = _base_config(template)
    claims: Dict[str, ClaimMapping] = {}
    definitions = template.circuit_config.supported_claims if template.circuit_config else ()

    if definitions:
        for definition in definitions:
            config = CircuitConfig(
                definition.data_type or base.data_type,
                definition.claim_type or base.claim_type,
                definition.max_data_length or base.max_data_length,
            )
            claims[definition.name] = ClaimMapping(
                circuit_config=config,
                input_mappings=input_mappings(template, definition.name),
                validation_rules=_merge_rules(
                    rules_for_definition(definition), strategy_for(definition.name).rules
                ),
            )
    else:
        for name in template.extractors:
            claims[name] = ClaimMapping(
                circuit_config=infer_config(name, base),
                input_mappings=input_mappings(template, name),
                validation_rules=_merge_rules(
                    rules_from_extractor_name(name), strategy_for(name).rules
                ),
            )

    return TemplateCircuitMapping(template, base, MappingProxyType(claims))


# ============================================================================
# DATA CHECKS
# ============================================================================


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value.strip() or "0")
        except ValueError:
            return False
        return True
    return False


def check_rule(rule: ValidationRule, value: Any) -> Optional[str]:
    """Return the rule's error message if ``value`` violates it."""
    if rule.type == "required":
        if value is None or value == "":
            return rule.error_message
    elif rule.type == "numeric":
        if not _is_numeric(value):
            return rule.error_message
    elif rule.type == "pattern":
        if rule.constraint and isinstance(value, str):
            if re.search(str(rule.constraint), value) is None:
                return rule.error_message
    elif rule.type == "range":
        if isinstance(rule.constraint, Mapping) and _is_numeric(value) and value != "":
            number = float(value)
            low, high = rule.constraint.get("min"), rule.constraint.get("max")
            if (low is not None and number < low) or (high is not None and number > high):
                return rule.error_message
    else:
        logger.warning("Ignoring unknown validation rule type %r", rule.type)
    return None


def circuit_constraint_errors(config: CircuitConfig, data: ExtractedData) -> List[str]:
    """Size and type-consistency heuristics for a circuit configuration."""
    errors: List[str] = []
    encoded = json.dumps(dict(data.processed), separators=(",", ":"), default=str)
    if len(encoded) > config.max_data_length * 4:
        errors.append(f"Data size exceeds maximum length for circuit: {config.max_data_length}")

    if config.data_type == "numeric":
        for key, value in data.processed.items():
            if (
                isinstance(value, str)
                and _NUMERIC_LOOKING.search(value)
                and not _is_numeric(value.replace(",", ""))
            ):
                errors.append(f"Field {key} appears to be numeric but cannot be parsed")
    elif config.data_type == "boolean":
        if not any(
            isinstance(value, bool) or value in ("true", "false") or (
                isinstance(value, (int, float)) and value in (0, 1)
            )
            for value in data.processed.values()
        ):
            errors.append("No boolean values found for boolean circuit type")
    return errors


# ============================================================================
# REGISTRY
# ============================================================================


class TemplateCircuitRegistry:
    """
    Per-domain circuit mappings for registered templates.

    Registering a template again replaces its previous mapping; registering
    an equal template is a no-op.
    """

    def __init__(self, mapper: Optional[CircuitMapper] = None) -> None:
        self.mapper = mapper or CircuitMapper()
        self._mappings: Mapping[str, TemplateCircuitMapping] = MappingProxyType({})
        self._write_lock = threading.Lock()

    def register(self, template: Template) -> TemplateCircuitMapping:
        current = self._mappings.get(template.domain)
        if current is not None and current.template == template:
            return current

        mapping = build_mapping(template)
        with self._write_lock:
            table = dict(self._mappings)
            table[template.domain] = mapping
            self._mappings = MappingProxyType(table)
        logger.info(
            "Registered circuit mapping for %s (%s): %d claims",
            template.name,
            template.domain,
            len(mapping.claim_mappings),
        )
        return mapping

    def get_mapping(self, domain: str) -> Optional[TemplateCircuitMapping]:
        return self._mappings.get(domain)

    def get_claim_mapping(self, domain: str, claim: str) -> Optional[ClaimMapping]:
        mapping = self._mappings.get(domain)
        if mapping is None:
            logger.warning("No circuit mapping found for domain: %s", domain)
            return None
        claim_mapping = mapping.claim_mappings.get(claim)
        if claim_mapping is None:
            logger.warning("No circuit mapping found for claim: %s on domain: %s", claim, domain)
        return claim_mapping

    def get_circuit_config(self, domain: str, claim: str) -> Optional[CircuitConfig]:
        claim_mapping = self.get_claim_mapping(domain, claim)
        return None if claim_mapping is None else claim_mapping.circuit_config

    def get_supported_claims(self, domain: str) -> List[str]:
        mapping = self._mappings.get(domain)
        return [] if mapping is None else list(mapping.claim_mappings)

    def registered_domains(self) -> List[str]:
        return list(self._mappings)

    def get_registered_templates(self) -> List[Template]:
        return [mapping.template for mapping in self._mappings.values()]

    def validate_data_for_circuit(
        self,
        domain: str,
        claim: str,
        extracted_data: ExtractedData,
        params: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Run the claim's validation rules and circuit heuristics.

        Returns:
            Every violation found; empty when the data can be proven.
        """
        mapping = self._mappings.get(domain)
        if mapping is None:
            return ["Template mapping not found"]
        claim_mapping = mapping.claim_mappings.get(claim)
        if claim_mapping is None:
            return ["Claim mapping not found"]

        params = params or {}
        now = now or datetime.now(timezone.utc)
        errors: List[str] = []
        for rule in claim_mapping.validation_rules:
            value = self._rule_value(rule, mapping.template, claim, extracted_data, params, now)
            error = check_rule(rule, value)
            if error:
                errors.append(error)
        errors.extend(circuit_constraint_errors(claim_mapping.circuit_config, extracted_data))
        return errors

    def _rule_value(
        self,
        rule: ValidationRule,
        template: Template,
        claim: str,
        data: ExtractedData,
        params: Mapping[str, Any],
        now: datetime,
    ) -> Any:
        if rule.field != ACTUAL_VALUE:
            value = data.processed.get(rule.field)
            return value if value not in (None, "") else data.raw.get(rule.field)
        if rule.type == "pattern":
            fields = strategy_for(claim).input_fields or (claim,)
            return first_present({**data.raw, **data.processed}, *fields)
        return self.mapper.extract_actual_value(template, data, claim, params, now)

    def generate_circuit_input(
        self,
        template: Template,
        extracted_data: ExtractedData,
        claim: str,
        params: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> CircuitInput:
        """
        Raises:
            ConfigurationError: If no mapping exists for the template/claim.
        """
        config = self.get_circuit_config(template.domain, claim)
        if config is None:
            raise ConfigurationError(
                f"No circuit configuration found for {template.domain}:{claim}"
            )
        return self.mapper.convert(template, extracted_data, claim, params, config=config, now=now)

    def clear(self) -> None:
        with self._write_lock:
            self._mappings = MappingProxyType({})
        logger.info("All template circuit mappings cleared")

    def __contains__(self, domain: object) -> bool:
        return domain in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)
