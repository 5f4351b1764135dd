"""
Claim circuit signals from a validated circuit input.

The claim circuit reads a record from ``extracted_data``:

    bytes 0..8   timestamp, little-endian unix seconds
    bytes 8..16  actual value, little-endian

and compares the whole record value against ``threshold_value``. Expressing
the threshold over the same record (``timestamp + threshold * 2**64``)
keeps every comparison meaningful for the value half:

    record >  timestamp + t * 2**64        iff   value > t
    record >  timestamp + t * 2**64 - 1    iff   value >= t
    record == timestamp + 1 * 2**64        iff   value == 1
"""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, List, Optional, Sequence

from ..circuits.authenticity import TemplateDescriptor
from ..circuits.claim import ClaimCircuit
from ..circuits.sponge import domain_hash, hash_bytes
from ..config import (
    CLAIM_TYPE_EQ,
    CLAIM_TYPE_GT,
    MAX_AUTHORIZED_DOMAINS,
    TEMPLATE_DATA_LENGTH,
    TIMESTAMP_BYTES,
    TIMESTAMP_MAX_FUTURE_SECONDS,
    TIMESTAMP_MAX_PAST_SECONDS,
)
from ..templates.mapper import canonical_json, template_fingerprint
from ..types import CircuitConfig, CircuitInput, ProofMetadata, TLSSessionData, Template
from .evidence import encode_evidence

logger = logging.getLogger(__name__)

RECORD_LENGTH = 2 * TIMESTAMP_BYTES
VALUE_LIMIT = 2 ** (8 * TIMESTAMP_BYTES)


def comparison_for(config: CircuitConfig) -> int:
    """Comparator operation for a claim kind: GT for comparisons, else EQ against 1."""
    return CLAIM_TYPE_GT if config.claim_type == "comparison" else CLAIM_TYPE_EQ


def encode_record(timestamp: int, value: int) -> bytes:
    """
    Raises:
        ValueError: If either field is negative or does not fit 8 bytes.
    """
    for label, number in (("timestamp", timestamp), ("value", value)):
        if number < 0:
            raise ValueError(f"{label} must not be negative, got {number}")
        if number >= VALUE_LIMIT:
            raise ValueError(f"{label} does not fit {TIMESTAMP_BYTES} bytes: {number}")
    return timestamp.to_bytes(TIMESTAMP_BYTES, "little") + value.to_bytes(
        TIMESTAMP_BYTES, "little"
    )


def record_threshold(timestamp: int, threshold: int) -> int:
    """Threshold over the record layout; see the module docstring."""
    if threshold < 0:
        raise ValueError(f"threshold must not be negative, got {threshold}")
    if threshold >= VALUE_LIMIT:
        raise ValueError(f"threshold does not fit {TIMESTAMP_BYTES} bytes: {threshold}")
    return timestamp + threshold * VALUE_LIMIT


def authorized_domains(template: Template, limit: int = MAX_AUTHORIZED_DOMAINS) -> List[str]:
    domains: List[str] = []
    candidates = [template.domain]
    if template.domain.startswith("www."):
        candidates.append(template.domain[4:])
    if template.validation is not None:
        candidates.extend(template.validation.allowed_domains)
    for domain in candidates:
        normalized = domain.strip().lower()
        if normalized and normalized not in domains:
            domains.append(normalized)
    if len(domains) > limit:
        logger.warning(
            "Template %s authorizes %d domains; only the first %d are committed",
            template.name,
            len(domains),
            limit,
        )
    return domains[:limit]


def descriptor_for(
    template: Template,
    *,
    data_size: int = TEMPLATE_DATA_LENGTH,
    max_domains: int = MAX_AUTHORIZED_DOMAINS,
) -> TemplateDescriptor:
    """
    Template descriptor committed by the authenticity check.

    ``template_data`` holds sponge hashes of the selectors, the extractors
    and the whole template, so any change to the template changes the
    commitment.
    """
    template_data = [
        hash_bytes(canonical_json(dict(template.selectors))),
        hash_bytes(canonical_json(dict(template.extractors))),
        hash_bytes(canonical_json(template.to_dict())),
    ]
    return TemplateDescriptor.build(
        template_id=int(template_fingerprint(template)),
        version=template.version_number,
        valid_from=template.valid_from,
        valid_until=template.valid_until,
        template_data=template_data,
        domains=authorized_domains(template, max_domains),
        data_size=data_size,
        max_domains=max_domains,
    )


def session_material(evidence: TLSSessionData, max_length: int) -> bytes:
    """Canonical evidence bytes, or their SHA-256 digest when they do not fit."""
    encoded = encode_evidence(evidence)
    if len(encoded) <= max_length:
        return encoded
    return hashlib.sha256(encoded).digest()


def freshness_window(now: int) -> Dict[str, int]:
    return {
        "timestamp_min": max(0, now - TIMESTAMP_MAX_PAST_SECONDS),
        "timestamp_max": now + TIMESTAMP_MAX_FUTURE_SECONDS,
    }


def build_claim_signals(
    circuit: ClaimCircuit,
    circuit_input: CircuitInput,
    config: CircuitConfig,
    descriptor: TemplateDescriptor,
    domain: str,
    session: bytes,
    now: int,
    template_hash: Optional[int] = None,
    inclusive: bool = False,
) -> Dict[str, object]:
    """
    ``inclusive`` turns the GT comparison into value >= threshold.

    Raises:
        ValueError: If the value or threshold cannot be encoded in the record.
    """
    operation = comparison_for(config)
    threshold = circuit_input.threshold if operation == CLAIM_TYPE_GT else 1
    record = encode_record(circuit_input.timestamp, circuit_input.actual_value)
    threshold_value = record_threshold(circuit_input.timestamp, threshold)
    if inclusive and operation == CLAIM_TYPE_GT:
        threshold_value -= 1
    return circuit.inputs_for(
        record,
        session,
        descriptor,
        domain,
        threshold_value=threshold_value,
        claim_type=operation,
        template_hash=template_hash,
        **freshness_window(now),
    )


def metadata_mismatches(
    circuit: ClaimCircuit, public_inputs: Sequence[str], metadata: ProofMetadata
) -> List[str]:
    """
    Check the metadata a proof carries against its public signals.

    The domain must hash to the public ``domain_hash`` and the metadata
    timestamp must fall inside the public freshness window.

    Raises:
        ValueError: If a public signal is not an integer.
    """
    names = circuit.public_signal_names()
    if len(public_inputs) != len(names):
        return [f"Expected {len(names)} public signals, got {len(public_inputs)}"]
    public = {name: int(value) for name, value in zip(names, public_inputs)}
    errors: List[str] = []
    if public["domain_hash"] != domain_hash(metadata.domain):
        errors.append(f"Domain {metadata.domain!r} does not match the proven domain")
    seconds = metadata.timestamp // 1000
    if not public["timestamp_min"] <= seconds <= public["timestamp_max"]:
        errors.append(f"Timestamp {metadata.timestamp} is outside the proven window")
    return errors
