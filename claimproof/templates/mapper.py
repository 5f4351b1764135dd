"""
Circuit Input Mapper.

Converts ``(template, extracted data, claim, params)`` into the fixed-width
``CircuitInput`` consumed by the claim circuits.

The three hashes carried by a ``CircuitInput`` are SHA-256 fingerprints of
the canonical JSON encodings, truncated to 8 bytes. They are advisory
metadata only: the circuits commit to their inputs with the sponge hash,
so a fingerprint never equals an in-circuit commitment.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from ..config import (
    CLAIM_KIND_CODES,
    DATA_TYPE_CODES,
    DEFAULT_MAX_DATA_LENGTH,
    FINGERPRINT_BYTES,
    MAX_CLAIM_LENGTH,
    MAX_DATA_LENGTH,
    TIMESTAMP_MAX_FUTURE_SECONDS,
    TIMESTAMP_MAX_PAST_SECONDS,
)
from ..exceptions import ExtractorSyntaxError
from ..types import CircuitConfig, CircuitInput, ExtractedData, Template, pad_to
from .claims import is_known_claim, strategy_for, threshold_for
from .extractors import parse_extractor

logger = logging.getLogger(__name__)


def canonical_json(value: Any) -> bytes:
    """Sorted-key, compact, UTF-8 JSON."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def fingerprint(data: bytes) -> str:
    """First 8 bytes of SHA-256 as a decimal string."""
    digest = hashlib.sha256(data).digest()[:FINGERPRINT_BYTES]
    return str(int.from_bytes(digest, "big"))


def template_fingerprint(template: Template) -> str:
    return fingerprint(
        canonical_json(
            {
                "domain": template.domain,
                "name": template.name,
                "version": template.version,
                "selectors": dict(template.selectors),
            }
        )
    )


def claim_payload(claim: str, params: Mapping[str, Any]) -> bytes:
    return canonical_json({**params, "claim": claim})


class CircuitMapper:
    """Stateless converter from application data to ``CircuitInput``."""

    def resolve_config(self, claim: str) -> CircuitConfig:
        strategy = strategy_for(claim)
        return CircuitConfig(strategy.data_type, strategy.claim_type, DEFAULT_MAX_DATA_LENGTH)

    def extract_actual_value(
        self,
        template: Template,
        extracted_data: ExtractedData,
        claim: str,
        params: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Value the claim is about, or None when the source fields are absent.

        Unknown claims fall back to a template extractor of the same name.
        """
        now = now or datetime.now(timezone.utc)
        if is_known_claim(claim):
            return strategy_for(claim).extract(extracted_data.raw, params, now)

        expression = template.extractors.get(claim)
        if expression is not None:
            try:
                return parse_extractor(expression).evaluate(extracted_data.raw, params, now)
            except ExtractorSyntaxError:
                logger.warning("Template %s has an invalid extractor for %s", template.name, claim)
                return None
        logger.warning("Unknown claim type: %s, returning 0", claim)
        return None

    def convert(
        self,
        template: Template,
        extracted_data: ExtractedData,
        claim: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        config: Optional[CircuitConfig] = None,
        now: Optional[datetime] = None,
    ) -> CircuitInput:
        """
        Build the fixed-width circuit input for one claim.

        ``data`` always has ``config.max_data_length`` elements and ``claim``
        always 16, truncated or zero-padded. ``timestamp`` is the capture time
        in unix seconds.
        """
        params = dict(params or {})
        config = config or self.resolve_config(claim)
        logger.debug("Converting %s/%s with %s", template.domain, claim, config.signature)

        actual_value = self.extract_actual_value(template, extracted_data, claim, params, now)
        data_bytes = canonical_json(dict(extracted_data.processed))
        claim_bytes = claim_payload(claim, params)

        return CircuitInput(
            data_hash=fingerprint(data_bytes),
            claim_hash=fingerprint(claim_bytes),
            template_hash=template_fingerprint(template),
            threshold=threshold_for(claim, params),
            timestamp=extracted_data.timestamp // 1000,
            data=tuple(pad_to(list(data_bytes), config.max_data_length)),
            claim=tuple(pad_to(list(claim_bytes), MAX_CLAIM_LENGTH)),
            data_type=DATA_TYPE_CODES[config.data_type],
            claim_type=CLAIM_KIND_CODES[config.claim_type],
            actual_value=0 if actual_value is None else actual_value,
        )

    def validate(self, circuit_input: CircuitInput, now: Optional[float] = None) -> List[str]:
        """
        Check a circuit input.

        Args:
            circuit_input: Input to check.
            now: Reference time in unix seconds (defaults to the clock).

        Returns:
            Every violated rule; empty when the input is valid.
        """
        now = time.time() if now is None else now
        errors: List[str] = []

        for name in ("data_hash", "claim_hash", "template_hash"):
            if not getattr(circuit_input, name):
                errors.append(f"Missing required hash field: {name}")

        if len(circuit_input.data) > MAX_DATA_LENGTH:
            errors.append(
                f"Data array exceeds maximum length: {len(circuit_input.data)} > {MAX_DATA_LENGTH}"
            )
        if len(circuit_input.claim) != MAX_CLAIM_LENGTH:
            errors.append(
                f"Claim array must have exactly {MAX_CLAIM_LENGTH} elements, "
                f"got {len(circuit_input.claim)}"
            )
        if any(not 0 <= v <= 255 for v in (*circuit_input.data, *circuit_input.claim)):
            errors.append("Data and claim arrays must hold byte values")

        if circuit_input.timestamp > now + TIMESTAMP_MAX_FUTURE_SECONDS:
            errors.append("Timestamp is too far in the future")
        if circuit_input.timestamp < now - TIMESTAMP_MAX_PAST_SECONDS:
            errors.append("Timestamp is too old")

        if circuit_input.data_type not in DATA_TYPE_CODES.values():
            errors.append(f"Invalid data type: {circuit_input.data_type}")
        if circuit_input.claim_type not in CLAIM_KIND_CODES.values():
            errors.append(f"Invalid claim type: {circuit_input.claim_type}")

        if errors:
            logger.error("Circuit input validation failed: %s", "; ".join(errors))
        return errors

    def is_valid(self, circuit_input: CircuitInput, now: Optional[float] = None) -> bool:
        return not self.validate(circuit_input, now)
