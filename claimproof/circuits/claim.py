"""
Claim circuit: proves a comparison over private extracted data.

The generic circuit composes the template authenticity check and the
comparator, commits to the private data and session arrays, and checks the
record timestamp (little-endian bytes 0..8 of ``extracted_data``) against a
public freshness window:

    proof_valid = template_valid AND comparator_result
                  AND timestamp_valid AND data_length != 0

The balance and follower circuits are the generic circuit with smaller
arrays and ``claim_type`` fixed to GT.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..config import (
    BALANCE_MAX_DATA_LENGTH,
    BALANCE_MAX_TLS_LENGTH,
    CLAIM_TYPE_GT,
    FOLLOWER_MAX_DATA_LENGTH,
    FOLLOWER_MAX_TLS_LENGTH,
    GENERIC_MAX_DATA_LENGTH,
    GENERIC_MAX_TLS_LENGTH,
    LENGTH_BITS,
    MAX_AUTHORIZED_DOMAINS,
    TEMPLATE_DATA_LENGTH,
    TIMESTAMP_BYTES,
)
from .authenticity import (
    CLAIM_CIRCUIT_NAMES,
    TemplateAuthenticityCircuit,
    TemplateDescriptor,
    TemplateRegistryCircuit,
    authenticity_gadget,
    descriptor_signals,
    descriptor_view,
    time_window_gadget,
)
from .base import Circuit, SignalSpec
from .comparator import ComparatorCircuit, comparator_gadget
from .constraints import LC, ConstraintSystem
from .gadgets import (
    and_all,
    assert_equal,
    is_zero,
    less_eq_than,
    not_,
    range_check,
    weighted_sum,
)
from .sponge import PACK_BYTES, domain_hash, pack_bytes, sponge_hash, sponge_hash_gadget


def commit_bytes(values: Sequence[int], length: int) -> int:
    """Off-circuit commitment matching the claim circuit's array hashes."""
    return sponge_hash([length, *pack_bytes(bytes(values))])


def _commit_gadget(cs: ConstraintSystem, values: Sequence[LC], length: LC) -> LC:
    chunks = [
        cs.materialize(weighted_sum(values[i : i + PACK_BYTES], 256), "pack")
        for i in range(0, len(values), PACK_BYTES)
    ]
    return sponge_hash_gadget(cs, [length, *chunks])


class ClaimCircuit(Circuit):
    """Generic claim circuit; ``fixed_claim_type`` removes the public input."""

    OUTPUTS = ("proof_valid", "data_hash", "session_hash")

    def __init__(
        self,
        max_data_length: int = GENERIC_MAX_DATA_LENGTH,
        max_tls_length: int = GENERIC_MAX_TLS_LENGTH,
        *,
        template_data_size: int = TEMPLATE_DATA_LENGTH,
        max_domains: int = MAX_AUTHORIZED_DOMAINS,
        fixed_claim_type: Optional[int] = None,
        name: Optional[str] = None,
    ) -> None:
        if max_data_length < TIMESTAMP_BYTES:
            raise ValueError(f"max_data_length must be at least {TIMESTAMP_BYTES}")
        self.max_data_length = max_data_length
        self.max_tls_length = max_tls_length
        self.template_data_size = template_data_size
        self.max_domains = max_domains
        self.fixed_claim_type = fixed_claim_type
        super().__init__(name or f"claim_{max_data_length}_{max_tls_length}")

    def public_signal_names(self) -> List[str]:
        """Public signal order of a proof: outputs, then public inputs."""
        return [*self.OUTPUTS, *self.public_input_names()]

    def signals(self) -> List[SignalSpec]:
        public = [SignalSpec("template_hash", public=True)]
        if self.fixed_claim_type is None:
            public.append(SignalSpec("claim_type", public=True))
        public += [
            SignalSpec("threshold_value", public=True),
            SignalSpec("domain_hash", public=True),
            SignalSpec("timestamp_min", public=True),
            SignalSpec("timestamp_max", public=True),
        ]
        return [
            SignalSpec("extracted_data", self.max_data_length),
            SignalSpec("tls_session_data", self.max_tls_length),
            SignalSpec("data_length"),
            SignalSpec("tls_length"),
            *descriptor_signals(self.template_data_size, self.max_domains, CLAIM_CIRCUIT_NAMES),
            *public,
        ]

    def synthesize(self, cs: ConstraintSystem, inputs: Mapping[str, object]) -> None:
        s = self.allocate_inputs(cs, inputs)
        data: List[LC] = s["extracted_data"]
        tls: List[LC] = s["tls_session_data"]
        claim_type = (
            s["claim_type"]
            if self.fixed_claim_type is None
            else LC.constant(self.fixed_claim_type)
        )

        with cs.scope("claim"):
            for byte in data + tls:
                range_check(cs, byte, 8)
            range_check(cs, s["data_length"], LENGTH_BITS)
            range_check(cs, s["tls_length"], LENGTH_BITS)
            assert_equal(
                cs, less_eq_than(cs, s["data_length"], self.max_data_length, LENGTH_BITS + 1), 1,
                "data_length_bound",
            )
            assert_equal(
                cs, less_eq_than(cs, s["tls_length"], self.max_tls_length, LENGTH_BITS + 1), 1,
                "tls_length_bound",
            )

            data_hash = _commit_gadget(cs, data, s["data_length"])
            session_hash = _commit_gadget(cs, tls, s["tls_length"])

            timestamp = cs.materialize(weighted_sum(data[:TIMESTAMP_BYTES], 256), "timestamp")
            timestamp_valid = time_window_gadget(
                cs, timestamp, s["timestamp_min"], s["timestamp_max"]
            )
            template_valid = authenticity_gadget(
                cs,
                s["template_hash"],
                s["domain_hash"],
                timestamp,
                descriptor_view(s, CLAIM_CIRCUIT_NAMES),
            )
            result = comparator_gadget(
                cs,
                claim_type,
                s["threshold_value"],
                0,
                data,
                s["data_length"],
                [LC()],
                0,
                bytes_checked=True,
            )
            non_empty = not_(is_zero(cs, s["data_length"]))
            proof_valid = and_all(cs, [template_valid, result, timestamp_valid, non_empty])

        cs.output("proof_valid", proof_valid)
        cs.output("data_hash", data_hash)
        cs.output("session_hash", session_hash)

    def inputs_for(
        self,
        record: bytes,
        session: bytes,
        descriptor: TemplateDescriptor,
        domain: str,
        *,
        threshold_value: int,
        timestamp_min: int,
        timestamp_max: int,
        claim_type: int = CLAIM_TYPE_GT,
        template_hash: Optional[int] = None,
    ) -> Dict[str, object]:
        """Assemble padded circuit inputs from raw bytes and a descriptor."""
        if len(record) > self.max_data_length:
            raise ValueError(f"record longer than {self.max_data_length} bytes")
        if len(session) > self.max_tls_length:
            raise ValueError(f"session data longer than {self.max_tls_length} bytes")
        inputs: Dict[str, object] = {
            "extracted_data": list(record) + [0] * (self.max_data_length - len(record)),
            "tls_session_data": list(session) + [0] * (self.max_tls_length - len(session)),
            "data_length": len(record),
            "tls_length": len(session),
            "template_hash": descriptor.commitment() if template_hash is None else template_hash,
            "threshold_value": threshold_value,
            "domain_hash": domain_hash(domain),
            "timestamp_min": timestamp_min,
            "timestamp_max": timestamp_max,
        }
        inputs.update(descriptor.signals(CLAIM_CIRCUIT_NAMES))
        if self.fixed_claim_type is None:
            inputs["claim_type"] = claim_type
        return inputs


def generic_proof_circuit() -> ClaimCircuit:
    return ClaimCircuit(GENERIC_MAX_DATA_LENGTH, GENERIC_MAX_TLS_LENGTH, name="generic_proof")


def balance_proof_circuit() -> ClaimCircuit:
    return ClaimCircuit(
        BALANCE_MAX_DATA_LENGTH,
        BALANCE_MAX_TLS_LENGTH,
        fixed_claim_type=CLAIM_TYPE_GT,
        name="balance_proof",
    )


def follower_proof_circuit() -> ClaimCircuit:
    return ClaimCircuit(
        FOLLOWER_MAX_DATA_LENGTH,
        FOLLOWER_MAX_TLS_LENGTH,
        fixed_claim_type=CLAIM_TYPE_GT,
        name="follower_proof",
    )


CIRCUIT_FACTORIES: Dict[str, Callable[[], Circuit]] = {
    "generic_proof": generic_proof_circuit,
    "balance_proof": balance_proof_circuit,
    "follower_proof": follower_proof_circuit,
    "dynamic_comparator": ComparatorCircuit,
    "template_validator": TemplateAuthenticityCircuit,
    "template_registry": TemplateRegistryCircuit,
}


def build_circuit(name: str) -> Circuit:
    """
    Instantiate a named circuit.

    Raises:
        ValueError: If ``name`` is not a known circuit.
    """
    try:
        factory = CIRCUIT_FACTORIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown circuit: {name!r}. Valid options: {', '.join(sorted(CIRCUIT_FACTORIES))}"
        ) from None
    return factory()
