"""
In-process stand-ins for the snarkjs compiler and backend.

``WitnessCheckingBackend`` computes the real witness of a Python circuit
and returns its public signals with placeholder proof points, so every
stage of the pipeline except the Groth16 arithmetic runs for real. Proofs
it produces verify only against the same backend instance and carry no
cryptographic soundness.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .circuits.base import Circuit
from .circuits.claim import ClaimCircuit
from .config import MIN_DATA_LENGTH
from .exceptions import AssetError
from .proving.assets import circuit_info_for
from .types import CircuitConfig, CompiledCircuitAssets

SIMULATED_PROVING_KEY = Path("simulated.zkey")


def compact_claim_circuit(config: CircuitConfig) -> ClaimCircuit:
    """Claim circuit with small session and descriptor arrays."""
    return ClaimCircuit(
        max(config.max_data_length, MIN_DATA_LENGTH),
        64,
        template_data_size=4,
        max_domains=4,
        name=config.signature,
    )


class InMemoryCompiler:
    """Builds Python circuits without key generation; counts compilations."""

    def __init__(self, delay: float = 0.0, fail: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.compiled: List[str] = []
        self._lock = threading.Lock()

    def compile(self, config: CircuitConfig) -> CompiledCircuitAssets:
        with self._lock:
            self.compiled.append(config.signature)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise AssetError(f"compilation disabled for {config.signature}")
        return CompiledCircuitAssets(
            witness_program=compact_claim_circuit(config),
            proving_key=SIMULATED_PROVING_KEY,
            verification_key={"protocol": "simulated", "circuit": config.signature},
            info=circuit_info_for(config, compiled="simulated"),
        )


def _digest(public_signals: Sequence[str]) -> str:
    return hashlib.sha256(json.dumps(list(public_signals)).encode("utf-8")).hexdigest()


class WitnessCheckingBackend:
    """``ProvingBackend`` that checks the witness but does not prove."""

    def __init__(self) -> None:
        self._issued: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()
        self.prove_calls = 0

    def full_prove(
        self,
        inputs: Mapping[str, Any],
        witness_program: Union[Circuit, Path],
        proving_key: Path,
    ) -> Tuple[Dict[str, Any], List[str]]:
        if not isinstance(witness_program, Circuit):
            raise RuntimeError("simulated backend needs a Python circuit")
        cs = witness_program.calculate_witness(inputs)
        public_signals = [str(v) for v in cs.public_signals()]
        tag = int(_digest(public_signals)[:16], 16)
        proof = {
            "pi_a": [str(tag), "1", "1"],
            "pi_b": [["2", "3"], ["4", "5"], ["1", "0"]],
            "pi_c": ["6", str(tag), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }
        with self._lock:
            self.prove_calls += 1
            self._issued.add((witness_program.name, _digest(public_signals)))
        return proof, public_signals

    def verify(
        self,
        verification_key: Mapping[str, Any],
        public_signals: Sequence[str],
        proof: Mapping[str, Any],
    ) -> bool:
        circuit: Optional[str] = verification_key.get("circuit")
        expected_tag = str(int(_digest(public_signals)[:16], 16))
        if proof.get("pi_a", [None])[0] != expected_tag:
            return False
        with self._lock:
            return (circuit, _digest(public_signals)) in self._issued
