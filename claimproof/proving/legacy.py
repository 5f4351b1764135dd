"""
Legacy fixed-claim circuits.

Before circuits were derived from template configurations, a handful of
claim names were served by hand-written circuits stored on disk as
``<dir>/<name>/<name>.wasm``, ``<name>_final.zkey`` and
``verification_key.json``. Their names never start with ``generic_``, so
the two namespaces cannot collide. This path is kept separate from the
template pipeline so proofs produced by those circuits still verify.
"""

from __future__ import annotations

import json
import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from cachetools import LRUCache

from ..config import INFLUENCER_FOLLOWER_THRESHOLD
from ..exceptions import AssetError, ProvingError
from ..settings import load_settings
from ..types import ExtractedData, Groth16Proof, ProofMetadata, TLSSessionData, ZKProof
from .backend import ProvingBackend

logger = logging.getLogger(__name__)

LEGACY_CIRCUITS: Dict[str, str] = {
    "balanceGreaterThan": "balance_check",
    "hasMinimumBalance": "balance_check",
    "followersGreaterThan": "follower_check",
    "isInfluencer": "influencer_check",
    "hasVerifiedBadge": "verification_check",
    "accountAge": "age_check",
}
FALLBACK_CIRCUIT = "generic_claim"

FIELD_CHUNK_BYTES = 31
HEX_CHUNK_CHARS = 62

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_SIGNED_DECIMAL_RE = re.compile(r"^-?\d+$")
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


def legacy_circuit_name(claim: str) -> str:
    return LEGACY_CIRCUITS.get(claim, FALLBACK_CIRCUIT)


# ============================================================================
# LOADER
# ============================================================================


@dataclass(frozen=True)
class LegacyCircuit:
    name: str
    wasm_path: Path
    zkey_path: Path
    verification_key_path: Path


class LegacyCircuitLoader:
    """Locates legacy circuit files, caching the resolved paths."""

    def __init__(self, circuit_dir: Optional[Union[str, Path]] = None, maxsize: int = 16) -> None:
        self.circuit_dir = Path(circuit_dir) if circuit_dir else load_settings().legacy_dir
        self._circuits: LRUCache = LRUCache(maxsize)

    def load_circuit(self, name: str) -> LegacyCircuit:
        """
        Raises:
            AssetError: If any of the three circuit files is missing.
        """
        cached = self._circuits.get(name)
        if cached is not None:
            return cached
        base = self.circuit_dir / name
        circuit = LegacyCircuit(
            name=name,
            wasm_path=base / f"{name}.wasm",
            zkey_path=base / f"{name}_final.zkey",
            verification_key_path=base / "verification_key.json",
        )
        for path in (circuit.wasm_path, circuit.zkey_path, circuit.verification_key_path):
            if not path.is_file():
                raise AssetError(f"Circuit file not found: {path}")
        self._circuits[name] = circuit
        logger.info("Legacy circuit loaded: %s", name)
        return circuit

    def load_verification_key(self, name: str) -> Dict[str, Any]:
        """
        Raises:
            AssetError: If the circuit is missing or its key is unreadable.
        """
        circuit = self.load_circuit(name)
        try:
            return json.loads(circuit.verification_key_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise AssetError(f"Unreadable verification key for {name}: {exc}") from exc

    def circuit_info(self, name: str) -> Dict[str, Any]:
        circuit = self.load_circuit(name)
        return {
            "name": name,
            "wasmSize": circuit.wasm_path.stat().st_size,
            "zkeySize": circuit.zkey_path.stat().st_size,
        }

    def list_circuits(self) -> List[str]:
        return list(self._circuits.keys())

    def clear_cache(self) -> None:
        self._circuits.clear()


# ============================================================================
# INPUT FORMATTING
# ============================================================================


def string_to_field_elements(text: str) -> List[str]:
    """UTF-8 bytes split into 31-byte big-endian field elements."""
    data = text.encode("utf-8")
    return [
        str(int.from_bytes(data[i : i + FIELD_CHUNK_BYTES], "big"))
        for i in range(0, len(data), FIELD_CHUNK_BYTES)
    ]


def hex_to_field_element(value: str) -> str:
    """First 31 bytes of a hex string as a decimal field element, "0" if unusable."""
    clean = value[2:] if value.startswith("0x") else value
    if not clean or not _HEX_RE.match(clean):
        return "0"
    return str(int(clean[:HEX_CHUNK_CHARS], 16))


def parse_amount(value: Any) -> str:
    """Currency amount in cents, rounded half up."""
    if isinstance(value, bool):
        return "0"
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(_AMOUNT_NOISE.sub("", value))
        except ValueError:
            return "0"
    else:
        return "0"
    if not math.isfinite(amount):
        return "0"
    return str(math.floor(amount * 100 + 0.5))


def _scalar(value: Any) -> Optional[Any]:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        return string_to_field_elements(value)
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    return None


def claim_specific_inputs(claim: str, data: ExtractedData, now: float) -> Dict[str, Any]:
    processed = data.processed
    if claim in ("balanceGreaterThan", "hasMinimumBalance"):
        return {
            "balance": parse_amount(processed.get("balance")),
            "threshold": str(processed.get("threshold") or 0),
        }
    if claim == "followersGreaterThan":
        return {
            "followers": str(processed.get("followers") or 0),
            "threshold": str(processed.get("threshold") or 0),
        }
    if claim == "isInfluencer":
        return {
            "followers": str(processed.get("followers") or 0),
            "threshold": str(INFLUENCER_FOLLOWER_THRESHOLD),
        }
    if claim == "hasVerifiedBadge":
        return {"verified": "1" if processed.get("verified") else "0"}
    if claim == "accountAge":
        return {
            "createdAt": str(processed.get("createdAt") or "0"),
            "currentTime": str(int(now)),
        }
    return {"claimResult": "1"}


def format_legacy_input(
    extracted_data: ExtractedData,
    tls_data: TLSSessionData,
    claim: str,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """Input map for a legacy circuit: every value a decimal string or list of them."""
    now = time.time() if now is None else now
    keys = tls_data.session_keys
    inputs: Dict[str, Any] = {
        "timestamp": str(tls_data.timestamp // 1000),
        "domain": string_to_field_elements(extracted_data.domain),
        "url": string_to_field_elements(extracted_data.url),
        "clientRandom": hex_to_field_element(keys.get("clientRandom", "")),
        "serverRandom": hex_to_field_element(keys.get("serverRandom", "")),
        "masterSecret": hex_to_field_element(keys.get("masterSecret", "")),
    }
    for key, value in extracted_data.processed.items():
        encoded = _scalar(value)
        if encoded is not None:
            inputs[key] = encoded
    inputs.update(claim_specific_inputs(claim, extracted_data, now))
    logger.debug("Formatted legacy input for %s: %s", claim, sorted(inputs))
    return inputs


def validate_legacy_input(inputs: Mapping[str, Any]) -> bool:
    for value in inputs.values():
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            if not all(isinstance(v, str) and _SIGNED_DECIMAL_RE.match(v) for v in value):
                return False
        elif isinstance(value, str):
            if not _SIGNED_DECIMAL_RE.match(value):
                return False
        elif not isinstance(value, (int, float)):
            return False
    return True


# ============================================================================
# GENERATOR
# ============================================================================


class LegacyProofGenerator:
    """Proves and resolves keys for legacy circuits."""

    def __init__(self, loader: LegacyCircuitLoader, backend: ProvingBackend) -> None:
        self.loader = loader
        self.backend = backend

    def generate(
        self,
        session_id: str,
        template_name: str,
        claim: str,
        extracted_data: ExtractedData,
        tls_data: TLSSessionData,
        now: Optional[float] = None,
    ) -> ZKProof:
        """
        Blocking; callers on an event loop run it on a worker thread.

        Raises:
            AssetError: If the legacy circuit files are missing.
            ProvingError: If the input is malformed or the backend fails.
        """
        logger.warning("Using deprecated legacy proof generation for claim %s", claim)
        now = time.time() if now is None else now
        name = legacy_circuit_name(claim)
        circuit = self.loader.load_circuit(name)

        inputs = format_legacy_input(extracted_data, tls_data, claim, now)
        if not validate_legacy_input(inputs):
            raise ProvingError(f"Legacy input for {name} holds non-field values")
        try:
            proof, public_signals = self.backend.full_prove(
                inputs, circuit.wasm_path, circuit.zkey_path
            )
            groth16 = Groth16Proof.from_snarkjs(proof)
        except Exception as exc:
            raise ProvingError(f"Legacy proof generation failed for {name}: {exc}") from exc

        return ZKProof(
            proof=groth16,
            public_inputs=tuple(public_signals),
            metadata=ProofMetadata(
                session_id=session_id,
                template=template_name,
                claim=claim,
                timestamp=int(now * 1000),
                domain=extracted_data.domain,
                circuit_id=name,
            ),
        )

    def verification_key(self, circuit_id: str) -> Dict[str, Any]:
        return self.loader.load_verification_key(circuit_id)
