"""
Alternative encodings of a ``ZKProof``.

- chain: eight integers ``a0 a1 b01 b00 b11 b10 c0 c1`` plus integer
  public signals, the calldata layout of Groth16 verifier contracts
- storage: the wire dict with a content id and a ``storedAt`` stamp
- compressed: the wire dict with one- and two-letter keys
- presentation: a flat human-readable summary
"""

from __future__ import annotations

import hashlib
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from ..types import Groth16Proof, ProofMetadata, ZKProof

CHAIN_PROOF_LENGTH = 8

# Keys added to metadata by storage backends
STORAGE_ONLY_KEYS = ("storedAt", "storageLocation")

_COMPRESSED_KEYS = {
    "sessionId": "s",
    "template": "t",
    "claim": "c",
    "timestamp": "ts",
    "domain": "d",
    "circuitId": "ci",
}

UNKNOWN_METADATA = ProofMetadata(
    session_id="unknown",
    template="unknown",
    claim="unknown",
    timestamp=0,
    domain="unknown",
    circuit_id="unknown",
)


# ============================================================================
# CHAIN
# ============================================================================


def format_for_chain(proof: ZKProof) -> Dict[str, Any]:
    p = proof.proof
    # b is already stored in the swapped order verifier contracts expect
    proof_data = [
        int(p.a[0]),
        int(p.a[1]),
        int(p.b[0][1]),
        int(p.b[0][0]),
        int(p.b[1][1]),
        int(p.b[1][0]),
        int(p.c[0]),
        int(p.c[1]),
    ]
    return {
        "proofData": proof_data,
        "publicSignals": [int(s) for s in proof.public_inputs],
        "metadata": proof.metadata.to_dict(),
    }


def parse_from_chain(chain_data: Mapping[str, Any]) -> ZKProof:
    """
    Raises:
        ValueError: If the proof does not hold exactly eight elements.
    """
    d = list(chain_data["proofData"])
    if len(d) != CHAIN_PROOF_LENGTH:
        raise ValueError("Invalid proof data length")
    return ZKProof(
        proof=Groth16Proof(
            a=(str(d[0]), str(d[1])),
            b=((str(d[3]), str(d[2])), (str(d[5]), str(d[4]))),
            c=(str(d[6]), str(d[7])),
        ),
        public_inputs=tuple(str(s) for s in chain_data.get("publicSignals", ())),
        metadata=ProofMetadata.from_dict(chain_data["metadata"]),
    )


# ============================================================================
# STORAGE
# ============================================================================


def storage_id(proof: ZKProof) -> str:
    """Hex SHA-256 of the proof points and public inputs."""
    body = json.dumps(
        {"proof": proof.proof.to_dict(), "publicInputs": list(proof.public_inputs)},
        separators=(",", ":"),
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def format_for_storage(proof: ZKProof, stored_at: Optional[int] = None) -> Dict[str, Any]:
    stamp = stored_at if stored_at is not None else int(time.time() * 1000)
    return {
        "id": storage_id(proof),
        "proof": proof.proof.to_dict(),
        "publicInputs": list(proof.public_inputs),
        "metadata": {**proof.metadata.to_dict(), "storedAt": stamp},
    }


def parse_from_storage(stored: Mapping[str, Any]) -> ZKProof:
    metadata = {
        key: value
        for key, value in (stored.get("metadata") or {}).items()
        if key not in STORAGE_ONLY_KEYS
    }
    return ZKProof.from_dict(
        {
            "proof": stored.get("proof"),
            "publicInputs": stored.get("publicInputs"),
            "metadata": metadata,
        }
    )


# ============================================================================
# COMPRESSED
# ============================================================================


def compress_proof(proof: ZKProof) -> Dict[str, Any]:
    metadata = proof.metadata.to_dict()
    return {
        "p": proof.proof.to_dict(),
        "i": list(proof.public_inputs),
        "m": {short: metadata[key] for key, short in _COMPRESSED_KEYS.items()},
    }


def decompress_proof(compressed: Mapping[str, Any]) -> ZKProof:
    short = compressed.get("m")
    if short:
        metadata: Dict[str, Any] = {key: short.get(s) for key, s in _COMPRESSED_KEYS.items()}
    else:
        metadata = UNKNOWN_METADATA.to_dict()
    return ZKProof.from_dict(
        {"proof": compressed.get("p"), "publicInputs": compressed.get("i"), "metadata": metadata}
    )


# ============================================================================
# PRESENTATION
# ============================================================================


def format_for_presentation(proof: ZKProof) -> Dict[str, Any]:
    m = proof.metadata
    when = datetime.fromtimestamp(m.timestamp / 1000, timezone.utc) if m.timestamp else None
    return {
        "sessionId": m.session_id or "unknown",
        "template": m.template or "unknown",
        "claim": m.claim or "unknown",
        "domain": m.domain or "unknown",
        "timestamp": when.isoformat() if when else "unknown",
        "proofSummary": {
            "valid": proof.proof_valid,
            "publicInputs": list(proof.public_inputs),
            "circuitId": m.circuit_id or "unknown",
        },
    }


# ============================================================================
# SHAPE CHECKS
# ============================================================================


def _pairs(value: Any, minimum: int = 2) -> bool:
    return isinstance(value, (list, tuple)) and len(value) >= minimum


def validate_format(obj: Any) -> bool:
    """Loose structural check of a wire-format proof dict; never raises."""
    if not isinstance(obj, Mapping):
        return False
    proof = obj.get("proof")
    if not isinstance(proof, Mapping) or not isinstance(obj.get("publicInputs"), list):
        return False
    a, b, c = proof.get("a"), proof.get("b"), proof.get("c")
    if not (_pairs(a) and _pairs(b) and _pairs(c)):
        return False
    return all(_pairs(pair) for pair in b)


def to_json(proof: ZKProof) -> str:
    return json.dumps(proof.to_dict(), indent=2)


def from_json(text: str) -> ZKProof:
    """
    Raises:
        ValueError: If the text is not JSON or not a well-formed proof.
    """
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise ValueError(f"Invalid JSON format: {exc}") from exc
    if not validate_format(parsed):
        raise ValueError("Invalid proof format")
    return ZKProof.from_dict(parsed)