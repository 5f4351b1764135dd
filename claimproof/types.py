"""
Common types for claim proofs.

This module provides:
1. Template model (Template, TemplateValidation, CircuitTemplateConfig,
   ClaimDefinition, ValidationRule) with the camelCase wire keys used by
   template files
2. Circuit configuration and input types (CircuitConfig, CircuitInput,
   CircuitInfo, CompiledCircuitAssets)
3. Proof types (Groth16Proof, ProofMetadata, ZKProof) with JSON and CBOR
   serialization
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

try:
    import cbor2
except ImportError:
    raise ImportError(
        "cbor2 is required for proof serialization. "
        "Install with: pip install cbor2"
    )

from .circuits.base import Circuit
from .config import (
    CIRCUIT_VERSION,
    CLAIM_KINDS,
    DATA_TYPES,
    DEFAULT_MAX_DATA_LENGTH,
    GENERIC_CIRCUIT_PREFIX,
    MAX_CLAIM_LENGTH,
    PROOF_VERSION,
)

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_DECIMAL_RE = re.compile(r"^\d+$")

MAX_VALID_UNTIL = 2**32 - 1

# ============================================================================
# TEMPLATE MODEL
# ============================================================================


@dataclass(frozen=True)
class ValidationRule:
    field: str
    type: str
    error_message: str
    constraint: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValidationRule":
        return cls(
            field=data["field"],
            type=data["type"],
            error_message=data.get("errorMessage", ""),
            constraint=data.get("constraint"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "field": self.field,
            "type": self.type,
            "errorMessage": self.error_message,
        }
        if self.constraint is not None:
            out["constraint"] = self.constraint
        return out


@dataclass(frozen=True)
class ClaimDefinition:
    name: str
    data_type: str
    claim_type: str
    description: str = ""
    max_data_length: Optional[int] = None
    validation: Tuple[ValidationRule, ...] = ()
    pattern: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClaimDefinition":
        return cls(
            name=data["name"],
            data_type=data["dataType"],
            claim_type=data["claimType"],
            description=data.get("description", ""),
            max_data_length=data.get("maxDataLength"),
            validation=tuple(ValidationRule.from_dict(r) for r in data.get("validation") or ()),
            pattern=data.get("pattern"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "dataType": self.data_type,
            "claimType": self.claim_type,
            "description": self.description,
        }
        if self.max_data_length is not None:
            out["maxDataLength"] = self.max_data_length
        if self.validation:
            out["validation"] = [r.to_dict() for r in self.validation]
        if self.pattern is not None:
            out["pattern"] = self.pattern
        return out


@dataclass(frozen=True)
class CircuitTemplateConfig:
    data_type: str
    claim_type: str
    max_data_length: int = DEFAULT_MAX_DATA_LENGTH
    supported_claims: Tuple[ClaimDefinition, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CircuitTemplateConfig":
        return cls(
            data_type=data["dataType"],
            claim_type=data["claimType"],
            max_data_length=data.get("maxDataLength", DEFAULT_MAX_DATA_LENGTH),
            supported_claims=tuple(
                ClaimDefinition.from_dict(c) for c in data.get("supportedClaims") or ()
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "dataType": self.data_type,
            "claimType": self.claim_type,
            "maxDataLength": self.max_data_length,
        }
        if self.supported_claims:
            out["supportedClaims"] = [c.to_dict() for c in self.supported_claims]
        return out


@dataclass(frozen=True)
class TemplateValidation:
    required_fields: Tuple[str, ...] = ()
    max_data_size: Optional[int] = None
    allowed_domains: Tuple[str, ...] = ()
    field_types: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplateValidation":
        return cls(
            required_fields=tuple(data.get("requiredFields") or ()),
            max_data_size=data.get("maxDataSize"),
            allowed_domains=tuple(data.get("allowedDomains") or ()),
            field_types=dict(data.get("fieldTypes") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.required_fields:
            out["requiredFields"] = list(self.required_fields)
        if self.max_data_size is not None:
            out["maxDataSize"] = self.max_data_size
        if self.allowed_domains:
            out["allowedDomains"] = list(self.allowed_domains)
        if self.field_types:
            out["fieldTypes"] = dict(self.field_types)
        return out


@dataclass(frozen=True)
class Template:
    """
    Named, versioned description of how to extract claim data from a domain.

    ``valid_from``/``valid_until`` bound the template's validity window in
    unix seconds; they are committed into the template hash checked by the
    authenticity circuit.
    """

    domain: str
    name: str
    selectors: Mapping[str, str] = field(default_factory=dict)
    extractors: Mapping[str, str] = field(default_factory=dict)
    version: str = "1.0.0"
    validation: Optional[TemplateValidation] = None
    circuit_config: Optional[CircuitTemplateConfig] = None
    valid_from: int = 0
    valid_until: int = MAX_VALID_UNTIL

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Template":
        if not isinstance(data, Mapping):
            raise ValueError("template must be a mapping")
        validation = data.get("validation")
        circuit_config = data.get("circuitConfig")
        try:
            return cls(
                domain=data["domain"],
                name=data["name"],
                selectors=dict(data.get("selectors") or {}),
                extractors=dict(data.get("extractors") or {}),
                version=str(data.get("version") or "1.0.0"),
                validation=TemplateValidation.from_dict(validation) if validation else None,
                circuit_config=(
                    CircuitTemplateConfig.from_dict(circuit_config) if circuit_config else None
                ),
                valid_from=int(data.get("validFrom", 0)),
                valid_until=int(data.get("validUntil", MAX_VALID_UNTIL)),
            )
        except KeyError as exc:
            raise ValueError(f"template is missing required key {exc}") from None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "domain": self.domain,
            "name": self.name,
            "version": self.version,
            "selectors": dict(self.selectors),
            "extractors": dict(self.extractors),
        }
        if self.validation is not None:
            out["validation"] = self.validation.to_dict()
        if self.circuit_config is not None:
            out["circuitConfig"] = self.circuit_config.to_dict()
        if self.valid_from != 0:
            out["validFrom"] = self.valid_from
        if self.valid_until != MAX_VALID_UNTIL:
            out["validUntil"] = self.valid_until
        return out

    @property
    def version_number(self) -> int:
        """Semantic version packed as ``major << 32 | minor << 16 | patch``."""
        match = _VERSION_RE.match(self.version)
        if match is None:
            raise ValueError(f"invalid template version: {self.version!r}")
        major, minor, patch = (int(part) for part in match.groups())
        return (major << 32) | (minor << 16) | patch


# ============================================================================
# EXTRACTION AND EVIDENCE
# ============================================================================


@dataclass(frozen=True)
class ExtractedData:
    """Values captured from one page; ``timestamp`` is unix milliseconds."""

    raw: Mapping[str, str]
    processed: Mapping[str, Any]
    timestamp: int
    url: str
    domain: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExtractedData":
        return cls(
            raw=dict(data.get("raw") or {}),
            processed=dict(data.get("processed") or {}),
            timestamp=int(data["timestamp"]),
            url=data.get("url", ""),
            domain=data["domain"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": dict(self.raw),
            "processed": dict(self.processed),
            "timestamp": self.timestamp,
            "url": self.url,
            "domain": self.domain,
        }


@dataclass(frozen=True)
class TLSSessionData:
    server_certificate: str
    session_keys: Mapping[str, str]
    handshake_messages: Tuple[str, ...]
    timestamp: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TLSSessionData":
        return cls(
            server_certificate=data["serverCertificate"],
            session_keys=dict(data["sessionKeys"]),
            handshake_messages=tuple(data.get("handshakeMessages") or ()),
            timestamp=int(data["timestamp"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serverCertificate": self.server_certificate,
            "sessionKeys": dict(self.session_keys),
            "handshakeMessages": list(self.handshake_messages),
            "timestamp": self.timestamp,
        }


# ============================================================================
# CIRCUIT CONFIGURATION AND INPUT
# ============================================================================


@dataclass(frozen=True)
class CircuitConfig:
    """Parameters selecting a dynamic claim circuit."""

    data_type: str
    claim_type: str
    max_data_length: int = DEFAULT_MAX_DATA_LENGTH

    def __post_init__(self) -> None:
        if self.data_type not in DATA_TYPES:
            raise ValueError(f"unknown data type: {self.data_type!r}")
        if self.claim_type not in CLAIM_KINDS:
            raise ValueError(f"unknown claim type: {self.claim_type!r}")
        if self.max_data_length < 1:
            raise ValueError("max_data_length must be positive")

    @property
    def signature(self) -> str:
        return (
            f"{GENERIC_CIRCUIT_PREFIX}_{self.data_type}_{self.claim_type}_{self.max_data_length}"
        )

    @classmethod
    def from_signature(cls, signature: str) -> "CircuitConfig":
        """
        Parse ``generic_<dataType>_<claimType>_<maxDataLength>``.

        Raises:
            ValueError: If the signature is not a structured circuit name.
        """
        parts = signature.split("_")
        if len(parts) != 4 or parts[0] != GENERIC_CIRCUIT_PREFIX or not parts[3].isdigit():
            raise ValueError(f"not a structured circuit id: {signature!r}")
        return cls(parts[1], parts[2], int(parts[3]))

    @classmethod
    def from_template_config(cls, config: CircuitTemplateConfig) -> "CircuitConfig":
        return cls(config.data_type, config.claim_type, config.max_data_length)


@dataclass(frozen=True)
class CircuitInput:
    """
    Fixed-width circuit input derived from one proof request.

    ``data`` always holds exactly ``max_data_length`` elements and ``claim``
    exactly 16, whatever the size of the source data.
    """

    data_hash: str
    claim_hash: str
    template_hash: str
    threshold: int
    timestamp: int
    data: Tuple[int, ...]
    claim: Tuple[int, ...]
    data_type: int
    claim_type: int
    actual_value: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataHash": self.data_hash,
            "claimHash": self.claim_hash,
            "templateHash": self.template_hash,
            "threshold": self.threshold,
            "timestamp": self.timestamp,
            "data": list(self.data),
            "claim": list(self.claim),
            "dataType": self.data_type,
            "claimType": self.claim_type,
            "actualValue": self.actual_value,
        }


@dataclass(frozen=True)
class CircuitInfo:
    name: str
    max_data_length: int
    max_claim_length: int = MAX_CLAIM_LENGTH
    version: str = CIRCUIT_VERSION
    compiled: str = ""
    template_support: Tuple[str, ...] = ("generic",)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CircuitInfo":
        return cls(
            name=data["name"],
            max_data_length=int(data["maxDataLength"]),
            max_claim_length=int(data.get("maxClaimLength", MAX_CLAIM_LENGTH)),
            version=data.get("version", CIRCUIT_VERSION),
            compiled=data.get("compiled", ""),
            template_support=tuple(data.get("templateSupport") or ("generic",)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "maxDataLength": self.max_data_length,
            "maxClaimLength": self.max_claim_length,
            "version": self.version,
            "compiled": self.compiled,
            "templateSupport": list(self.template_support),
        }


@dataclass(frozen=True)
class CompiledCircuitAssets:
    """
    Everything needed to prove and verify one circuit.

    ``witness_program`` is either a Python ``Circuit`` that computes its own
    witness or the path of a compiled ``.wasm`` witness generator.
    """

    witness_program: Union[Circuit, Path]
    proving_key: Path
    verification_key: Mapping[str, Any]
    info: CircuitInfo


# ============================================================================
# PROOFS
# ============================================================================


def _decimal(value: Any, name: str) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not _DECIMAL_RE.match(value):
        raise ValueError(f"{name} must be a base-10 string")
    return value


def _pair(value: Any, name: str) -> Tuple[str, str]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"{name} must hold exactly 2 elements")
    return (_decimal(value[0], f"{name}[0]"), _decimal(value[1], f"{name}[1]"))


@dataclass(frozen=True)
class Groth16Proof:
    """
    Groth16 proof points as decimal strings.

    The pairs of ``b`` are stored with their coordinates swapped relative to
    snarkjs ``pi_b``, the convention expected by on-chain verifiers.
    """

    a: Tuple[str, str]
    b: Tuple[Tuple[str, str], Tuple[str, str]]
    c: Tuple[str, str]

    @classmethod
    def from_snarkjs(cls, proof: Mapping[str, Any]) -> "Groth16Proof":
        pi_a, pi_b, pi_c = proof["pi_a"], proof["pi_b"], proof["pi_c"]
        return cls(
            a=_pair(pi_a[:2], "pi_a"),
            b=(
                _pair([pi_b[0][1], pi_b[0][0]], "pi_b[0]"),
                _pair([pi_b[1][1], pi_b[1][0]], "pi_b[1]"),
            ),
            c=_pair(pi_c[:2], "pi_c"),
        )

    def to_snarkjs(self) -> Dict[str, Any]:
        return {
            "pi_a": [self.a[0], self.a[1], "1"],
            "pi_b": [
                [self.b[0][1], self.b[0][0]],
                [self.b[1][1], self.b[1][0]],
                ["1", "0"],
            ],
            "pi_c": [self.c[0], self.c[1], "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Groth16Proof":
        if not isinstance(data, Mapping):
            raise ValueError("proof must be a mapping")
        b = data.get("b")
        if not isinstance(b, (list, tuple)) or len(b) != 2:
            raise ValueError("proof.b must be a 2x2 matrix")
        return cls(
            a=_pair(data.get("a"), "proof.a"),
            b=(_pair(b[0], "proof.b[0]"), _pair(b[1], "proof.b[1]")),
            c=_pair(data.get("c"), "proof.c"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "a": list(self.a),
            "b": [list(self.b[0]), list(self.b[1])],
            "c": list(self.c),
        }


@dataclass(frozen=True)
class ProofMetadata:
    session_id: str
    template: str
    claim: str
    timestamp: int
    domain: str
    circuit_id: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProofMetadata":
        try:
            return cls(
                session_id=str(data["sessionId"]),
                template=str(data["template"]),
                claim=str(data["claim"]),
                timestamp=int(data["timestamp"]),
                domain=str(data["domain"]),
                circuit_id=str(data["circuitId"]),
            )
        except KeyError as exc:
            raise ValueError(f"metadata is missing {exc}") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "template": self.template,
            "claim": self.claim,
            "timestamp": self.timestamp,
            "domain": self.domain,
            "circuitId": self.circuit_id,
        }


@dataclass(frozen=True)
class ZKProof:
    """
    Self-describing claim proof.

    Immutable once produced; ``to_dict``/``from_dict`` give the JSON wire
    format and ``serialize``/``deserialize`` a compact CBOR encoding with a
    version field.
    """

    proof: Groth16Proof
    public_inputs: Tuple[str, ...]
    metadata: ProofMetadata

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ZKProof":
        """
        Raises:
            ValueError: If any field is missing or malformed.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Invalid proof format: expected a mapping")
        public_inputs = data.get("publicInputs")
        if not isinstance(public_inputs, (list, tuple)):
            raise ValueError("Invalid proof format: publicInputs must be a list")
        metadata = data.get("metadata")
        if not isinstance(metadata, Mapping):
            raise ValueError("Invalid proof format: missing metadata")
        return cls(
            proof=Groth16Proof.from_dict(data.get("proof")),
            public_inputs=tuple(
                _decimal(v, f"publicInputs[{i}]") for i, v in enumerate(public_inputs)
            ),
            metadata=ProofMetadata.from_dict(metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof": self.proof.to_dict(),
            "publicInputs": list(self.public_inputs),
            "metadata": self.metadata.to_dict(),
        }

    def serialize(self) -> bytes:
        """Serialize proof to bytes using CBOR."""
        return cbor2.dumps({"v": PROOF_VERSION, **self.to_dict()})

    @classmethod
    def deserialize(cls, data: bytes) -> "ZKProof":
        """
        Deserialize proof from CBOR bytes.

        Raises:
            ValueError: If version is unsupported or data is invalid
        """
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise ValueError(f"Failed to deserialize proof: {e}") from e

        if not isinstance(obj, dict):
            raise ValueError("Invalid proof format: missing required fields")

        version = obj.pop("v", PROOF_VERSION)
        if version != PROOF_VERSION:
            raise ValueError(
                f"Unsupported proof version: {version} "
                f"(expected {PROOF_VERSION})"
            )
        return cls.from_dict(obj)

    @property
    def proof_valid(self) -> bool:
        """First public signal of a claim circuit: the proof_valid output."""
        return bool(self.public_inputs) and self.public_inputs[0] == "1"


# ============================================================================
# REQUESTS
# ============================================================================


@dataclass(frozen=True)
class ProofRequest:
    """One item of a batch proof request."""

    session_id: str
    template: Template
    claim: str
    extracted_data: ExtractedData
    tls_data: TLSSessionData
    params: Mapping[str, Any] = field(default_factory=dict)


def pad_to(values: Sequence[int], length: int) -> List[int]:
    """Truncate or zero-pad ``values`` to exactly ``length`` elements."""
    return list(values[:length]) + [0] * max(0, length - len(values))
