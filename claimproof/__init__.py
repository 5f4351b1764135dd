"""
claimproof: zero-knowledge claim proofs over captured web data.

A template describes how to read values from a page. The proof
orchestrator maps extracted values onto a claim circuit, proves with
Groth16 and verifies the result.
"""

from __future__ import annotations

from .exceptions import (
    AssetError,
    ClaimProofError,
    ConfigurationError,
    ProvingError,
    TemplateError,
    ValidationError,
)
from .types import (
    CircuitConfig,
    CircuitInput,
    ExtractedData,
    ProofRequest,
    Template,
    TLSSessionData,
    ZKProof,
)

__version__ = "0.1.0"

__all__ = [
    "AssetError",
    "CircuitConfig",
    "CircuitInput",
    "ClaimProofError",
    "ConfigurationError",
    "ExtractedData",
    "ProofRequest",
    "ProvingError",
    "TLSSessionData",
    "Template",
    "TemplateError",
    "ValidationError",
    "ZKProof",
    "__version__",
]
