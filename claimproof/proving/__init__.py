"""Proving pipeline: assets, backend, signals, orchestration and proof formats."""

from .assets import AssetCache, CircuitAssetCompiler, SnarkjsCircuitCompiler
from .backend import ProvingBackend, SnarkjsBackend
from .evidence import EvidenceSource, SimulatedEvidenceSource, encode_evidence
from .legacy import LegacyCircuitLoader, LegacyProofGenerator, legacy_circuit_name
from .orchestrator import ProofOrchestrator, ProofStage
from .signals import build_claim_signals, descriptor_for

__all__ = [
    "AssetCache",
    "CircuitAssetCompiler",
    "EvidenceSource",
    "LegacyCircuitLoader",
    "LegacyProofGenerator",
    "ProofOrchestrator",
    "ProofStage",
    "ProvingBackend",
    "SimulatedEvidenceSource",
    "SnarkjsBackend",
    "SnarkjsCircuitCompiler",
    "build_claim_signals",
    "descriptor_for",
    "encode_evidence",
    "legacy_circuit_name",
]
