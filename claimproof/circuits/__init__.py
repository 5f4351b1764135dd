"""Arithmetic circuits for claim proofs over the BN254 scalar field."""

from __future__ import annotations

from .authenticity import (
    RegistryEntry,
    RegistryTable,
    TemplateAuthenticityCircuit,
    TemplateDescriptor,
    TemplateRegistryCircuit,
)
from .base import Circuit, SignalSpec
from .claim import ClaimCircuit, build_circuit, commit_bytes
from .comparator import ComparatorCircuit, comparator_inputs, evaluate_comparison
from .constraints import ConstraintSystem, LinearCombination
from .sponge import domain_hash, sponge_hash

__all__ = [
    "Circuit",
    "SignalSpec",
    "ConstraintSystem",
    "LinearCombination",
    "ComparatorCircuit",
    "comparator_inputs",
    "evaluate_comparison",
    "TemplateAuthenticityCircuit",
    "TemplateRegistryCircuit",
    "TemplateDescriptor",
    "RegistryEntry",
    "RegistryTable",
    "ClaimCircuit",
    "build_circuit",
    "commit_bytes",
    "domain_hash",
    "sponge_hash",
]
