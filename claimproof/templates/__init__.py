"""
Templates: claim strategies, extractor language, input mapping and the
template-circuit registry.
"""

from .claims import CLAIM_STRATEGIES, ClaimName, ClaimStrategy, strategy_for
from .extractors import Extractor, apply_extractors, parse_extractor
from .mapper import CircuitMapper, canonical_json, fingerprint
from .registry import ClaimMapping, TemplateCircuitMapping, TemplateCircuitRegistry
from .store import FileTemplateStore, TemplateStore, load_template_file
from .validation import ensure_valid_template, validate_extracted_data, validate_template

__all__ = [
    "CLAIM_STRATEGIES",
    "CircuitMapper",
    "ClaimMapping",
    "ClaimName",
    "ClaimStrategy",
    "Extractor",
    "FileTemplateStore",
    "TemplateCircuitMapping",
    "TemplateCircuitRegistry",
    "TemplateStore",
    "apply_extractors",
    "canonical_json",
    "ensure_valid_template",
    "fingerprint",
    "load_template_file",
    "parse_extractor",
    "strategy_for",
    "validate_extracted_data",
    "validate_template",
]
