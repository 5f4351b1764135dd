"""
Custom exceptions for claimproof.

The first four subclasses of ``ClaimProofError`` abort proof generation.
Verification never raises: its failure mode is a ``False`` return.
"""

from __future__ import annotations

from typing import Iterable, List


class ClaimProofError(Exception):
    """Base exception for claim proof errors."""

    pass


class ConfigurationError(ClaimProofError):
    """No circuit mapping is registered for a domain/claim pair."""

    pass


class ValidationError(ClaimProofError):
    """Extracted data or a derived circuit input violates one or more rules."""

    def __init__(self, message: str, errors: Iterable[str] = ()) -> None:
        self.errors: List[str] = list(errors)
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class AssetError(ClaimProofError):
    """Compiled circuit artifacts are missing or could not be produced."""

    pass


class ProvingError(ClaimProofError):
    """Witness computation or proof generation failed."""

    pass


class TemplateError(ClaimProofError):
    """A template failed structural validation."""

    def __init__(self, message: str, errors: Iterable[str] = ()) -> None:
        self.errors: List[str] = list(errors)
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class ExtractorSyntaxError(ClaimProofError):
    """An extractor expression is outside the closed extractor language."""

    pass


class UnsatisfiedConstraintError(ClaimProofError):
    """A witness does not satisfy the constraints of its circuit."""

    def __init__(self, circuit: str, failures: Iterable[str] = ()) -> None:
        self.circuit = circuit
        self.failures: List[str] = list(failures)
        shown = ", ".join(self.failures[:5])
        more = "" if len(self.failures) <= 5 else f" (+{len(self.failures) - 5} more)"
        super().__init__(f"{circuit}: unsatisfied constraints {shown}{more}")
