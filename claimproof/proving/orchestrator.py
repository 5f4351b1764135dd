"""
Proof orchestrator: drives one claim from template to verified proof.

Per request the orchestrator walks

    START -> CONFIG_RESOLVED -> DATA_VALIDATED -> ASSETS_READY
          -> INPUT_BUILT -> PROVED -> DONE

and moves to ERROR from any earlier stage, raising the matching
``ClaimProofError`` subclass with the original exception as its cause.
Verification is stateless and never raises: every failure is ``False``.

The registry and the asset cache are owned by the orchestrator instance.
Compilation and proving run on worker threads bounded by a
``trio.CapacityLimiter``; proving is wrapped in ``trio.fail_after``.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import trio

from ..circuits.claim import ClaimCircuit
from ..exceptions import (
    AssetError,
    ClaimProofError,
    ConfigurationError,
    ProvingError,
    UnsatisfiedConstraintError,
    ValidationError,
)
from ..settings import Settings, load_settings
from ..templates.claims import strategy_for
from ..templates.mapper import CircuitMapper
from ..templates.registry import TemplateCircuitRegistry
from ..templates.validation import validate_extracted_data
from ..types import (
    CircuitConfig,
    CircuitInfo,
    CompiledCircuitAssets,
    ExtractedData,
    Groth16Proof,
    ProofMetadata,
    ProofRequest,
    TLSSessionData,
    Template,
    ZKProof,
)
from .assets import AssetCache, CircuitAssetCompiler, dynamic_claim_circuit
from .backend import ProvingBackend
from .formats import from_json, to_json
from .legacy import LegacyProofGenerator
from .signals import (
    build_claim_signals,
    descriptor_for,
    metadata_mismatches,
    session_material,
)

logger = logging.getLogger(__name__)


class ProofStage(Enum):
    START = "start"
    CONFIG_RESOLVED = "config_resolved"
    DATA_VALIDATED = "data_validated"
    ASSETS_READY = "assets_ready"
    INPUT_BUILT = "input_built"
    PROVED = "proved"
    DONE = "done"
    ERROR = "error"


StageObserver = Callable[[str, ProofStage], None]


class _Run:
    """Stage bookkeeping for one proof request."""

    def __init__(self, session_id: str, observer: Optional[StageObserver]) -> None:
        self.session_id = session_id
        self.stage = ProofStage.START
        self._observer = observer

    def advance(self, stage: ProofStage) -> None:
        logger.debug("Session %s: %s -> %s", self.session_id, self.stage.value, stage.value)
        self.stage = stage
        self.notify()

    def notify(self) -> None:
        if self._observer is None:
            return
        try:
            self._observer(self.session_id, self.stage)
        except Exception as exc:
            raise ProvingError(
                f"Stage observer failed at {self.stage.value} for session {self.session_id}: {exc}"
            ) from exc


def _claim_circuit(config: CircuitConfig, assets: CompiledCircuitAssets) -> ClaimCircuit:
    program = assets.witness_program
    return program if isinstance(program, ClaimCircuit) else dynamic_claim_circuit(config)


class ProofOrchestrator:
    """
    End-to-end claim proving over injected collaborators.

    Args:
        registry: Template-circuit registry; templates are registered on use.
        compiler: Builds compiled assets for a circuit configuration.
        backend: Groth16 prover and verifier.
        legacy: Generator for legacy fixed-claim circuits, if any.
        mapper: Circuit input mapper; defaults to the registry's.
        settings: Runtime settings; resolved from the environment if omitted.
        clock: Returns unix seconds; injectable for tests.
        observer: Called with ``(session_id, stage)`` on every transition. An observer
            that raises fails the request with ``ProvingError``.
    """

    def __init__(
        self,
        registry: TemplateCircuitRegistry,
        compiler: CircuitAssetCompiler,
        backend: ProvingBackend,
        *,
        legacy: Optional[LegacyProofGenerator] = None,
        mapper: Optional[CircuitMapper] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        observer: Optional[StageObserver] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.registry = registry
        self.backend = backend
        self.legacy = legacy
        self.mapper = mapper or registry.mapper
        self._clock = clock
        self._observer = observer
        self._limiter = trio.CapacityLimiter(self.settings.max_workers)
        self.assets = AssetCache(
            compiler, maxsize=self.settings.asset_cache_size, limiter=self._limiter
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_proof(
        self,
        session_id: str,
        template: Template,
        claim: str,
        extracted_data: ExtractedData,
        tls_data: TLSSessionData,
        params: Optional[Mapping[str, Any]] = None,
    ) -> ZKProof:
        """
        Generate a proof of ``claim`` over ``extracted_data``.

        A proof whose ``proof_valid`` output is 0 (the claim does not hold) is
        still returned; ``verify_proof`` rejects it.

        Raises:
            ConfigurationError: If no circuit mapping exists for the claim.
            ValidationError: If the data or the derived input violates a rule.
            AssetError: If compiled assets are missing or cannot be built.
            ProvingError: If witness computation or proving fails.
        """
        run = _Run(session_id, self._observer)
        params = dict(params or {})
        logger.info("Generating proof for session %s, claim %s", session_id, claim)
        try:
            run.notify()
            proof = await self._generate(run, template, claim, extracted_data, tls_data, params)
        except ClaimProofError:
            run.advance(ProofStage.ERROR)
            logger.error("Proof generation failed for session %s", session_id, exc_info=True)
            raise
        except Exception as exc:
            run.advance(ProofStage.ERROR)
            logger.exception("Unexpected failure generating proof for session %s", session_id)
            raise ProvingError(f"Proof generation failed: {exc}") from exc
        run.advance(ProofStage.DONE)
        logger.info("Proof generated for session %s (%s)", session_id, proof.metadata.circuit_id)
        return proof

    async def _generate(
        self,
        run: _Run,
        template: Template,
        claim: str,
        extracted_data: ExtractedData,
        tls_data: TLSSessionData,
        params: Dict[str, Any],
    ) -> ZKProof:
        self.registry.register(template)
        config = self.registry.get_circuit_config(template.domain, claim)
        if config is None:
            raise ConfigurationError(
                f"No circuit configuration found for template {template.domain} and claim {claim}"
            )
        run.advance(ProofStage.CONFIG_RESOLVED)

        now_s = int(self._clock())
        now = datetime.fromtimestamp(now_s, timezone.utc)
        errors = validate_extracted_data(extracted_data, template)
        errors += self.registry.validate_data_for_circuit(
            template.domain, claim, extracted_data, params, now=now
        )
        if errors:
            raise ValidationError("Data validation failed", errors)
        run.advance(ProofStage.DATA_VALIDATED)

        assets = await self.assets.get(config)
        run.advance(ProofStage.ASSETS_READY)

        signals = self._build_signals(
            template, claim, extracted_data, tls_data, params, config, assets, now, now_s
        )
        run.advance(ProofStage.INPUT_BUILT)

        raw_proof, public_signals = await self._prove(signals, assets)
        try:
            groth16 = Groth16Proof.from_snarkjs(raw_proof)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProvingError(f"Backend returned a malformed proof: {exc}") from exc
        run.advance(ProofStage.PROVED)

        proof = ZKProof(
            proof=groth16,
            public_inputs=tuple(public_signals),
            metadata=ProofMetadata(
                session_id=run.session_id,
                template=template.name,
                claim=claim,
                timestamp=int(self._clock() * 1000),
                domain=extracted_data.domain,
                circuit_id=assets.info.name,
            ),
        )
        if not proof.proof_valid:
            logger.warning(
                "Claim %s does not hold for session %s; proof_valid is 0", claim, run.session_id
            )
        return proof

    def _build_signals(
        self,
        template: Template,
        claim: str,
        extracted_data: ExtractedData,
        tls_data: TLSSessionData,
        params: Dict[str, Any],
        config: CircuitConfig,
        assets: CompiledCircuitAssets,
        now: datetime,
        now_s: int,
    ) -> Dict[str, object]:
        circuit_input = self.registry.generate_circuit_input(
            template, extracted_data, claim, params, now=now
        )
        input_errors = self.mapper.validate(circuit_input, now=now_s)
        if input_errors:
            raise ValidationError("Circuit input validation failed", input_errors)

        circuit = _claim_circuit(config, assets)
        try:
            return build_claim_signals(
                circuit,
                circuit_input,
                config,
                descriptor_for(
                    template,
                    data_size=circuit.template_data_size,
                    max_domains=circuit.max_domains,
                ),
                extracted_data.domain,
                session_material(tls_data, circuit.max_tls_length),
                now_s,
                inclusive=strategy_for(claim).inclusive,
            )
        except ValueError as exc:
            raise ValidationError("Circuit input cannot be encoded", [str(exc)]) from exc

    async def _prove(
        self, signals: Mapping[str, object], assets: CompiledCircuitAssets
    ) -> Tuple[Dict[str, Any], List[str]]:
        timeout = self.settings.prove_timeout
        try:
            with trio.fail_after(timeout):
                return await trio.to_thread.run_sync(
                    self.backend.full_prove,
                    signals,
                    assets.witness_program,
                    assets.proving_key,
                    limiter=self._limiter,
                    abandon_on_cancel=True,
                )
        except trio.TooSlowError as exc:
            raise ProvingError(f"Proving timed out after {timeout}s") from exc
        except UnsatisfiedConstraintError as exc:
            raise ProvingError(f"Witness computation failed: {exc}") from exc
        except FileNotFoundError as exc:
            raise AssetError(f"Proving asset missing: {exc}") from exc
        except Exception as exc:
            raise ProvingError(f"Proof generation failed: {exc}") from exc

    async def generate_legacy_proof(
        self,
        session_id: str,
        template_name: str,
        claim: str,
        extracted_data: ExtractedData,
        tls_data: TLSSessionData,
    ) -> ZKProof:
        """
        Prove with a legacy fixed-claim circuit.

        Raises:
            ConfigurationError: If no legacy generator is configured.
            AssetError: If the legacy circuit files are missing.
            ProvingError: If proving fails.
        """
        if self.legacy is None:
            raise ConfigurationError("No legacy proof generator configured")
        timeout = self.settings.prove_timeout
        try:
            with trio.fail_after(timeout):
                return await trio.to_thread.run_sync(
                    self.legacy.generate,
                    session_id,
                    template_name,
                    claim,
                    extracted_data,
                    tls_data,
                    self._clock(),
                    limiter=self._limiter,
                    abandon_on_cancel=True,
                )
        except trio.TooSlowError as exc:
            raise ProvingError(f"Legacy proving timed out after {timeout}s") from exc

    async def batch_generate_proofs(
        self,
        requests: Sequence[ProofRequest],
        max_concurrency: Optional[int] = None,
    ) -> List[ZKProof]:
        """
        Generate proofs independently; failed items are logged and dropped.

        The returned proofs keep the order of their requests.
        """
        results: List[Optional[ZKProof]] = [None] * len(requests)
        limit = trio.CapacityLimiter(max_concurrency or self.settings.max_workers)

        async def run_one(index: int, request: ProofRequest) -> None:
            async with limit:
                try:
                    results[index] = await self.generate_proof(
                        request.session_id,
                        request.template,
                        request.claim,
                        request.extracted_data,
                        request.tls_data,
                        request.params,
                    )
                except ClaimProofError as exc:
                    logger.error(
                        "Failed to generate proof for batch item %d (session %s): %s",
                        index,
                        request.session_id,
                        exc,
                    )

        async with trio.open_nursery() as nursery:
            for index, request in enumerate(requests):
                nursery.start_soon(run_one, index, request)

        proofs = [proof for proof in results if proof is not None]
        logger.info("Batch finished: %d of %d proofs generated", len(proofs), len(requests))
        return proofs

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_proof(self, proof: Union[ZKProof, Mapping[str, Any]]) -> bool:
        """
        Verify a proof; any failure at any step yields False.

        Proofs from structured ``generic_*`` circuits must also carry
        ``proof_valid = 1`` as their first public signal, and their metadata
        domain and timestamp must match the public domain hash and freshness
        window.
        """
        try:
            if not isinstance(proof, ZKProof):
                proof = ZKProof.from_dict(proof)
            circuit_id = proof.metadata.circuit_id
            circuit, verification_key = await self._verification_key(circuit_id)
            if circuit is not None:
                mismatches = metadata_mismatches(circuit, proof.public_inputs, proof.metadata)
                if mismatches:
                    logger.warning(
                        "Proof metadata for %s does not match its public signals: %s",
                        circuit_id,
                        "; ".join(mismatches),
                    )
                    return False
            accepted = await trio.to_thread.run_sync(
                self.backend.verify,
                verification_key,
                list(proof.public_inputs),
                proof.proof.to_snarkjs(),
                limiter=self._limiter,
            )
        except Exception:
            logger.exception("Proof verification failed")
            return False
        result = bool(accepted) and (proof.proof_valid or circuit is None)
        logger.info("Proof verification result for %s: %s", circuit_id, result)
        return result

    async def _verification_key(
        self, circuit_id: str
    ) -> Tuple[Optional[ClaimCircuit], Mapping[str, Any]]:
        """Claim circuit (None for legacy circuits) and verification key."""
        try:
            config: Optional[CircuitConfig] = CircuitConfig.from_signature(circuit_id)
        except ValueError:
            config = None
        if config is not None:
            try:
                assets = await self.assets.get(config)
            except AssetError as exc:
                logger.warning(
                    "Dynamic verification key loading failed for %s, trying legacy: %s",
                    circuit_id,
                    exc,
                )
            else:
                return _claim_circuit(config, assets), assets.verification_key
        if self.legacy is None:
            raise AssetError(f"No verification key available for circuit {circuit_id}")
        key = await trio.to_thread.run_sync(self.legacy.verification_key, circuit_id)
        logger.info("Using legacy verification key for %s", circuit_id)
        return None, key

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_supported_claims(self, template: Template) -> List[str]:
        self.registry.register(template)
        return self.registry.get_supported_claims(template.domain)

    def is_claim_supported(self, template: Template, claim: str) -> bool:
        return claim in self.get_supported_claims(template)

    async def get_circuit_info(self, template: Template, claim: str) -> CircuitInfo:
        """
        Raises:
            ConfigurationError: If the claim has no circuit mapping.
            AssetError: If the circuit cannot be compiled.
        """
        self.registry.register(template)
        config = self.registry.get_circuit_config(template.domain, claim)
        if config is None:
            raise ConfigurationError(
                f"No circuit configuration found for {template.domain}:{claim}"
            )
        assets = await self.assets.get(config)
        return assets.info

    async def precompile_template_circuits(self, templates: Sequence[Template]) -> List[str]:
        """
        Compile every circuit the templates need; returns the compiled signatures.

        A template that fails is logged and skipped.
        """
        logger.info("Pre-compiling circuits for %d templates", len(templates))
        compiled: List[str] = []
        for template in templates:
            try:
                mapping = self.registry.register(template)
                for config in mapping.circuit_configs:
                    await self.assets.get(config)
                    if config.signature not in compiled:
                        compiled.append(config.signature)
                    logger.info("Pre-compiled %s for %s", config.signature, template.name)
            except ClaimProofError as exc:
                logger.error("Failed to pre-compile circuits for %s: %s", template.name, exc)
        logger.info("Circuit pre-compilation completed: %d circuits", len(compiled))
        return compiled

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    @staticmethod
    def export_proof(proof: ZKProof) -> str:
        return to_json(proof)

    @staticmethod
    def import_proof(data: str) -> ZKProof:
        """
        Raises:
            ValueError: If the data is not a well-formed proof.
        """
        return from_json(data)

    @staticmethod
    def export_proof_cbor(proof: ZKProof) -> bytes:
        return proof.serialize()

    @staticmethod
    def import_proof_cbor(data: bytes) -> ZKProof:
        return ZKProof.deserialize(data)
