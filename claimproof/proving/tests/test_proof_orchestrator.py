"""Tests for end-to-end proof generation and verification."""

from __future__ import annotations

import dataclasses
import json
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest
import trio

from claimproof.exceptions import AssetError, ConfigurationError, ProvingError, ValidationError
from claimproof.proving.legacy import LegacyCircuitLoader, LegacyProofGenerator
from claimproof.proving.orchestrator import ProofOrchestrator, ProofStage
from claimproof.settings import load_settings
from claimproof.templates.registry import TemplateCircuitRegistry
from claimproof.testing import InMemoryCompiler, WitnessCheckingBackend
from claimproof.types import ExtractedData, ProofRequest, Template, TLSSessionData

NOW_S = int(datetime(2024, 6, 1, 12, tzinfo=timezone.utc).timestamp())
SIGNATURE = "generic_numeric_comparison_32"

TEMPLATE = Template(
    domain="bank.example.com",
    name="example-bank",
    selectors={"balance": ".account-balance"},
    extractors={"balanceGreaterThan": "greater_than(balance, $amount)"},
)

MINIMUM = Template(
    domain="bank.example.com",
    name="example-bank-minimum",
    selectors={"balance": ".account-balance"},
    extractors={"hasMinimumBalance": "at_least(balance, $minimum)"},
)

ACTIVITY = Template(
    domain="social.example.com",
    name="example-social",
    selectors={"lastActivity": ".last-seen", "createdAt": ".joined"},
    extractors={
        "hasRecentActivity": "within_days(lastActivity, 30)",
        "accountAge": "number(createdAt)",
    },
)

TLS = TLSSessionData(
    server_certificate="Y2VydA==",
    session_keys={"clientRandom": "0x01", "serverRandom": "0x02", "masterSecret": "0x03"},
    handshake_messages=("0x01aa", "0x02bb"),
    timestamp=NOW_S * 1000,
)


def _data(balance=1500, domain="bank.example.com", raw_balance=None):
    return ExtractedData(
        raw={"balance": raw_balance if raw_balance is not None else f"${balance:,}"},
        processed={"balance": balance},
        timestamp=NOW_S * 1000,
        url=f"https://{domain}/account",
        domain=domain,
    )


def _activity_data(**raw):
    return ExtractedData(
        raw=raw,
        processed={"active": True},
        timestamp=NOW_S * 1000,
        url="https://social.example.com/me",
        domain="social.example.com",
    )


def _orchestrator(compiler=None, backend=None, *, legacy=None, observer=None, **overrides):
    settings = load_settings().with_overrides(
        **{"max_workers": 2, "prove_timeout": 10.0, "asset_cache_size": 8, **overrides}
    )
    return ProofOrchestrator(
        TemplateCircuitRegistry(),
        compiler or InMemoryCompiler(),
        backend or WitnessCheckingBackend(),
        legacy=legacy,
        settings=settings,
        clock=lambda: NOW_S,
        observer=observer,
    )


async def _prove(orchestrator, balance=1500, amount=1000, session_id="s-1", **data_kwargs):
    return await orchestrator.generate_proof(
        session_id,
        TEMPLATE,
        "balanceGreaterThan",
        _data(balance, **data_kwargs),
        TLS,
        {"amount": amount},
    )


class SlowBackend(WitnessCheckingBackend):
    def full_prove(self, inputs, witness_program, proving_key):
        time.sleep(0.5)
        return super().full_prove(inputs, witness_program, proving_key)


class BrokenBackend(WitnessCheckingBackend):
    def __init__(self, result=None):
        super().__init__()
        self.result = result

    def full_prove(self, inputs, witness_program, proving_key):
        if self.result is None:
            raise RuntimeError("prover crashed")
        return self.result


class AcceptingBackend:
    """Returns a fixed proof and accepts everything."""

    def full_prove(self, inputs, witness_program, proving_key):
        proof = {
            "pi_a": ["1", "2", "1"],
            "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
            "pi_c": ["7", "8", "1"],
        }
        return proof, ["0", "42"]

    def verify(self, verification_key, public_signals, proof):
        return True


@pytest.mark.trio
async def test_generate_and_verify():
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator)

    assert proof.proof_valid
    assert proof.metadata.circuit_id == SIGNATURE
    assert proof.metadata.template == "example-bank"
    assert proof.metadata.domain == "bank.example.com"
    assert proof.metadata.timestamp == NOW_S * 1000
    assert await orchestrator.verify_proof(proof) is True
    assert await orchestrator.verify_proof(proof.to_dict()) is True


@pytest.mark.trio
async def test_failing_claim_returns_invalid_proof(caplog):
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator, balance=900)

    assert not proof.proof_valid
    assert "does not hold" in caplog.text
    assert await orchestrator.verify_proof(proof) is False


@pytest.mark.trio
async def test_stage_sequence():
    seen = []
    orchestrator = _orchestrator(observer=lambda session, stage: seen.append((session, stage)))
    await _prove(orchestrator)

    assert [stage for _, stage in seen] == [
        ProofStage.START,
        ProofStage.CONFIG_RESOLVED,
        ProofStage.DATA_VALIDATED,
        ProofStage.ASSETS_READY,
        ProofStage.INPUT_BUILT,
        ProofStage.PROVED,
        ProofStage.DONE,
    ]
    assert {session for session, _ in seen} == {"s-1"}


@pytest.mark.trio
async def test_unknown_claim_is_configuration_error():
    seen = []
    orchestrator = _orchestrator(observer=lambda session, stage: seen.append(stage))
    with pytest.raises(ConfigurationError, match="followersGreaterThan"):
        await orchestrator.generate_proof(
            "s-1", TEMPLATE, "followersGreaterThan", _data(), TLS, {"threshold": 5}
        )
    assert seen == [ProofStage.START, ProofStage.ERROR]


@pytest.mark.trio
async def test_invalid_data_is_validation_error():
    orchestrator = _orchestrator()
    with pytest.raises(ValidationError) as info:
        await _prove(orchestrator, domain="evil.example.org")
    assert any("Domain mismatch" in error for error in info.value.errors)

    with pytest.raises(ValidationError) as info:
        await _prove(orchestrator, raw_balance="")
    assert info.value.errors


@pytest.mark.trio
async def test_compiler_failure_is_asset_error():
    seen = []
    orchestrator = _orchestrator(
        InMemoryCompiler(fail=True), observer=lambda session, stage: seen.append(stage)
    )
    with pytest.raises(AssetError, match=SIGNATURE):
        await _prove(orchestrator)
    assert seen[-2:] == [ProofStage.DATA_VALIDATED, ProofStage.ERROR]


@pytest.mark.trio
async def test_backend_failure_is_proving_error():
    orchestrator = _orchestrator(backend=BrokenBackend())
    with pytest.raises(ProvingError, match="prover crashed") as info:
        await _prove(orchestrator)
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.trio
async def test_malformed_backend_proof_is_proving_error():
    orchestrator = _orchestrator(backend=BrokenBackend(result=({"pi_a": ["x"]}, ["1"])))
    with pytest.raises(ProvingError, match="malformed proof"):
        await _prove(orchestrator)


@pytest.mark.trio
@pytest.mark.slow
async def test_proving_timeout():
    orchestrator = _orchestrator(backend=SlowBackend(), prove_timeout=0.05)
    with pytest.raises(ProvingError, match="timed out") as info:
        await _prove(orchestrator)
    assert isinstance(info.value.__cause__, trio.TooSlowError)


@pytest.mark.trio
async def test_batch_keeps_order_and_drops_failures():
    compiler = InMemoryCompiler(delay=0.05)
    orchestrator = _orchestrator(compiler)
    requests = [
        ProofRequest("a", TEMPLATE, "balanceGreaterThan", _data(1500), TLS, {"amount": 1000}),
        ProofRequest(
            "b", TEMPLATE, "balanceGreaterThan", _data(domain="evil.example.org"), TLS, {}
        ),
        ProofRequest("c", TEMPLATE, "balanceGreaterThan", _data(2000), TLS, {"amount": 1000}),
    ]
    proofs = await orchestrator.batch_generate_proofs(requests, max_concurrency=3)

    assert [p.metadata.session_id for p in proofs] == ["a", "c"]
    assert compiler.compiled == [SIGNATURE]


@pytest.mark.trio
async def test_batch_drops_item_whose_observer_fails():
    def observer(session, stage):
        if session == "b" and stage is ProofStage.START:
            raise RuntimeError("observer down")

    orchestrator = _orchestrator(observer=observer)
    requests = [
        ProofRequest(session, TEMPLATE, "balanceGreaterThan", _data(1500), TLS, {"amount": 1000})
        for session in ("a", "b", "c")
    ]
    proofs = await orchestrator.batch_generate_proofs(requests)
    assert [p.metadata.session_id for p in proofs] == ["a", "c"]

    with pytest.raises(ProvingError, match="Stage observer failed at start") as info:
        await _prove(orchestrator, session_id="b")
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.trio
async def test_out_of_range_dates_are_data_problems():
    orchestrator = _orchestrator()
    huge = "99999999999999999999"

    proof = await orchestrator.generate_proof(
        "s-1", ACTIVITY, "hasRecentActivity", _activity_data(lastActivity=huge), TLS
    )
    assert not proof.proof_valid

    with pytest.raises(ValidationError) as info:
        await orchestrator.generate_proof(
            "s-2", ACTIVITY, "accountAge", _activity_data(createdAt=huge), TLS, {"days": 30}
        )
    assert info.value.errors


@pytest.mark.trio
async def test_minimum_balance_includes_the_minimum():
    orchestrator = _orchestrator()
    for balance, holds in ((999, False), (1000, True), (1001, True)):
        proof = await orchestrator.generate_proof(
            f"s-{balance}", MINIMUM, "hasMinimumBalance", _data(balance), TLS, {"minimum": 1000}
        )
        assert proof.proof_valid == holds


@pytest.mark.trio
async def test_tampered_proofs_are_rejected():
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator)

    tampered = dataclasses.replace(
        proof, public_inputs=(proof.public_inputs[0], "7", *proof.public_inputs[2:])
    )
    assert await orchestrator.verify_proof(tampered) is False
    assert await orchestrator.verify_proof({"proof": "garbage"}) is False
    assert await orchestrator.verify_proof({}) is False


@pytest.mark.trio
async def test_verify_checks_metadata_against_public_signals():
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator)

    for changes in (
        {"domain": "evil.example.org"},
        {"timestamp": (NOW_S - 2 * 86_400) * 1000},
        {"timestamp": (NOW_S + 3_600) * 1000},
    ):
        moved = dataclasses.replace(proof, metadata=dataclasses.replace(proof.metadata, **changes))
        assert await orchestrator.verify_proof(moved) is False

    recased = dataclasses.replace(
        proof, metadata=dataclasses.replace(proof.metadata, domain="Bank.Example.com")
    )
    assert await orchestrator.verify_proof(recased) is True


@pytest.mark.trio
async def test_proof_from_other_backend_is_rejected():
    proof = await _prove(_orchestrator())
    assert await _orchestrator().verify_proof(proof) is False


@pytest.mark.trio
async def test_unknown_circuit_without_legacy_fails_closed():
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator)
    renamed = dataclasses.replace(
        proof, metadata=dataclasses.replace(proof.metadata, circuit_id="balance_check")
    )
    assert await orchestrator.verify_proof(renamed) is False


class TestLegacyPath:
    @staticmethod
    def _install(directory: Path, name: str) -> None:
        base = directory / name
        base.mkdir(parents=True)
        (base / f"{name}.wasm").write_bytes(b"wasm")
        (base / f"{name}_final.zkey").write_bytes(b"zkey")
        (base / "verification_key.json").write_text(json.dumps({"protocol": "groth16"}))

    @pytest.mark.trio
    async def test_legacy_proof_verifies_with_legacy_key(self, tmp_path: Path):
        self._install(tmp_path, "balance_check")
        backend = AcceptingBackend()
        legacy = LegacyProofGenerator(LegacyCircuitLoader(tmp_path), backend)
        orchestrator = _orchestrator(backend=backend, legacy=legacy)

        proof = await orchestrator.generate_legacy_proof(
            "s-1", "example-bank", "balanceGreaterThan", _data(), TLS
        )
        assert proof.metadata.circuit_id == "balance_check"
        assert proof.metadata.timestamp == NOW_S * 1000
        assert not proof.proof_valid
        assert await orchestrator.verify_proof(proof) is True

    @pytest.mark.trio
    async def test_structured_circuit_falls_back_to_legacy_key(self, tmp_path: Path):
        self._install(tmp_path, SIGNATURE)
        self._install(tmp_path, "balance_check")
        backend = AcceptingBackend()
        legacy = LegacyProofGenerator(LegacyCircuitLoader(tmp_path), backend)
        orchestrator = _orchestrator(InMemoryCompiler(fail=True), backend, legacy=legacy)

        proof = await orchestrator.generate_legacy_proof(
            "s-1", "example-bank", "balanceGreaterThan", _data(), TLS
        )
        fallback = dataclasses.replace(
            proof, metadata=dataclasses.replace(proof.metadata, circuit_id=SIGNATURE)
        )
        assert await orchestrator.verify_proof(fallback) is True

    @pytest.mark.trio
    async def test_without_generator(self):
        with pytest.raises(ConfigurationError):
            await _orchestrator().generate_legacy_proof(
                "s-1", "example-bank", "balanceGreaterThan", _data(), TLS
            )


@pytest.mark.trio
async def test_export_import():
    orchestrator = _orchestrator()
    proof = await _prove(orchestrator)

    restored = ProofOrchestrator.import_proof(ProofOrchestrator.export_proof(proof))
    assert restored == proof
    assert ProofOrchestrator.import_proof_cbor(ProofOrchestrator.export_proof_cbor(proof)) == proof
    assert await orchestrator.verify_proof(restored) is True

    with pytest.raises(ValueError):
        ProofOrchestrator.import_proof("[]")


@pytest.mark.trio
async def test_introspection():
    compiler = InMemoryCompiler()
    orchestrator = _orchestrator(compiler)

    assert orchestrator.get_supported_claims(TEMPLATE) == ["balanceGreaterThan"]
    assert orchestrator.is_claim_supported(TEMPLATE, "balanceGreaterThan")
    assert not orchestrator.is_claim_supported(TEMPLATE, "isInfluencer")

    info = await orchestrator.get_circuit_info(TEMPLATE, "balanceGreaterThan")
    assert info.name == SIGNATURE
    assert info.max_data_length == 32
    with pytest.raises(ConfigurationError):
        await orchestrator.get_circuit_info(TEMPLATE, "isInfluencer")


@pytest.mark.trio
async def test_precompile():
    compiler = InMemoryCompiler()
    orchestrator = _orchestrator(compiler)
    other = dataclasses.replace(
        TEMPLATE,
        domain="social.example.com",
        extractors={"isInfluencer": "greater_than(followers, 10000)", "hasVerifiedBadge": "x"},
    )

    compiled = await orchestrator.precompile_template_circuits([TEMPLATE, other])

    assert compiled == [SIGNATURE, "generic_boolean_existence_32"]
    assert sorted(compiler.compiled) == sorted(compiled)
    await _prove(orchestrator)
    assert compiler.compiled.count(SIGNATURE) == 1


@pytest.mark.trio
async def test_precompile_skips_failures(caplog):
    orchestrator = _orchestrator(InMemoryCompiler(fail=True))
    assert await orchestrator.precompile_template_circuits([TEMPLATE]) == []
    assert "Failed to pre-compile" in caplog.text
