"""
Command-line interface for claimproof.

Inspect templates, list their claims, pre-compile circuits, and generate
or verify claim proofs.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Tuple

import click
import trio

from claimproof import __version__
from claimproof.exceptions import ClaimProofError, TemplateError
from claimproof.proving import (
    LegacyCircuitLoader,
    LegacyProofGenerator,
    ProofOrchestrator,
    SimulatedEvidenceSource,
    SnarkjsBackend,
    SnarkjsCircuitCompiler,
    descriptor_for,
)
from claimproof.proving.signals import authorized_domains
from claimproof.settings import load_settings, set_override
from claimproof.templates import TemplateCircuitRegistry, load_template_file
from claimproof.templates.mapper import template_fingerprint
from claimproof.testing import InMemoryCompiler, WitnessCheckingBackend
from claimproof.types import ExtractedData, Template, TLSSessionData


def _fail(message: str) -> NoReturn:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _load_template(path: str) -> Template:
    try:
        return load_template_file(path)
    except TemplateError as e:
        _fail(str(e))


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        _fail(f"Cannot read {path}: {e}")


def _parse_params(pairs: Tuple[str, ...]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--param")
        try:
            params[key] = json.loads(value)
        except ValueError:
            params[key] = value
    return params


def _build_orchestrator(simulate: bool, legacy_dir: Optional[str]) -> ProofOrchestrator:
    if simulate:
        return ProofOrchestrator(
            TemplateCircuitRegistry(), InMemoryCompiler(), WitnessCheckingBackend()
        )
    backend = SnarkjsBackend()
    legacy = None
    if legacy_dir:
        legacy = LegacyProofGenerator(LegacyCircuitLoader(legacy_dir), backend)
    return ProofOrchestrator(
        TemplateCircuitRegistry(), SnarkjsCircuitCompiler(), backend, legacy=legacy
    )


@click.group()
@click.version_option(version=__version__, prog_name="claimproof")
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.option(
    '--build-dir',
    type=click.Path(file_okay=False),
    help='Directory for compiled circuit assets (default: $CLAIMPROOF_BUILD_DIR)'
)
def main(verbose, build_dir):
    """
    claimproof - zero-knowledge claim proofs over captured web data.

    Circuits are compiled and proven with snarkjs unless --simulate is given,
    in which case the witness is checked in-process and no Groth16 proof is
    produced.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if build_dir:
        set_override("build_dir", build_dir)


@main.command()
@click.argument('template_file', type=click.Path(exists=True, dir_okay=False))
def claims(template_file):
    """List the claims a template supports and the circuit each one uses."""
    template = _load_template(template_file)
    registry = TemplateCircuitRegistry()
    mapping = registry.register(template)

    click.echo(click.style(f"{template.name} ({template.domain})", fg="cyan", bold=True))
    if not mapping.claim_mappings:
        click.echo(click.style("  no claims", fg="yellow"))
        return
    for name, claim_mapping in mapping.claim_mappings.items():
        fields = ", ".join(claim_mapping.input_mappings) or "-"
        click.echo(f"  • {name}: {claim_mapping.circuit_config.signature} [{fields}]")


@main.command('inspect-template')
@click.argument('template_file', type=click.Path(exists=True, dir_okay=False))
def inspect_template(template_file):
    """Validate a template and show its circuit commitment."""
    template = _load_template(template_file)

    settings = load_settings()
    descriptor = descriptor_for(template, data_size=64, max_domains=16)
    click.echo(click.style(f"✓ {template.name} is valid", fg="green"))
    click.echo(f"  • Domain:       {template.domain}")
    click.echo(f"  • Version:      {template.version}")
    click.echo(f"  • Fingerprint:  {template_fingerprint(template)}")
    click.echo(f"  • Commitment:   {descriptor.commitment()}")
    click.echo(f"  • Authorized:   {', '.join(authorized_domains(template))}")
    click.echo(f"  • Build dir:    {settings.build_dir}")


@main.command()
@click.argument('template_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--claim', required=True, help='Claim to prove, e.g. balanceGreaterThan')
@click.option(
    '--data',
    'data_file',
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help='JSON file with the extracted data (raw, processed, timestamp, url, domain)'
)
@click.option(
    '--evidence',
    'evidence_file',
    type=click.Path(exists=True, dir_okay=False),
    help='JSON file with TLS session evidence (default: simulated evidence)'
)
@click.option('--param', 'params', multiple=True, help='Claim parameter as KEY=VALUE')
@click.option('--session-id', default='cli', help='Session identifier recorded in the proof')
@click.option('--output', type=click.Path(dir_okay=False), help='Write the proof to this file')
@click.option(
    '--format',
    'fmt',
    type=click.Choice(['json', 'cbor'], case_sensitive=False),
    default='json',
    help='Proof encoding for --output'
)
@click.option('--legacy-dir', type=click.Path(file_okay=False), help='Legacy circuit directory')
@click.option(
    '--simulate',
    is_flag=True,
    default=False,
    help='Check the witness in-process instead of proving with snarkjs'
)
def prove(
    template_file,
    claim,
    data_file,
    evidence_file,
    params,
    session_id,
    output,
    fmt,
    legacy_dir,
    simulate
):
    """
    Generate a proof of CLAIM over extracted data.

    Examples:

        claimproof prove bank.yaml --claim balanceGreaterThan \\
            --data extracted.json --param amount=1000 --output proof.json

        claimproof prove bank.yaml --claim balanceGreaterThan \\
            --data extracted.json --param amount=1000 --simulate
    """
    template = _load_template(template_file)
    parsed_params = _parse_params(params)
    try:
        extracted = ExtractedData.from_dict(_read_json(data_file))
    except (KeyError, TypeError, ValueError) as e:
        _fail(f"Invalid extracted data: {e}")
    if evidence_file:
        try:
            tls = TLSSessionData.from_dict(_read_json(evidence_file))
        except (KeyError, TypeError, ValueError) as e:
            _fail(f"Invalid session evidence: {e}")
    else:
        click.echo(click.style("⚠️  Using simulated session evidence", fg="yellow"), err=True)
        tls = SimulatedEvidenceSource().capture(extracted.domain)

    orchestrator = _build_orchestrator(simulate, legacy_dir)

    async def _prove():
        proof = await orchestrator.generate_proof(
            session_id, template, claim, extracted, tls, parsed_params
        )
        return proof, await orchestrator.verify_proof(proof)

    try:
        proof, verified = trio.run(_prove)
    except ClaimProofError as e:
        _fail(f"{type(e).__name__}: {e}")

    holds = click.style("holds", fg="green") if proof.proof_valid else click.style(
        "does not hold", fg="red"
    )
    click.echo(f"Claim {claim} {holds} (circuit {proof.metadata.circuit_id})")
    click.echo(
        f"Verification: "
        f"{click.style('✓ accepted', fg='green') if verified else click.style('✗ rejected', fg='red')}"
    )
    if simulate:
        click.echo(click.style("⚠️  Simulated proof: no Groth16 soundness", fg="yellow"))

    if output:
        if fmt == 'cbor':
            Path(output).write_bytes(ProofOrchestrator.export_proof_cbor(proof))
        else:
            Path(output).write_text(ProofOrchestrator.export_proof(proof), encoding="utf-8")
        click.echo(click.style(f"✓ Proof saved to: {output}", fg="green"))
    elif not simulate:
        click.echo(ProofOrchestrator.export_proof(proof))

    if not (proof.proof_valid and verified):
        sys.exit(2)


@main.command()
@click.argument('proof_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--legacy-dir', type=click.Path(file_okay=False), help='Legacy circuit directory')
def verify(proof_file, legacy_dir):
    """Verify a proof file (JSON or CBOR) with snarkjs."""
    raw = Path(proof_file).read_bytes()
    try:
        if proof_file.endswith(".cbor"):
            proof = ProofOrchestrator.import_proof_cbor(raw)
        else:
            proof = ProofOrchestrator.import_proof(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        _fail(f"Cannot read proof: {e}")

    orchestrator = _build_orchestrator(False, legacy_dir)
    if trio.run(orchestrator.verify_proof, proof):
        click.echo(click.style(f"✓ Proof verified ({proof.metadata.circuit_id})", fg="green"))
    else:
        _fail(f"Proof rejected ({proof.metadata.circuit_id})")


@main.command("compile")
@click.argument('template_files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--simulate',
    is_flag=True,
    default=False,
    help='Build circuits in-process without key generation'
)
def compile_circuits(template_files, simulate):
    """Pre-compile every circuit the given templates need."""
    templates = [_load_template(path) for path in template_files]
    orchestrator = _build_orchestrator(simulate, None)
    compiled = trio.run(orchestrator.precompile_template_circuits, templates)
    for signature in compiled:
        click.echo(click.style(f"✓ {signature}", fg="green"))
    click.echo(f"{len(compiled)} circuit(s) ready")
    expected = {
        config.signature
        for template in templates
        for config in orchestrator.registry.register(template).circuit_configs
    }
    if expected - set(compiled):
        _fail(f"Failed to compile: {', '.join(sorted(expected - set(compiled)))}")


if __name__ == "__main__":
    main()
