"""Groth16 proving backend driven through the snarkjs command line."""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..circuits.base import Circuit
from ..circuits.r1cs import dump_circuit_json, write_wtns
from ..settings import load_settings

logger = logging.getLogger(__name__)

SnarkjsProof = Dict[str, Any]


class ProvingBackend(Protocol):
    def full_prove(
        self,
        inputs: Mapping[str, Any],
        witness_program: Union[Circuit, Path],
        proving_key: Path,
    ) -> Tuple[SnarkjsProof, List[str]]: ...

    def verify(
        self,
        verification_key: Mapping[str, Any],
        public_signals: Sequence[str],
        proof: Mapping[str, Any],
    ) -> bool: ...


def run_snarkjs(command: Sequence[str], args: Sequence[str], timeout: float) -> str:
    """
    Run one snarkjs command and return its stdout.

    Raises:
        FileNotFoundError: If the snarkjs executable cannot be found.
        RuntimeError: If snarkjs exits with a non-zero status.
        subprocess.TimeoutExpired: If snarkjs runs longer than ``timeout``.
    """
    full = [*command, *args]
    logger.debug("Running %s", " ".join(full))
    result = subprocess.run(
        full,
        capture_output=True,
        text=True,
        check=False,
        timeout=timeout,
    )
    if result.returncode != 0:
        stderr = result.stderr.strip() or result.stdout.strip() or "unknown snarkjs error"
        raise RuntimeError(f"snarkjs {args[0] if args else ''} failed: {stderr}")
    return result.stdout


class SnarkjsBackend:
    """
    ``ProvingBackend`` over snarkjs.

    Python circuits compute their own witness, which is written as a
    ``.wtns`` file and proven with ``groth16 prove``. Compiled ``.wasm``
    witness generators go through ``groth16 fullprove``.
    """

    def __init__(self, snarkjs: Optional[str] = None, timeout: Optional[float] = None) -> None:
        settings = load_settings()
        self.command = shlex.split(snarkjs or settings.snarkjs)
        self.timeout = timeout or settings.prove_timeout

    def full_prove(
        self,
        inputs: Mapping[str, Any],
        witness_program: Union[Circuit, Path],
        proving_key: Path,
    ) -> Tuple[SnarkjsProof, List[str]]:
        """
        Compute the witness and a Groth16 proof.

        Raises:
            UnsatisfiedConstraintError: If the inputs violate the circuit.
            FileNotFoundError: If the proving key or witness program is missing.
            RuntimeError: If snarkjs fails.
        """
        proving_key = Path(proving_key)
        if not proving_key.exists():
            raise FileNotFoundError(f"missing proving key: {proving_key}")

        with tempfile.TemporaryDirectory(prefix="claimproof-") as tmp:
            tmp_dir = Path(tmp)
            proof_path = tmp_dir / "proof.json"
            public_path = tmp_dir / "public.json"

            if isinstance(witness_program, Circuit):
                cs = witness_program.calculate_witness(inputs)
                wtns = write_wtns(cs.witness(), tmp_dir / "witness.wtns")
                args = ["groth16", "prove", str(proving_key), str(wtns)]
            else:
                wasm = Path(witness_program)
                if not wasm.exists():
                    raise FileNotFoundError(f"missing witness program: {wasm}")
                input_path = tmp_dir / "input.json"
                input_path.write_text(dump_circuit_json(inputs), encoding="utf-8")
                args = ["groth16", "fullprove", str(input_path), str(wasm), str(proving_key)]

            run_snarkjs(self.command, [*args, str(proof_path), str(public_path)], self.timeout)
            proof = json.loads(proof_path.read_text(encoding="utf-8"))
            public_signals = [str(v) for v in json.loads(public_path.read_text(encoding="utf-8"))]
        return proof, public_signals

    def verify(
        self,
        verification_key: Mapping[str, Any],
        public_signals: Sequence[str],
        proof: Mapping[str, Any],
    ) -> bool:
        """Return True only when snarkjs accepts the proof; any failure is False."""
        try:
            with tempfile.TemporaryDirectory(prefix="claimproof-") as tmp:
                tmp_dir = Path(tmp)
                vk_path = tmp_dir / "verification_key.json"
                public_path = tmp_dir / "public.json"
                proof_path = tmp_dir / "proof.json"
                vk_path.write_text(json.dumps(dict(verification_key)), encoding="utf-8")
                public_path.write_text(json.dumps(list(public_signals)), encoding="utf-8")
                proof_path.write_text(json.dumps(dict(proof)), encoding="utf-8")
                output = run_snarkjs(
                    self.command,
                    ["groth16", "verify", str(vk_path), str(public_path), str(proof_path)],
                    self.timeout,
                )
        except Exception:
            logger.exception("snarkjs verification failed")
            return False
        return "OK" in output
