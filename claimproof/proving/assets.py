"""
Compiled circuit assets: compiler and cache.

``SnarkjsCircuitCompiler`` turns a ``CircuitConfig`` into a claim circuit,
its ``.r1cs`` file and a development Groth16 key pair, reusing whatever a
previous run left in the build directory. ``AssetCache`` keeps compiled
assets in a bounded LRU and deduplicates concurrent compilations of the
same configuration.
"""

from __future__ import annotations

import json
import logging
import secrets
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Union

import trio
from cachetools import LRUCache

from ..circuits.claim import ClaimCircuit
from ..circuits.r1cs import write_r1cs
from ..config import (
    DYNAMIC_MAX_TLS_LENGTH,
    MAX_AUTHORIZED_DOMAINS,
    MIN_DATA_LENGTH,
    TEMPLATE_DATA_LENGTH,
)
from ..exceptions import AssetError
from ..settings import load_settings
from ..types import CircuitConfig, CircuitInfo, CompiledCircuitAssets
from .backend import run_snarkjs

logger = logging.getLogger(__name__)

R1CS_FILE = "circuit.r1cs"
INITIAL_ZKEY_FILE = "circuit_0000.zkey"
FINAL_ZKEY_FILE = "circuit_final.zkey"
VERIFICATION_KEY_FILE = "verification_key.json"
INFO_FILE = "circuit_info.json"


class CircuitAssetCompiler(Protocol):
    def compile(self, config: CircuitConfig) -> CompiledCircuitAssets: ...


def dynamic_claim_circuit(config: CircuitConfig) -> ClaimCircuit:
    """Claim circuit used for every dynamic configuration."""
    return ClaimCircuit(
        max(config.max_data_length, MIN_DATA_LENGTH),
        DYNAMIC_MAX_TLS_LENGTH,
        template_data_size=TEMPLATE_DATA_LENGTH,
        max_domains=MAX_AUTHORIZED_DOMAINS,
        name=config.signature,
    )


def circuit_info_for(config: CircuitConfig, compiled: str = "") -> CircuitInfo:
    return CircuitInfo(
        name=config.signature,
        max_data_length=config.max_data_length,
        compiled=compiled,
        template_support=("generic", config.data_type, config.claim_type),
    )


class SnarkjsCircuitCompiler:
    """
    ``CircuitAssetCompiler`` backed by snarkjs.

    Layout per configuration: ``<build_dir>/<signature>/`` holding
    ``circuit.r1cs``, ``circuit_final.zkey``, ``verification_key.json`` and
    ``circuit_info.json``.
    """

    def __init__(
        self,
        build_dir: Optional[Union[str, Path]] = None,
        ptau_path: Optional[Union[str, Path]] = None,
        *,
        snarkjs: Optional[str] = None,
        timeout: Optional[float] = None,
        circuit_factory: Callable[[CircuitConfig], ClaimCircuit] = dynamic_claim_circuit,
    ) -> None:
        settings = load_settings()
        self.build_dir = Path(build_dir) if build_dir else settings.build_dir
        ptau = ptau_path or settings.ptau_path
        self.ptau_path = Path(ptau) if ptau else None
        self.command = shlex.split(snarkjs or settings.snarkjs)
        self.timeout = timeout or settings.prove_timeout
        self.circuit_factory = circuit_factory

    def directory_for(self, config: CircuitConfig) -> Path:
        return self.build_dir / config.signature

    def compile(self, config: CircuitConfig) -> CompiledCircuitAssets:
        """
        Build or reuse the assets for ``config``.

        Raises:
            AssetError: If the assets are missing and cannot be produced.
        """
        circuit = self.circuit_factory(config)
        out_dir = self.directory_for(config)
        zkey = out_dir / FINAL_ZKEY_FILE
        vk_path = out_dir / VERIFICATION_KEY_FILE

        if not (zkey.exists() and vk_path.exists()):
            self._setup(config, circuit, out_dir)
        else:
            logger.info("Reusing compiled circuit %s", out_dir)

        try:
            verification_key = json.loads(vk_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise AssetError(f"Unreadable verification key {vk_path}: {exc}") from exc

        info_path = out_dir / INFO_FILE
        try:
            info = CircuitInfo.from_dict(json.loads(info_path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError):
            info = circuit_info_for(config)
        return CompiledCircuitAssets(
            witness_program=circuit,
            proving_key=zkey,
            verification_key=verification_key,
            info=info,
        )

    def _setup(self, config: CircuitConfig, circuit: ClaimCircuit, out_dir: Path) -> None:
        if self.ptau_path is None or not self.ptau_path.exists():
            raise AssetError(
                f"Cannot compile {circuit.name}: powers-of-tau file not configured "
                f"(set CLAIMPROOF_PTAU), got {self.ptau_path}"
            )
        logger.info("Compiling circuit %s into %s", circuit.name, out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        r1cs = write_r1cs(circuit.build(), out_dir / R1CS_FILE)
        initial = out_dir / INITIAL_ZKEY_FILE
        final = out_dir / FINAL_ZKEY_FILE
        steps = [
            ["groth16", "setup", str(r1cs), str(self.ptau_path), str(initial)],
            [
                "zkey",
                "contribute",
                str(initial),
                str(final),
                "--name=claimproof development contribution",
                f"-e={secrets.token_hex(32)}",
            ],
            [
                "zkey",
                "export",
                "verificationkey",
                str(final),
                str(out_dir / VERIFICATION_KEY_FILE),
            ],
        ]
        try:
            for args in steps:
                run_snarkjs(self.command, args, self.timeout)
        except (OSError, RuntimeError, subprocess.TimeoutExpired) as exc:
            raise AssetError(f"Circuit setup failed for {circuit.name}: {exc}") from exc
        initial.unlink(missing_ok=True)

        info = circuit_info_for(config, compiled=datetime.now(timezone.utc).isoformat())
        (out_dir / INFO_FILE).write_text(json.dumps(info.to_dict(), indent=2), encoding="utf-8")


@dataclass
class _Flight:
    done: trio.Event
    result: Optional[CompiledCircuitAssets] = None
    error: Optional[Exception] = None


class AssetCache:
    """
    Bounded, single-flight cache of compiled assets keyed by signature.

    The first caller for an uncached configuration compiles it on a worker
    thread; concurrent callers wait for that result. A failed compilation
    is reported to every waiter and is not cached. A leader cancelled before
    its compilation starts leaves no entry behind and a waiter takes over;
    once started, a compilation runs to completion on its thread.
    """

    def __init__(
        self,
        compiler: CircuitAssetCompiler,
        *,
        maxsize: Optional[int] = None,
        limiter: Optional[trio.CapacityLimiter] = None,
    ) -> None:
        self.compiler = compiler
        self._cache: LRUCache = LRUCache(maxsize or load_settings().asset_cache_size)
        self._inflight: Dict[str, _Flight] = {}
        self._limiter = limiter

    async def get(self, config: CircuitConfig) -> CompiledCircuitAssets:
        """
        Raises:
            AssetError: If compilation fails.
        """
        key = config.signature
        while True:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            flight = self._inflight.get(key)
            if flight is None:
                break
            await flight.done.wait()
            if flight.result is not None:
                return flight.result
            if flight.error is not None:
                raise AssetError(f"Compilation of {key} failed: {flight.error}") from flight.error

        flight = _Flight(trio.Event())
        self._inflight[key] = flight
        try:
            assets = await trio.to_thread.run_sync(
                self.compiler.compile, config, limiter=self._limiter
            )
        except AssetError as exc:
            flight.error = exc
            raise
        except Exception as exc:
            flight.error = exc
            raise AssetError(f"Compilation of {key} failed: {exc}") from exc
        else:
            self._cache[key] = assets
            flight.result = assets
            return assets
        finally:
            del self._inflight[key]
            flight.done.set()

    def peek(self, config: CircuitConfig) -> Optional[CompiledCircuitAssets]:
        return self._cache.get(config.signature)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, config: object) -> bool:
        return isinstance(config, CircuitConfig) and config.signature in self._cache

    def __len__(self) -> int:
        return len(self._cache)
