"""
Runtime settings for the proving pipeline.

Values resolve in precedence order: explicit argument, in-memory override,
environment variable, default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Final, Optional, TypeVar

T = TypeVar("T")

_ENV_BUILD_DIR: Final[str] = "CLAIMPROOF_BUILD_DIR"
_ENV_LEGACY_DIR: Final[str] = "CLAIMPROOF_LEGACY_DIR"
_ENV_PTAU: Final[str] = "CLAIMPROOF_PTAU"
_ENV_SNARKJS: Final[str] = "CLAIMPROOF_SNARKJS"
_ENV_PROVE_TIMEOUT: Final[str] = "CLAIMPROOF_PROVE_TIMEOUT"
_ENV_CACHE_SIZE: Final[str] = "CLAIMPROOF_ASSET_CACHE_SIZE"
_ENV_MAX_WORKERS: Final[str] = "CLAIMPROOF_MAX_WORKERS"

_DEFAULT_BUILD_DIR: Final[str] = "circuits/build"
_DEFAULT_LEGACY_DIR: Final[str] = "circuits"
_DEFAULT_SNARKJS: Final[str] = "snarkjs"
_DEFAULT_PROVE_TIMEOUT: Final[float] = 120.0
_DEFAULT_CACHE_SIZE: Final[int] = 32

_overrides: Dict[str, object] = {}


@dataclass(frozen=True)
class Settings:
    build_dir: Path
    legacy_dir: Path
    ptau_path: Optional[Path]
    snarkjs: str
    prove_timeout: float
    asset_cache_size: int
    max_workers: int

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)


def _default_workers() -> int:
    return max(1, os.cpu_count() or 1)


def _read(key: str, env_name: str, parse: Callable[[str], T], default: T) -> T:
    if key in _overrides:
        return _overrides[key]  # type: ignore[return-value]
    raw = os.getenv(env_name)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {env_name}: {raw!r}") from exc


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError("must be >= 1")
    return value


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise ValueError("must be > 0")
    return value


def load_settings() -> Settings:
    """
    Resolve settings from overrides and the environment.

    Raises:
        ValueError: If an environment variable holds an invalid value.
    """
    ptau = _read("ptau_path", _ENV_PTAU, str, "")
    return Settings(
        build_dir=Path(_read("build_dir", _ENV_BUILD_DIR, str, _DEFAULT_BUILD_DIR)),
        legacy_dir=Path(_read("legacy_dir", _ENV_LEGACY_DIR, str, _DEFAULT_LEGACY_DIR)),
        ptau_path=Path(ptau) if ptau else None,
        snarkjs=_read("snarkjs", _ENV_SNARKJS, str, _DEFAULT_SNARKJS),
        prove_timeout=_read(
            "prove_timeout", _ENV_PROVE_TIMEOUT, _positive_float, _DEFAULT_PROVE_TIMEOUT
        ),
        asset_cache_size=_read(
            "asset_cache_size", _ENV_CACHE_SIZE, _positive_int, _DEFAULT_CACHE_SIZE
        ),
        max_workers=_read("max_workers", _ENV_MAX_WORKERS, _positive_int, _default_workers()),
    )


def set_override(key: str, value: Optional[object]) -> None:
    """
    Set an in-memory override (testing only).

    Args:
        key: Settings field name.
        value: Value to force, or None to clear the override.

    Raises:
        ValueError: If the key is not a settings field.
    """
    if key not in Settings.__dataclass_fields__:
        raise ValueError(
            f"Unknown setting: {key!r}. "
            f"Valid options: {', '.join(sorted(Settings.__dataclass_fields__))}"
        )
    if value is None:
        _overrides.pop(key, None)
    else:
        _overrides[key] = value


def clear_overrides() -> None:
    _overrides.clear()
