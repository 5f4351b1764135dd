"""
Poseidon-style sponge hash over the BN254 scalar field.

Width 3 (rate 2, capacity 1), x^5 S-box, full rounds split around the
partial rounds. Round constants and the Cauchy MDS matrix are derived from
a fixed seed with SHA-256 so any implementation can regenerate them.

The capacity lane starts at the number of absorbed inputs, which separates
hashes of different arity (``H(a)`` never collides with ``H(a, 0)``).
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import List, Sequence, Tuple

from ..config import (
    DOMAIN_HASH_SEPARATOR,
    FIELD_MODULUS,
    SPONGE_ALPHA,
    SPONGE_FULL_ROUNDS,
    SPONGE_PARTIAL_ROUNDS,
    SPONGE_RATE,
    SPONGE_SEED,
    SPONGE_WIDTH,
)
from .constraints import LC, ConstraintSystem, Operand

P = FIELD_MODULUS
T = SPONGE_WIDTH
TOTAL_ROUNDS = SPONGE_FULL_ROUNDS + SPONGE_PARTIAL_ROUNDS
_HALF_FULL = SPONGE_FULL_ROUNDS // 2

# Bytes packed per field element when hashing byte strings
PACK_BYTES = 31


def _derive(tag: bytes, index: int) -> int:
    digest = hashlib.sha256(SPONGE_SEED + tag + index.to_bytes(4, "big")).digest()
    return int.from_bytes(digest, "big") % P


@lru_cache(maxsize=1)
def round_constants() -> Tuple[Tuple[int, ...], ...]:
    return tuple(
        tuple(_derive(b"ark", r * T + i) for i in range(T)) for r in range(TOTAL_ROUNDS)
    )


@lru_cache(maxsize=1)
def mds_matrix() -> Tuple[Tuple[int, ...], ...]:
    # Cauchy matrix 1 / (x_i + y_j) with x_i = i, y_j = T + j
    return tuple(
        tuple(pow(i + T + j, -1, P) for j in range(T)) for i in range(T)
    )


def _is_full_round(r: int) -> bool:
    return r < _HALF_FULL or r >= _HALF_FULL + SPONGE_PARTIAL_ROUNDS


def permute(state: Sequence[int]) -> List[int]:
    constants = round_constants()
    mds = mds_matrix()
    state = list(state)
    for r in range(TOTAL_ROUNDS):
        state = [(s + c) % P for s, c in zip(state, constants[r])]
        if _is_full_round(r):
            state = [pow(s, SPONGE_ALPHA, P) for s in state]
        else:
            state[0] = pow(state[0], SPONGE_ALPHA, P)
        state = [sum(m * s for m, s in zip(row, state)) % P for row in mds]
    return state


def sponge_hash(inputs: Sequence[int]) -> int:
    """Hash any number of field elements to one field element."""
    state = [len(inputs) % P] + [0] * SPONGE_RATE
    chunks = _chunks(list(inputs))
    for chunk in chunks:
        for i, value in enumerate(chunk):
            state[1 + i] = (state[1 + i] + value) % P
        state = permute(state)
    return state[1]


def _chunks(values: list) -> List[list]:
    if not values:
        return [[]]
    return [values[i : i + SPONGE_RATE] for i in range(0, len(values), SPONGE_RATE)]


def _sbox(cs: ConstraintSystem, x: LC) -> LC:
    x2 = cs.mul(x, x, "sbox.x2")
    x4 = cs.mul(x2, x2, "sbox.x4")
    return cs.mul(x4, x, "sbox.x5")


def _permute_gadget(cs: ConstraintSystem, state: List[LC]) -> List[LC]:
    constants = round_constants()
    mds = mds_matrix()
    for r in range(TOTAL_ROUNDS):
        state = [s + c for s, c in zip(state, constants[r])]
        if _is_full_round(r):
            state = [_sbox(cs, s) for s in state]
        else:
            state = [_sbox(cs, state[0])] + state[1:]
        mixed = []
        for row in mds:
            total = LC()
            for m, s in zip(row, state):
                total = total + s * m
            mixed.append(cs.materialize(total, "sponge.mix"))
        state = mixed
    return state


def sponge_hash_gadget(cs: ConstraintSystem, inputs: Sequence[Operand]) -> LC:
    """In-circuit counterpart of :func:`sponge_hash`."""
    with cs.scope("sponge"):
        state: List[LC] = [LC.constant(len(inputs))] + [LC() for _ in range(SPONGE_RATE)]
        for chunk in _chunks([LC.lift(v) for v in inputs]):
            for i, value in enumerate(chunk):
                state[1 + i] = state[1 + i] + value
            state = _permute_gadget(cs, state)
        return state[1]


def pack_bytes(data: bytes) -> List[int]:
    """Pack bytes little-endian into 31-byte field elements."""
    return [
        int.from_bytes(data[i : i + PACK_BYTES], "little")
        for i in range(0, len(data), PACK_BYTES)
    ]


def hash_bytes(data: bytes) -> int:
    return sponge_hash(pack_bytes(data))


def domain_hash(domain: str) -> int:
    """Field-element identifier of a domain name (case-insensitive)."""
    return hash_bytes(DOMAIN_HASH_SEPARATOR + domain.strip().lower().encode("utf-8"))
