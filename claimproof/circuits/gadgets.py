"""Reusable constraint gadgets (boolean logic, range checks, comparisons)."""

from __future__ import annotations

from typing import List, Sequence

from ..config import FIELD_BITS, FIELD_MODULUS
from .constraints import LC, ConstraintSystem, Operand

P = FIELD_MODULUS


def is_zero(cs: ConstraintSystem, x: Operand) -> LC:
    """1 if ``x == 0`` else 0."""
    value = cs.value(x)
    inv = cs.alloc(pow(value, -1, P) if value else 0, "is_zero.inv")
    out = cs.alloc(0 if value else 1, "is_zero.out")
    cs.enforce(x, inv, 1 - out, "is_zero.inv")
    cs.enforce(x, out, 0, "is_zero.out")
    return out


def is_equal(cs: ConstraintSystem, a: Operand, b: Operand) -> LC:
    return is_zero(cs, LC.lift(a) - b)


def assert_bool(cs: ConstraintSystem, x: Operand, label: str = "bool") -> None:
    cs.enforce(x, LC.lift(x) - 1, 0, label)


def assert_equal(cs: ConstraintSystem, a: Operand, b: Operand, label: str = "eq") -> None:
    cs.enforce(a, 1, b, label)


def num2bits(cs: ConstraintSystem, x: Operand, n: int) -> List[LC]:
    """
    Decompose ``x`` into ``n`` little-endian bits.

    The recomposition constraint fails when ``x >= 2**n``, which makes this
    the range check used throughout the circuits.
    """
    if not 0 < n < FIELD_BITS:
        raise ValueError(f"num2bits width out of range: {n}")
    value = cs.value(x)
    bits: List[LC] = []
    total = LC()
    for i in range(n):
        bit = cs.alloc((value >> i) & 1, f"bit{i}")
        assert_bool(cs, bit, "num2bits.bool")
        bits.append(bit)
        total = total + bit * (1 << i)
    cs.enforce(total, 1, x, "num2bits.sum")
    return bits


def range_check(cs: ConstraintSystem, x: Operand, n: int) -> None:
    num2bits(cs, x, n)


def bits2num(bits: Sequence[Operand]) -> LC:
    total = LC()
    for i, bit in enumerate(bits):
        total = total + LC.lift(bit) * (1 << i)
    return total


def less_than(cs: ConstraintSystem, a: Operand, b: Operand, n: int) -> LC:
    """1 if ``a < b``; both operands must fit in ``n`` bits."""
    if n > FIELD_BITS - 2:
        raise ValueError(f"comparison width too large: {n}")
    bits = num2bits(cs, LC.lift(a) + (1 << n) - b, n + 1)
    return 1 - bits[n]


def less_eq_than(cs: ConstraintSystem, a: Operand, b: Operand, n: int) -> LC:
    return less_than(cs, a, LC.lift(b) + 1, n)


def greater_than(cs: ConstraintSystem, a: Operand, b: Operand, n: int) -> LC:
    return less_than(cs, b, a, n)


def greater_eq_than(cs: ConstraintSystem, a: Operand, b: Operand, n: int) -> LC:
    return less_than(cs, b, LC.lift(a) + 1, n)


def and_(cs: ConstraintSystem, a: Operand, b: Operand) -> LC:
    return cs.mul(a, b, "and")


def or_(cs: ConstraintSystem, a: Operand, b: Operand) -> LC:
    return LC.lift(a) + b - cs.mul(a, b, "or")


def not_(x: Operand) -> LC:
    return 1 - LC.lift(x)


def and_all(cs: ConstraintSystem, values: Sequence[Operand]) -> LC:
    result = LC.lift(values[0])
    for value in values[1:]:
        result = and_(cs, result, value)
    return result


def any_of(cs: ConstraintSystem, flags: Sequence[Operand]) -> LC:
    """OR over boolean flags via a running product of negations."""
    none = LC.constant(1)
    for flag in flags:
        none = cs.mul(none, not_(flag), "any")
    return not_(none)


def prefix_mask(cs: ConstraintSystem, length: Operand, n: int) -> List[LC]:
    """
    ``mask[i] = 1`` iff ``i < length`` for ``i`` in ``[0, n)``.

    Lengths at or beyond ``n`` select every position; length zero selects
    none.
    """
    mask: List[LC] = []
    running = LC.constant(1)
    for i in range(n):
        running = cs.mul(running, not_(is_equal(cs, length, i)), "mask")
        mask.append(running)
    return mask


def select(cs: ConstraintSystem, flag: Operand, if_true: Operand, if_false: Operand) -> LC:
    """``flag ? if_true : if_false`` for a boolean ``flag``."""
    return cs.mul(flag, LC.lift(if_true) - if_false, "select") + if_false


def weighted_sum(values: Sequence[Operand], base: int) -> LC:
    """Little-endian positional sum ``Σ values[i] * base**i``."""
    total = LC()
    weight = 1
    for value in values:
        total = total + LC.lift(value) * weight
        weight *= base
    return total
