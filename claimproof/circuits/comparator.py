"""
Comparator circuit: one of six comparisons over a byte-encoded value.

Claim types: 1 GT, 2 LT, 3 EQ, 4 Contains, 5 Range (inclusive), 6 NEQ.
Any other claim type yields ``result = 0``.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from ..config import (
    CLAIM_TYPE_CONTAINS,
    CLAIM_TYPE_EQ,
    CLAIM_TYPE_GT,
    CLAIM_TYPE_LT,
    CLAIM_TYPE_NEQ,
    CLAIM_TYPE_RANGE,
    COMPARE_BITS,
    LENGTH_BITS,
    VALUE_BYTES,
)
from .base import Circuit, SignalSpec
from .constraints import LC, ConstraintSystem, Operand
from .gadgets import (
    any_of,
    is_equal,
    is_zero,
    less_eq_than,
    less_than,
    not_,
    prefix_mask,
    range_check,
    weighted_sum,
)


def reconstruct_value(cs: ConstraintSystem, data: Sequence[LC], mask: Sequence[LC]) -> LC:
    """Little-endian value of the masked prefix of ``data`` (first 31 bytes)."""
    width = min(len(data), VALUE_BYTES)
    masked = [cs.mul(data[i], mask[i], "value.mask") for i in range(width)]
    return cs.materialize(weighted_sum(masked, 256), "value")


def contains_gadget(
    cs: ConstraintSystem,
    data: Sequence[LC],
    data_length: Operand,
    pattern: Sequence[Operand],
    pattern_length: Operand,
) -> LC:
    """1 if the first ``pattern_length`` pattern bytes occur in ``data[:data_length]``."""
    n, p = len(data), len(pattern)
    pattern_mask = prefix_mask(cs, pattern_length, p)
    non_empty = not_(is_zero(cs, pattern_length))
    fits_pattern = less_eq_than(cs, pattern_length, p, LENGTH_BITS + 1)
    usable = cs.mul(non_empty, fits_pattern, "contains.usable")
    matches: List[LC] = []
    for start in range(n):
        window = LC.constant(1)
        for j in range(p):
            if start + j < n:
                hit = is_equal(cs, data[start + j], pattern[j])
                ok = not_(pattern_mask[j]) + cs.mul(pattern_mask[j], hit, "contains.hit")
            else:
                ok = not_(pattern_mask[j])
            window = cs.mul(window, ok, "contains.window")
        fits = less_eq_than(cs, LC.lift(pattern_length) + start, data_length, LENGTH_BITS + 1)
        matches.append(cs.mul(window, fits, "contains.fits"))
    return cs.mul(usable, any_of(cs, matches), "contains")


def comparator_gadget(
    cs: ConstraintSystem,
    claim_type: Operand,
    threshold: Operand,
    threshold_max: Operand,
    data: Sequence[LC],
    data_length: Operand,
    pattern: Sequence[Operand],
    pattern_length: Operand,
    *,
    bytes_checked: bool = False,
) -> LC:
    """
    Comparison result over ``data``.

    ``bytes_checked`` skips the byte range checks on ``data`` when the caller
    has already constrained every element to a byte.
    """
    with cs.scope("comparator"):
        checked = list(pattern) if bytes_checked else list(data) + list(pattern)
        for byte in checked:
            range_check(cs, byte, 8)
        range_check(cs, data_length, LENGTH_BITS)
        range_check(cs, pattern_length, LENGTH_BITS)
        range_check(cs, threshold, COMPARE_BITS)
        range_check(cs, threshold_max, COMPARE_BITS)

        mask = prefix_mask(cs, data_length, len(data))
        value = reconstruct_value(cs, data, mask)

        gt = less_than(cs, threshold, value, COMPARE_BITS)
        lt = less_than(cs, value, threshold, COMPARE_BITS)
        eq = is_equal(cs, value, threshold)
        above_max = less_than(cs, threshold_max, value, COMPARE_BITS)
        in_range = cs.mul(not_(lt), not_(above_max), "range")
        contains = contains_gadget(cs, data, data_length, pattern, pattern_length)

        results = {
            CLAIM_TYPE_GT: gt,
            CLAIM_TYPE_LT: lt,
            CLAIM_TYPE_EQ: eq,
            CLAIM_TYPE_CONTAINS: contains,
            CLAIM_TYPE_RANGE: in_range,
            CLAIM_TYPE_NEQ: not_(eq),
        }
        result = LC()
        for code, outcome in results.items():
            selected = is_equal(cs, claim_type, code)
            result = result + cs.mul(selected, outcome, f"select.{code}")
        return cs.materialize(result, "result")


class ComparatorCircuit(Circuit):
    """Standalone comparator with a single ``result`` output."""

    def __init__(self, max_data_length: int = 64, max_pattern_length: int = 32) -> None:
        self.max_data_length = max_data_length
        self.max_pattern_length = max_pattern_length
        super().__init__(f"dynamic_comparator_{max_data_length}_{max_pattern_length}")

    def signals(self) -> List[SignalSpec]:
        return [
            SignalSpec("claim_type", public=True),
            SignalSpec("threshold", public=True),
            SignalSpec("threshold_max", public=True),
            SignalSpec("data", self.max_data_length),
            SignalSpec("data_length"),
            SignalSpec("pattern", self.max_pattern_length),
            SignalSpec("pattern_length"),
        ]

    def synthesize(self, cs: ConstraintSystem, inputs: Mapping[str, object]) -> None:
        s = self.allocate_inputs(cs, inputs)
        result = comparator_gadget(
            cs,
            s["claim_type"],
            s["threshold"],
            s["threshold_max"],
            s["data"],
            s["data_length"],
            s["pattern"],
            s["pattern_length"],
        )
        cs.output("result", result)


def bytes_value(data: Sequence[int], data_length: int) -> int:
    used = [b if i < data_length else 0 for i, b in enumerate(data[:VALUE_BYTES])]
    return sum(b << (8 * i) for i, b in enumerate(used))


def evaluate_comparison(
    claim_type: int,
    threshold: int,
    threshold_max: int,
    data: Sequence[int],
    data_length: int,
    pattern: Sequence[int] = (),
    pattern_length: int = 0,
) -> int:
    """Reference semantics of the comparator, computed directly."""
    value = bytes_value(data, data_length)
    if claim_type == CLAIM_TYPE_GT:
        return int(value > threshold)
    if claim_type == CLAIM_TYPE_LT:
        return int(value < threshold)
    if claim_type == CLAIM_TYPE_EQ:
        return int(value == threshold)
    if claim_type == CLAIM_TYPE_NEQ:
        return int(value != threshold)
    if claim_type == CLAIM_TYPE_RANGE:
        return int(threshold <= value <= threshold_max)
    if claim_type == CLAIM_TYPE_CONTAINS:
        if pattern_length == 0:
            return 0
        haystack = bytes(data[: min(data_length, len(data))])
        needle = bytes(list(pattern)[:pattern_length])
        if len(needle) < pattern_length:
            return 0
        return int(needle in haystack)
    return 0


def comparator_inputs(
    claim_type: int,
    data: bytes,
    *,
    threshold: int = 0,
    threshold_max: int = 0,
    pattern: bytes = b"",
    max_data_length: int = 64,
    max_pattern_length: int = 32,
) -> Dict[str, object]:
    """Build padded comparator inputs from byte strings."""
    if len(data) > max_data_length or len(pattern) > max_pattern_length:
        raise ValueError("data or pattern longer than the circuit arrays")
    return {
        "claim_type": claim_type,
        "threshold": threshold,
        "threshold_max": threshold_max,
        "data": list(data) + [0] * (max_data_length - len(data)),
        "data_length": len(data),
        "pattern": list(pattern) + [0] * (max_pattern_length - len(pattern)),
        "pattern_length": len(pattern),
    }
