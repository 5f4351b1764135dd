"""
Rank-1 constraint system over the BN254 scalar field.

A ``ConstraintSystem`` is synthesized with concrete values: every allocated
wire carries its assignment, and every ``enforce`` call records a constraint
``A * B = C`` over linear combinations of wires. Synthesizing a circuit is
therefore witness computation and constraint generation in one pass.

Gadgets must never change the constraint structure based on values, so a
circuit synthesized with all-zero inputs has exactly the shape needed for
the trusted setup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from ..config import FIELD_MODULUS

P = FIELD_MODULUS

Operand = Union["LinearCombination", int]

WIRE_ONE = "one"
WIRE_OUTPUT = "output"
WIRE_PUBLIC = "public"
WIRE_PRIVATE = "private"
WIRE_INTERNAL = "internal"

# R1CS wire ordering: one, public outputs, public inputs, private inputs, internals
_KIND_ORDER = {
    WIRE_ONE: 0,
    WIRE_OUTPUT: 1,
    WIRE_PUBLIC: 2,
    WIRE_PRIVATE: 3,
    WIRE_INTERNAL: 4,
}


def fe(value: int) -> int:
    """Reduce an integer into the field."""
    return value % P


def to_signed(value: int) -> int:
    """Map a field element to the symmetric range (-P/2, P/2]."""
    value = value % P
    return value - P if value > P // 2 else value


class LinearCombination:
    """Sparse linear combination of wires; wire 0 is the constant one."""

    __slots__ = ("terms",)

    def __init__(self, terms: Optional[Dict[int, int]] = None) -> None:
        self.terms: Dict[int, int] = terms if terms is not None else {}

    @classmethod
    def constant(cls, value: int) -> "LinearCombination":
        value = fe(value)
        return cls({0: value} if value else {})

    @classmethod
    def wire(cls, index: int) -> "LinearCombination":
        return cls({index: 1})

    @staticmethod
    def lift(value: Operand) -> "LinearCombination":
        if isinstance(value, LinearCombination):
            return value
        if isinstance(value, int):
            return LinearCombination.constant(value)
        raise TypeError(f"cannot use {type(value).__name__} as a linear combination")

    def evaluate(self, values: Sequence[int]) -> int:
        total = 0
        for index, coeff in self.terms.items():
            total += coeff * values[index]
        return total % P

    def single_wire(self) -> Optional[int]:
        """Return the wire index if this is exactly ``1 * wire``."""
        if len(self.terms) == 1:
            ((index, coeff),) = self.terms.items()
            if coeff == 1 and index != 0:
                return index
        return None

    def is_constant(self) -> bool:
        return all(index == 0 for index in self.terms)

    def _combine(self, other: Operand, sign: int) -> "LinearCombination":
        other_lc = LinearCombination.lift(other)
        terms = dict(self.terms)
        for index, coeff in other_lc.terms.items():
            updated = (terms.get(index, 0) + sign * coeff) % P
            if updated:
                terms[index] = updated
            else:
                terms.pop(index, None)
        return LinearCombination(terms)

    def __add__(self, other: Operand) -> "LinearCombination":
        return self._combine(other, 1)

    def __radd__(self, other: Operand) -> "LinearCombination":
        return self._combine(other, 1)

    def __sub__(self, other: Operand) -> "LinearCombination":
        return self._combine(other, -1)

    def __rsub__(self, other: Operand) -> "LinearCombination":
        return LinearCombination.lift(other)._combine(self, -1)

    def __neg__(self) -> "LinearCombination":
        return LinearCombination({i: (-c) % P for i, c in self.terms.items()})

    def __mul__(self, scalar: int) -> "LinearCombination":
        if not isinstance(scalar, int):
            raise TypeError("linear combinations only scale by integers; use cs.mul")
        scalar = fe(scalar)
        if scalar == 0:
            return LinearCombination()
        return LinearCombination({i: (c * scalar) % P for i, c in self.terms.items()})

    __rmul__ = __mul__

    def __repr__(self) -> str:
        parts = [f"{c}*w{i}" if i else str(c) for i, c in sorted(self.terms.items())]
        return f"LC({' + '.join(parts) or '0'})"


LC = LinearCombination


@dataclass(frozen=True)
class Constraint:
    a: LinearCombination
    b: LinearCombination
    c: LinearCombination
    label: str

    def holds(self, values: Sequence[int]) -> bool:
        return (self.a.evaluate(values) * self.b.evaluate(values) - self.c.evaluate(values)) % P == 0


class ConstraintSystem:
    """Wires, assignments and rank-1 constraints of one circuit instance."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._values: List[int] = [1]
        self._kinds: List[str] = [WIRE_ONE]
        self._labels: List[str] = ["one"]
        self.constraints: List[Constraint] = []
        self._inputs: Dict[str, Union[int, List[int]]] = {}
        self._outputs: Dict[str, int] = {}
        self._public_order: List[str] = []
        self._scope: List[str] = []
        self._order: Optional[List[int]] = None

    # ------------------------------------------------------------------
    # allocation
    # ------------------------------------------------------------------

    def _new_wire(self, value: int, kind: str, label: str) -> LinearCombination:
        self._order = None
        self._values.append(fe(value))
        self._kinds.append(kind)
        self._labels.append(label)
        return LinearCombination.wire(len(self._values) - 1)

    def _scoped(self, label: str) -> str:
        return ".".join(self._scope + [label]) if self._scope else label

    def alloc(self, value: int, label: str = "aux") -> LinearCombination:
        return self._new_wire(value, WIRE_INTERNAL, self._scoped(label))

    def public_input(self, name: str, value: int) -> LinearCombination:
        self._register_input(name, WIRE_PUBLIC)
        lc = self._new_wire(value, WIRE_PUBLIC, name)
        self._inputs[name] = lc.single_wire()
        return lc

    def private_input(self, name: str, value: int) -> LinearCombination:
        self._register_input(name, WIRE_PRIVATE)
        lc = self._new_wire(value, WIRE_PRIVATE, name)
        self._inputs[name] = lc.single_wire()
        return lc

    def private_inputs(self, name: str, values: Sequence[int]) -> List[LinearCombination]:
        self._register_input(name, WIRE_PRIVATE)
        wires = [
            self._new_wire(value, WIRE_PRIVATE, f"{name}[{i}]")
            for i, value in enumerate(values)
        ]
        self._inputs[name] = [w.single_wire() for w in wires]
        return wires

    def public_inputs(self, name: str, values: Sequence[int]) -> List[LinearCombination]:
        self._register_input(name, WIRE_PUBLIC)
        wires = [
            self._new_wire(value, WIRE_PUBLIC, f"{name}[{i}]")
            for i, value in enumerate(values)
        ]
        self._inputs[name] = [w.single_wire() for w in wires]
        return wires

    def _register_input(self, name: str, kind: str) -> None:
        if name in self._inputs:
            raise ValueError(f"{self.name}: input {name!r} declared twice")
        if kind == WIRE_PUBLIC:
            self._public_order.append(name)

    def output(self, name: str, lc: Operand) -> LinearCombination:
        """Expose ``lc`` as a public output signal."""
        if name in self._outputs:
            raise ValueError(f"{self.name}: output {name!r} declared twice")
        lc = LinearCombination.lift(lc)
        out = self._new_wire(self.value(lc), WIRE_OUTPUT, name)
        self.enforce(lc, 1, out, f"output.{name}")
        self._outputs[name] = out.single_wire()
        return out

    # ------------------------------------------------------------------
    # constraints
    # ------------------------------------------------------------------

    def value(self, lc: Operand) -> int:
        return LinearCombination.lift(lc).evaluate(self._values)

    def enforce(self, a: Operand, b: Operand, c: Operand, label: str = "constraint") -> None:
        self.constraints.append(
            Constraint(
                LinearCombination.lift(a),
                LinearCombination.lift(b),
                LinearCombination.lift(c),
                self._scoped(label),
            )
        )

    def mul(self, a: Operand, b: Operand, label: str = "mul") -> LinearCombination:
        product = self.alloc(self.value(a) * self.value(b), label)
        self.enforce(a, b, product, label)
        return product

    def materialize(self, lc: Operand, label: str = "lc") -> LinearCombination:
        """Bind a linear combination to a single wire."""
        lc = LinearCombination.lift(lc)
        if lc.single_wire() is not None:
            return lc
        wire = self.alloc(self.value(lc), label)
        self.enforce(lc, 1, wire, label)
        return wire

    def scope(self, name: str) -> "_Scope":
        return _Scope(self, name)

    # ------------------------------------------------------------------
    # inspection
    # ------------------------------------------------------------------

    @property
    def num_wires(self) -> int:
        return len(self._values)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    def count(self, kind: str) -> int:
        return sum(1 for k in self._kinds if k == kind)

    def unsatisfied(self) -> List[str]:
        return [c.label for c in self.constraints if not c.holds(self._values)]

    def is_satisfied(self) -> bool:
        return all(c.holds(self._values) for c in self.constraints)

    def outputs(self) -> Dict[str, int]:
        return {name: self._values[index] for name, index in self._outputs.items()}

    def wire_order(self) -> List[int]:
        """Internal wire indices in R1CS order."""
        if self._order is None:
            self._order = sorted(
                range(len(self._values)), key=lambda i: (_KIND_ORDER[self._kinds[i]], i)
            )
        return self._order

    def wire_map(self) -> Dict[int, int]:
        """Internal wire index -> R1CS wire id."""
        return {internal: position for position, internal in enumerate(self.wire_order())}

    def witness(self) -> List[int]:
        return [self._values[i] for i in self.wire_order()]

    def labels(self) -> List[str]:
        return [self._labels[i] for i in self.wire_order()]

    def public_signals(self) -> List[int]:
        """Outputs then public inputs, in R1CS order."""
        order = self.wire_order()
        n_public = self.count(WIRE_OUTPUT) + self.count(WIRE_PUBLIC)
        return [self._values[i] for i in order[1 : 1 + n_public]]

    def public_signal_names(self) -> List[str]:
        order = self.wire_order()
        n_public = self.count(WIRE_OUTPUT) + self.count(WIRE_PUBLIC)
        return [self._labels[i] for i in order[1 : 1 + n_public]]

    def iter_constraints(self) -> Iterator[Tuple[Dict[int, int], Dict[int, int], Dict[int, int]]]:
        """Constraints with wire ids remapped to R1CS order."""
        mapping = self.wire_map()
        for constraint in self.constraints:
            yield tuple(  # type: ignore[misc]
                {mapping[i]: c for i, c in lc.terms.items()}
                for lc in (constraint.a, constraint.b, constraint.c)
            )


class _Scope:
    def __init__(self, cs: ConstraintSystem, name: str) -> None:
        self._cs = cs
        self._name = name

    def __enter__(self) -> ConstraintSystem:
        self._cs._scope.append(self._name)
        return self._cs

    def __exit__(self, *exc_info: object) -> None:
        self._cs._scope.pop()


def lcs(values: Iterable[Operand]) -> List[LinearCombination]:
    return [LinearCombination.lift(v) for v in values]
