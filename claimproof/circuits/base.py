"""Circuit base class: input layout, synthesis and witness computation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Union

from ..config import FIELD_MODULUS
from ..exceptions import UnsatisfiedConstraintError
from .constraints import LC, ConstraintSystem

SignalValue = Union[int, List[int]]
Allocated = Dict[str, Union[LC, List[LC]]]


@dataclass(frozen=True)
class SignalSpec:
    """One input signal; ``length`` is set for fixed-length arrays."""

    name: str
    length: Optional[int] = None
    public: bool = False

    @property
    def is_array(self) -> bool:
        return self.length is not None


def _to_field(name: str, value: object) -> int:
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, str):
        value = int(value, 10)
    if not isinstance(value, int):
        raise ValueError(f"signal {name!r} must be an integer, got {type(value).__name__}")
    if not 0 <= value < FIELD_MODULUS:
        raise ValueError(f"signal {name!r} is outside the field")
    return value


class Circuit:
    """
    A circuit declares its input signals and synthesizes its constraints.

    Subclasses implement ``signals`` and ``synthesize``; synthesis receives
    normalized inputs and must allocate them through ``allocate_inputs`` so
    the wire layout follows the declared order.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def signals(self) -> List[SignalSpec]:
        raise NotImplementedError

    def synthesize(self, cs: ConstraintSystem, inputs: Mapping[str, SignalValue]) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------

    def input_names(self) -> List[str]:
        return [spec.name for spec in self.signals()]

    def public_input_names(self) -> List[str]:
        return [spec.name for spec in self.signals() if spec.public]

    def zero_inputs(self) -> Dict[str, SignalValue]:
        return {
            spec.name: [0] * spec.length if spec.is_array else 0
            for spec in self.signals()
        }

    def normalize_inputs(self, inputs: Mapping[str, object]) -> Dict[str, SignalValue]:
        """
        Check names and array lengths and convert values to field integers.

        Raises:
            ValueError: On missing, unknown or mis-sized signals.
        """
        specs = self.signals()
        expected = {spec.name for spec in specs}
        unknown = sorted(set(inputs) - expected)
        if unknown:
            raise ValueError(f"{self.name}: unknown input signals {', '.join(unknown)}")

        normalized: Dict[str, SignalValue] = {}
        for spec in specs:
            if spec.name not in inputs:
                raise ValueError(f"{self.name}: missing input signal {spec.name!r}")
            raw = inputs[spec.name]
            if spec.is_array:
                if isinstance(raw, (str, bytes)) or not hasattr(raw, "__len__"):
                    raise ValueError(f"{self.name}: {spec.name!r} must be an array")
                if len(raw) != spec.length:
                    raise ValueError(
                        f"{self.name}: {spec.name!r} must have exactly {spec.length} "
                        f"elements, got {len(raw)}"
                    )
                normalized[spec.name] = [
                    _to_field(f"{spec.name}[{i}]", v) for i, v in enumerate(raw)
                ]
            else:
                normalized[spec.name] = _to_field(spec.name, raw)
        return normalized

    def allocate_inputs(
        self, cs: ConstraintSystem, inputs: Mapping[str, SignalValue]
    ) -> Allocated:
        allocated: Allocated = {}
        for spec in self.signals():
            value = inputs[spec.name]
            if spec.is_array:
                allocate = cs.public_inputs if spec.public else cs.private_inputs
                allocated[spec.name] = allocate(spec.name, value)
            else:
                allocate_one = cs.public_input if spec.public else cs.private_input
                allocated[spec.name] = allocate_one(spec.name, value)
        return allocated

    def build(self, inputs: Optional[Mapping[str, object]] = None) -> ConstraintSystem:
        """Synthesize the circuit; zero inputs give the setup shape."""
        values = self.normalize_inputs(inputs if inputs is not None else self.zero_inputs())
        cs = ConstraintSystem(self.name)
        self.synthesize(cs, values)
        return cs

    def calculate_witness(self, inputs: Mapping[str, object]) -> ConstraintSystem:
        """
        Synthesize with ``inputs`` and check every constraint.

        Raises:
            ValueError: If the inputs do not match the declared signals.
            UnsatisfiedConstraintError: If the witness violates a constraint.
        """
        cs = self.build(inputs)
        failures = cs.unsatisfied()
        if failures:
            raise UnsatisfiedConstraintError(self.name, failures)
        return cs

    def evaluate(self, inputs: Mapping[str, object]) -> Dict[str, int]:
        return self.calculate_witness(inputs).outputs()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
