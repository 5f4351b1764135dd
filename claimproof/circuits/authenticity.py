"""
Template authenticity circuits.

``TemplateAuthenticityCircuit`` proves that a publicly asserted template
hash commits to a template descriptor, that the requesting domain is one of
the descriptor's authorized domains, and that a timestamp lies inside the
template's validity window.

``TemplateRegistryCircuit`` checks a template hash against a table of
registered templates and selects at most one matching entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import (
    LENGTH_BITS,
    MAX_AUTHORIZED_DOMAINS,
    REGISTRY_SIZE,
    TEMPLATE_DATA_LENGTH,
    TIMESTAMP_BITS,
)
from .base import Circuit, SignalSpec
from .constraints import LC, ConstraintSystem, Operand
from .gadgets import (
    any_of,
    assert_bool,
    greater_eq_than,
    is_equal,
    less_eq_than,
    prefix_mask,
    range_check,
)
from .sponge import domain_hash, sponge_hash, sponge_hash_gadget

# Descriptor field -> input signal name
STANDALONE_NAMES: Dict[str, str] = {
    "template_id": "template_id",
    "version": "version",
    "valid_from": "valid_from",
    "valid_until": "valid_until",
    "template_data": "template_data",
    "data_length": "data_length",
    "authorized_domains": "authorized_domains",
    "domain_count": "domain_count",
}

# The claim circuit has its own data_length, so the template fields are qualified
CLAIM_CIRCUIT_NAMES: Dict[str, str] = {
    **STANDALONE_NAMES,
    "version": "template_version",
    "data_length": "template_data_length",
}


@dataclass(frozen=True)
class TemplateDescriptor:
    """Field-element description of a template, as committed by its hash."""

    template_id: int
    version: int
    valid_from: int
    valid_until: int
    template_data: Tuple[int, ...] = ()
    authorized_domains: Tuple[int, ...] = ()
    data_length: int = 0
    domain_count: int = 0

    def __post_init__(self) -> None:
        if self.data_length > len(self.template_data):
            raise ValueError("data_length exceeds template_data")
        if self.domain_count > len(self.authorized_domains):
            raise ValueError("domain_count exceeds authorized_domains")

    @classmethod
    def build(
        cls,
        template_id: int,
        version: int,
        valid_from: int,
        valid_until: int,
        template_data: Sequence[int] = (),
        domains: Sequence[str] = (),
        *,
        data_size: int = TEMPLATE_DATA_LENGTH,
        max_domains: int = MAX_AUTHORIZED_DOMAINS,
    ) -> "TemplateDescriptor":
        """Pad ``template_data`` and hash ``domains`` to fixed circuit sizes."""
        if len(template_data) > data_size:
            raise ValueError(f"template data longer than {data_size}")
        if len(domains) > max_domains:
            raise ValueError(f"more than {max_domains} authorized domains")
        hashed = [domain_hash(d) for d in domains]
        return cls(
            template_id=template_id,
            version=version,
            valid_from=valid_from,
            valid_until=valid_until,
            template_data=tuple(template_data) + (0,) * (data_size - len(template_data)),
            authorized_domains=tuple(hashed) + (0,) * (max_domains - len(hashed)),
            data_length=len(template_data),
            domain_count=len(hashed),
        )

    def hash_inputs(self) -> List[int]:
        return [
            self.template_id,
            self.version,
            self.valid_from,
            self.valid_until,
            self.data_length,
            self.domain_count,
            *self.template_data,
            *self.authorized_domains,
        ]

    def commitment(self) -> int:
        return sponge_hash(self.hash_inputs())

    def authorizes(self, domain: str) -> bool:
        return domain_hash(domain) in self.authorized_domains[: self.domain_count]

    def signals(self, names: Mapping[str, str] = STANDALONE_NAMES) -> Dict[str, object]:
        """Signal assignment for the descriptor inputs of a circuit."""
        values = {
            "template_id": self.template_id,
            "version": self.version,
            "valid_from": self.valid_from,
            "valid_until": self.valid_until,
            "template_data": list(self.template_data),
            "data_length": self.data_length,
            "authorized_domains": list(self.authorized_domains),
            "domain_count": self.domain_count,
        }
        return {names[key]: value for key, value in values.items()}


def time_window_gadget(
    cs: ConstraintSystem, timestamp: Operand, valid_from: Operand, valid_until: Operand
) -> LC:
    """1 if ``valid_from <= timestamp <= valid_until`` (64-bit values)."""
    with cs.scope("time"):
        for value in (timestamp, valid_from, valid_until):
            range_check(cs, value, TIMESTAMP_BITS)
        after = greater_eq_than(cs, timestamp, valid_from, TIMESTAMP_BITS)
        before = less_eq_than(cs, timestamp, valid_until, TIMESTAMP_BITS)
        return cs.mul(after, before, "window")


def domain_gadget(
    cs: ConstraintSystem,
    domain: Operand,
    authorized: Sequence[Operand],
    domain_count: Operand,
) -> LC:
    """OR of ``domain == authorized[i]`` over ``i < domain_count`` only."""
    with cs.scope("domain"):
        range_check(cs, domain_count, LENGTH_BITS)
        mask = prefix_mask(cs, domain_count, len(authorized))
        hits = [
            cs.mul(mask[i], is_equal(cs, domain, authorized[i]), "hit")
            for i in range(len(authorized))
        ]
        return any_of(cs, hits)


def authenticity_gadget(
    cs: ConstraintSystem,
    template_hash: Operand,
    domain: Operand,
    timestamp: Operand,
    descriptor: Mapping[str, object],
) -> LC:
    """
    ``valid = hash_match AND domain_ok AND time_ok``.

    ``descriptor`` maps the unprefixed descriptor field names to allocated
    signals.
    """
    with cs.scope("authenticity"):
        template_data = list(descriptor["template_data"])
        authorized = list(descriptor["authorized_domains"])
        commitment = sponge_hash_gadget(
            cs,
            [
                descriptor["template_id"],
                descriptor["version"],
                descriptor["valid_from"],
                descriptor["valid_until"],
                descriptor["data_length"],
                descriptor["domain_count"],
                *template_data,
                *authorized,
            ],
        )
        hash_ok = is_equal(cs, commitment, template_hash)
        domain_ok = domain_gadget(
            cs, domain, authorized, descriptor["domain_count"]
        )
        time_ok = time_window_gadget(
            cs, timestamp, descriptor["valid_from"], descriptor["valid_until"]
        )
        both = cs.mul(hash_ok, domain_ok, "hash_and_domain")
        return cs.mul(both, time_ok, "valid")


def descriptor_signals(
    template_data_size: int,
    max_domains: int,
    names: Mapping[str, str] = STANDALONE_NAMES,
) -> List[SignalSpec]:
    return [
        SignalSpec(names["template_id"]),
        SignalSpec(names["version"]),
        SignalSpec(names["valid_from"]),
        SignalSpec(names["valid_until"]),
        SignalSpec(names["template_data"], template_data_size),
        SignalSpec(names["data_length"]),
        SignalSpec(names["authorized_domains"], max_domains),
        SignalSpec(names["domain_count"]),
    ]


def descriptor_view(
    allocated: Mapping[str, object], names: Mapping[str, str] = STANDALONE_NAMES
) -> Dict[str, object]:
    """Map allocated circuit signals back to descriptor field names."""
    return {field_name: allocated[signal] for field_name, signal in names.items()}


class TemplateAuthenticityCircuit(Circuit):
    """Standalone authenticity check with a single ``valid`` output."""

    def __init__(
        self,
        template_data_size: int = TEMPLATE_DATA_LENGTH,
        max_domains: int = MAX_AUTHORIZED_DOMAINS,
    ) -> None:
        self.template_data_size = template_data_size
        self.max_domains = max_domains
        super().__init__(f"template_validator_{template_data_size}_{max_domains}")

    def signals(self) -> List[SignalSpec]:
        return [
            SignalSpec("template_hash", public=True),
            SignalSpec("domain_hash", public=True),
            SignalSpec("timestamp", public=True),
            *descriptor_signals(self.template_data_size, self.max_domains),
        ]

    def synthesize(self, cs: ConstraintSystem, inputs: Mapping[str, object]) -> None:
        s = self.allocate_inputs(cs, inputs)
        valid = authenticity_gadget(
            cs, s["template_hash"], s["domain_hash"], s["timestamp"], descriptor_view(s)
        )
        cs.output("valid", valid)

    def inputs_for(
        self,
        descriptor: TemplateDescriptor,
        domain: str,
        timestamp: int,
        template_hash: Optional[int] = None,
    ) -> Dict[str, object]:
        inputs = descriptor.signals()
        inputs.update(
            template_hash=descriptor.commitment() if template_hash is None else template_hash,
            domain_hash=domain_hash(domain),
            timestamp=timestamp,
        )
        return inputs


@dataclass(frozen=True)
class RegistryEntry:
    template_hash: int
    template_id: int
    valid_from: int
    valid_until: int


@dataclass(frozen=True)
class RegistryTable:
    """Fixed-size table of registered templates for the registry circuit."""

    entries: Tuple[RegistryEntry, ...] = field(default_factory=tuple)

    def signals(self, size: int) -> Dict[str, object]:
        if len(self.entries) > size:
            raise ValueError(f"registry holds more than {size} entries")
        pad = size - len(self.entries)
        return {
            "registered_hashes": [e.template_hash for e in self.entries] + [0] * pad,
            "registered_ids": [e.template_id for e in self.entries] + [0] * pad,
            "registered_valid_from": [e.valid_from for e in self.entries] + [0] * pad,
            "registered_valid_until": [e.valid_until for e in self.entries] + [0] * pad,
            "registry_size": len(self.entries),
        }


class TemplateRegistryCircuit(Circuit):
    """
    Look up ``template_hash`` in a registry of up to ``size`` templates.

    The number of matching entries is constrained to 0 or 1, so a registry
    holding the same hash twice has no satisfying witness and witness
    computation raises ``UnsatisfiedConstraintError``.
    """

    def __init__(self, size: int = REGISTRY_SIZE) -> None:
        self.size = size
        super().__init__(f"template_registry_{size}")

    def signals(self) -> List[SignalSpec]:
        return [
            SignalSpec("template_hash", public=True),
            SignalSpec("timestamp", public=True),
            SignalSpec("registered_hashes", self.size),
            SignalSpec("registered_ids", self.size),
            SignalSpec("registered_valid_from", self.size),
            SignalSpec("registered_valid_until", self.size),
            SignalSpec("registry_size"),
        ]

    def synthesize(self, cs: ConstraintSystem, inputs: Mapping[str, object]) -> None:
        s = self.allocate_inputs(cs, inputs)
        with cs.scope("registry"):
            range_check(cs, s["registry_size"], LENGTH_BITS)
            mask = prefix_mask(cs, s["registry_size"], self.size)
            count = LC()
            selected_id = LC()
            selected_from = LC()
            selected_until = LC()
            for i in range(self.size):
                match = cs.mul(
                    mask[i], is_equal(cs, s["template_hash"], s["registered_hashes"][i]), "match"
                )
                count = count + match
                selected_id = selected_id + cs.mul(match, s["registered_ids"][i], "id")
                selected_from = selected_from + cs.mul(match, s["registered_valid_from"][i], "from")
                selected_until = selected_until + cs.mul(
                    match, s["registered_valid_until"][i], "until"
                )
            found = cs.materialize(count, "found")
            assert_bool(cs, found, "unique_match")
            time_ok = time_window_gadget(cs, s["timestamp"], selected_from, selected_until)
            valid = cs.mul(found, time_ok, "valid")
        cs.output("found", found)
        cs.output("selected_id", selected_id)
        cs.output("valid", valid)
