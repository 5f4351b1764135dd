"""
Binary and JSON encodings of circuits and witnesses.

``.r1cs`` (version 1) and ``.wtns`` (version 2) follow the iden3 binary
formats read by snarkjs. Field elements are 32-byte little-endian integers
in normal (non-Montgomery) form.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Mapping, Sequence, Tuple, Union

from ..config import FIELD_ELEMENT_BYTES, FIELD_MODULUS
from .constraints import (
    WIRE_OUTPUT,
    WIRE_PRIVATE,
    WIRE_PUBLIC,
    ConstraintSystem,
)

R1CS_MAGIC = b"r1cs"
R1CS_VERSION = 1
WTNS_MAGIC = b"wtns"
WTNS_VERSION = 2

SECTION_HEADER = 1
SECTION_CONSTRAINTS = 2
SECTION_WIRE2LABEL = 3

SECTION_WTNS_HEADER = 1
SECTION_WTNS_DATA = 2

N8 = FIELD_ELEMENT_BYTES


class FormatError(ValueError):
    """A binary circuit file is malformed."""


@dataclass(frozen=True)
class R1csHeader:
    field_size: int
    prime: int
    n_wires: int
    n_pub_out: int
    n_pub_in: int
    n_prv_in: int
    n_labels: int
    n_constraints: int


def _fe(value: int) -> bytes:
    return (value % FIELD_MODULUS).to_bytes(N8, "little")


def _section(kind: int, payload: bytes) -> bytes:
    return struct.pack("<IQ", kind, len(payload)) + payload


def _lc_bytes(terms: Dict[int, int]) -> bytes:
    parts = [struct.pack("<I", len(terms))]
    for wire in sorted(terms):
        parts.append(struct.pack("<I", wire))
        parts.append(_fe(terms[wire]))
    return b"".join(parts)


def encode_r1cs(cs: ConstraintSystem) -> bytes:
    header = (
        struct.pack("<I", N8)
        + FIELD_MODULUS.to_bytes(N8, "little")
        + struct.pack(
            "<IIIIQI",
            cs.num_wires,
            cs.count(WIRE_OUTPUT),
            cs.count(WIRE_PUBLIC),
            cs.count(WIRE_PRIVATE),
            cs.num_wires,
            cs.num_constraints,
        )
    )
    constraints = b"".join(
        _lc_bytes(a) + _lc_bytes(b) + _lc_bytes(c) for a, b, c in cs.iter_constraints()
    )
    # Labels are the R1CS wire ids themselves
    wire2label = b"".join(struct.pack("<Q", i) for i in range(cs.num_wires))
    sections = [
        _section(SECTION_HEADER, header),
        _section(SECTION_CONSTRAINTS, constraints),
        _section(SECTION_WIRE2LABEL, wire2label),
    ]
    return R1CS_MAGIC + struct.pack("<II", R1CS_VERSION, len(sections)) + b"".join(sections)


def _read_sections(data: bytes, magic: bytes) -> Tuple[int, Dict[int, bytes]]:
    if data[:4] != magic:
        raise FormatError(f"bad magic, expected {magic!r}")
    if len(data) < 12:
        raise FormatError("truncated file header")
    version, n_sections = struct.unpack_from("<II", data, 4)
    offset = 12
    sections: Dict[int, bytes] = {}
    for _ in range(n_sections):
        if offset + 12 > len(data):
            raise FormatError("truncated section header")
        kind, size = struct.unpack_from("<IQ", data, offset)
        offset += 12
        if offset + size > len(data):
            raise FormatError(f"section {kind} runs past end of file")
        sections[kind] = data[offset : offset + size]
        offset += size
    return version, sections


def read_r1cs_header(data: bytes) -> R1csHeader:
    version, sections = _read_sections(data, R1CS_MAGIC)
    if version != R1CS_VERSION:
        raise FormatError(f"unsupported r1cs version {version}")
    if SECTION_HEADER not in sections:
        raise FormatError("missing r1cs header section")
    raw = sections[SECTION_HEADER]
    (n8,) = struct.unpack_from("<I", raw, 0)
    prime = int.from_bytes(raw[4 : 4 + n8], "little")
    fields = struct.unpack_from("<IIIIQI", raw, 4 + n8)
    return R1csHeader(n8, prime, *fields)


def encode_wtns(witness: Sequence[int]) -> bytes:
    header = struct.pack("<I", N8) + FIELD_MODULUS.to_bytes(N8, "little") + struct.pack(
        "<I", len(witness)
    )
    values = b"".join(_fe(v) for v in witness)
    sections = [_section(SECTION_WTNS_HEADER, header), _section(SECTION_WTNS_DATA, values)]
    return WTNS_MAGIC + struct.pack("<II", WTNS_VERSION, len(sections)) + b"".join(sections)


def decode_wtns(data: bytes) -> List[int]:
    version, sections = _read_sections(data, WTNS_MAGIC)
    if version != WTNS_VERSION:
        raise FormatError(f"unsupported wtns version {version}")
    try:
        header = sections[SECTION_WTNS_HEADER]
        values = sections[SECTION_WTNS_DATA]
    except KeyError as exc:
        raise FormatError(f"missing wtns section {exc}") from None
    (n8,) = struct.unpack_from("<I", header, 0)
    (count,) = struct.unpack_from("<I", header, 4 + n8)
    if len(values) != count * n8:
        raise FormatError("witness size does not match header")
    return [int.from_bytes(values[i * n8 : (i + 1) * n8], "little") for i in range(count)]


def write_r1cs(cs: ConstraintSystem, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_bytes(encode_r1cs(cs))
    return path


def write_wtns(witness: Sequence[int], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_bytes(encode_wtns(witness))
    return path


def read_wtns(path: Union[str, Path]) -> List[int]:
    return decode_wtns(Path(path).read_bytes())


def write_symbols(cs: ConstraintSystem, stream: BinaryIO) -> None:
    """circom-style ``.sym`` lines: ``label_id,wire_id,component,name``."""
    for wire_id, label in enumerate(cs.labels()):
        stream.write(f"{wire_id},{wire_id},0,main.{label}\n".encode("utf-8"))


def to_circuit_json(inputs: Mapping[str, object]) -> Dict[str, object]:
    """Input map with every scalar and array element as a decimal string."""
    encoded: Dict[str, object] = {}
    for name, value in inputs.items():
        if isinstance(value, (list, tuple)):
            encoded[name] = [str(int(v)) for v in value]
        else:
            encoded[name] = str(int(value))  # type: ignore[call-overload]
    return encoded


def dump_circuit_json(inputs: Mapping[str, object]) -> str:
    return json.dumps(to_circuit_json(inputs), indent=2)
