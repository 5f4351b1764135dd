"""
Session evidence sources.

An ``EvidenceSource`` returns the TLS session evidence captured for a
domain. ``SimulatedEvidenceSource`` produces synthetic evidence with a
freshly generated self-signed certificate, random session keys and a
six-message handshake transcript; it stands in for a real capture service
in tests and demos.
"""

from __future__ import annotations

import base64
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.x509.oid import NameOID

from ..templates.mapper import canonical_json
from ..types import TLSSessionData

logger = logging.getLogger(__name__)

# Handshake message type codes (RFC 5246 section 7.4)
HANDSHAKE_TYPES: Tuple[Tuple[str, int], ...] = (
    ("ClientHello", 0x01),
    ("ServerHello", 0x02),
    ("Certificate", 0x0B),
    ("ServerHelloDone", 0x0E),
    ("ClientKeyExchange", 0x10),
    ("Finished", 0x14),
)

HANDSHAKE_BODY_BYTES = 64
CLIENT_RANDOM_BYTES = 32
SERVER_RANDOM_BYTES = 32
MASTER_SECRET_BYTES = 48


class EvidenceSource(Protocol):
    def capture(self, domain: str) -> TLSSessionData: ...


def encode_evidence(evidence: TLSSessionData) -> bytes:
    """Canonical byte encoding of session evidence (sorted compact JSON)."""
    return canonical_json(evidence.to_dict())


def _hex(n: int) -> str:
    return "0x" + secrets.token_hex(n)


def self_signed_certificate(domain: str, issued_at: datetime) -> str:
    """Base64 of a PEM certificate for ``domain`` signed by a throwaway Ed25519 key."""
    key = ed25519.Ed25519PrivateKey.generate()
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, domain),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "claimproof simulated CA"),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(issued_at - timedelta(minutes=5))
        .not_valid_after(issued_at + timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .sign(key, None)
    )
    pem = cert.public_bytes(serialization.Encoding.PEM)
    return base64.b64encode(pem).decode("ascii")


class SimulatedEvidenceSource:
    """Synthetic evidence; nothing here is observed on a real connection."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def capture(self, domain: str) -> TLSSessionData:
        now = self._clock()
        logger.debug("Simulating TLS session evidence for %s", domain)
        handshake = tuple(
            "0x" + bytes([code]).hex() + secrets.token_hex(HANDSHAKE_BODY_BYTES)
            for _, code in HANDSHAKE_TYPES
        )
        return TLSSessionData(
            server_certificate=self_signed_certificate(
                domain, datetime.fromtimestamp(now, timezone.utc)
            ),
            session_keys={
                "clientRandom": _hex(CLIENT_RANDOM_BYTES),
                "serverRandom": _hex(SERVER_RANDOM_BYTES),
                "masterSecret": _hex(MASTER_SECRET_BYTES),
            },
            handshake_messages=handshake,
            timestamp=int(now * 1000),
        )
