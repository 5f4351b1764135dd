"""
Circuit and proving configuration for claimproof.

Constants shared by the circuits, the input mapper and the orchestrator.
Everything a deployment may want to change at runtime lives in
``claimproof.settings`` instead.
"""

# ============================================================================
# FIELD
# ============================================================================

# BN254 (alt_bn128) scalar field, the native field of Groth16 over bn128
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_BITS = 254
FIELD_ELEMENT_BYTES = 32

CURVE_NAME = "bn128"
PROOF_PROTOCOL = "groth16"

# ============================================================================
# SPONGE HASH
# ============================================================================

SPONGE_WIDTH = 3
SPONGE_RATE = 2
SPONGE_FULL_ROUNDS = 8
SPONGE_PARTIAL_ROUNDS = 57
SPONGE_ALPHA = 5

# Nothing-up-my-sleeve seed for round constants and MDS matrix
SPONGE_SEED = b"CLAIMPROOF_V1_SPONGE"

DOMAIN_HASH_SEPARATOR = b"CLAIMPROOF_V1_DOMAIN"

# ============================================================================
# COMPARATOR
# ============================================================================

CLAIM_TYPE_GT = 1
CLAIM_TYPE_LT = 2
CLAIM_TYPE_EQ = 3
CLAIM_TYPE_CONTAINS = 4
CLAIM_TYPE_RANGE = 5
CLAIM_TYPE_NEQ = 6

COMPARATOR_CLAIM_TYPES = (
    CLAIM_TYPE_GT,
    CLAIM_TYPE_LT,
    CLAIM_TYPE_EQ,
    CLAIM_TYPE_CONTAINS,
    CLAIM_TYPE_RANGE,
    CLAIM_TYPE_NEQ,
)

# Values are reconstructed inside one field element: 31 bytes = 248 bits
VALUE_BYTES = 31
COMPARE_BITS = VALUE_BYTES * 8

# Lengths and timestamps are compared with narrower range checks
LENGTH_BITS = 16
TIMESTAMP_BITS = 64
TIMESTAMP_BYTES = 8

# ============================================================================
# CIRCUIT SIZES
# ============================================================================

# Generic claim circuit (max_data_length, max_tls_length)
GENERIC_MAX_DATA_LENGTH = 64
GENERIC_MAX_TLS_LENGTH = 1024

BALANCE_MAX_DATA_LENGTH = 32
BALANCE_MAX_TLS_LENGTH = 256

FOLLOWER_MAX_DATA_LENGTH = 16
FOLLOWER_MAX_TLS_LENGTH = 128

# Dynamic (per-template) circuits share these sizes
DYNAMIC_MAX_TLS_LENGTH = 256
TEMPLATE_DATA_LENGTH = 64
MAX_AUTHORIZED_DOMAINS = 16
REGISTRY_SIZE = 8

# ============================================================================
# CIRCUIT INPUT
# ============================================================================

DEFAULT_MAX_DATA_LENGTH = 32
MAX_DATA_LENGTH = 64
MIN_DATA_LENGTH = 16
MAX_CLAIM_LENGTH = 16

# Off-circuit fingerprints keep the first 8 bytes of a SHA-256 digest
FINGERPRINT_BYTES = 8

TIMESTAMP_MAX_PAST_SECONDS = 24 * 60 * 60
TIMESTAMP_MAX_FUTURE_SECONDS = 5 * 60

DATA_TYPES = ("numeric", "string", "boolean")
CLAIM_KINDS = ("comparison", "existence", "pattern")

DATA_TYPE_CODES = {"numeric": 0, "string": 1, "boolean": 2}
CLAIM_KIND_CODES = {"comparison": 0, "existence": 1, "pattern": 2}

INFLUENCER_FOLLOWER_THRESHOLD = 10_000
RECENT_ACTIVITY_DAYS = 30

# ============================================================================
# PROOF SERIALIZATION
# ============================================================================

SERIALIZATION_FORMAT = "CBOR"
PROOF_VERSION = 1

CIRCUIT_VERSION = "1.0.0"
GENERIC_CIRCUIT_PREFIX = "generic"


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert FIELD_MODULUS.bit_length() == FIELD_BITS, "Unexpected field size"
    assert COMPARE_BITS + 1 < FIELD_BITS, "Comparator width exceeds field"
    assert SPONGE_RATE == SPONGE_WIDTH - 1, "Sponge keeps a single capacity lane"
    assert SPONGE_FULL_ROUNDS % 2 == 0, "Full rounds are split around partial rounds"
    assert MIN_DATA_LENGTH >= 2 * TIMESTAMP_BYTES, "Data record does not fit"
    assert DEFAULT_MAX_DATA_LENGTH <= MAX_DATA_LENGTH
    assert set(DATA_TYPE_CODES) == set(DATA_TYPES)
    assert set(CLAIM_KIND_CODES) == set(CLAIM_KINDS)
    return True


# Auto-validate on import
validate_config()
