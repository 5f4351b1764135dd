"""
Claim enumeration and per-claim strategies.

Each known claim has one strategy: its data type and claim kind, the
function extracting the proven value from raw page data, the parameter that
carries its threshold, the page fields it reads and its validation rules.
Unknown claim names resolve to ``DEFAULT_STRATEGY`` (numeric comparison,
no value).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Tuple

from ..config import INFLUENCER_FOLLOWER_THRESHOLD, RECENT_ACTIVITY_DAYS
from ..types import ValidationRule

logger = logging.getLogger(__name__)

Extractor = Callable[[Mapping[str, Any], Mapping[str, Any], datetime], Optional[int]]

ACTUAL_VALUE = "actualValue"

_CURRENCY_NOISE = re.compile(r"[$,\s]")
_FOLLOWER_NOISE = re.compile(r"[,\s]")
_NUMBER_PREFIX = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


class ClaimName(str, Enum):
    BALANCE_GREATER_THAN = "balanceGreaterThan"
    HAS_MINIMUM_BALANCE = "hasMinimumBalance"
    FOLLOWERS_GREATER_THAN = "followersGreaterThan"
    IS_INFLUENCER = "isInfluencer"
    HAS_VERIFIED_BADGE = "hasVerifiedBadge"
    ACCOUNT_AGE = "accountAge"
    IS_VERIFIED_ACCOUNT = "isVerifiedAccount"
    HAS_RECENT_ACTIVITY = "hasRecentActivity"
    HAS_RECENT_TRANSACTION = "hasRecentTransaction"
    CURRENCY_CHECK = "currencyCheck"

    @classmethod
    def parse(cls, name: str) -> Optional["ClaimName"]:
        try:
            return cls(name)
        except ValueError:
            return None


# ============================================================================
# PARSING HELPERS
# ============================================================================


def _parse_float_prefix(text: str) -> Optional[float]:
    match = _NUMBER_PREFIX.match(text)
    if match is None:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_currency(value: Any) -> int:
    """``"$1,234.56"`` -> 1234; unparseable values give 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return math.floor(value)
    if not value:
        return 0
    parsed = _parse_float_prefix(_CURRENCY_NOISE.sub("", str(value)))
    return 0 if parsed is None else math.floor(parsed)


def parse_follower_count(value: Any) -> int:
    """``"12.5K"`` -> 12500, ``"1.2m"`` -> 1200000."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return math.floor(value)
    if not value:
        return 0
    cleaned = _FOLLOWER_NOISE.sub("", str(value)).lower()
    multiplier = 1
    if "k" in cleaned:
        multiplier = 1_000
    elif "m" in cleaned:
        multiplier = 1_000_000
    parsed = _parse_float_prefix(cleaned.replace("k", "").replace("m", ""))
    return 0 if parsed is None else math.floor(parsed * multiplier)


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date/time or a unix timestamp (seconds or ms)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return parse_instant(float(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def days_since(value: Any, now: datetime) -> Optional[int]:
    instant = parse_instant(value)
    if instant is None:
        logger.warning("Could not parse date value %r", value)
        return None
    return math.floor((now - instant).total_seconds() / 86400)


def parse_number(value: Any) -> Optional[int]:
    """Integer part of a numeric parameter or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return math.floor(value) if math.isfinite(value) else None
    parsed = _parse_float_prefix(_CURRENCY_NOISE.sub("", str(value)))
    return None if parsed is None else math.floor(parsed)


def first_present(raw: Mapping[str, Any], *fields: str) -> Any:
    for name in fields:
        value = raw.get(name)
        if value not in (None, ""):
            return value
    return None


# ============================================================================
# EXTRACTION STRATEGIES
# ============================================================================


def _balance(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    value = first_present(raw, "balance", "availableBalance")
    return None if value is None else parse_currency(value)


def _followers(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    value = first_present(raw, "followers")
    return None if value is None else parse_follower_count(value)


def _influencer(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    followers = _followers(raw, params, now)
    if followers is None:
        return None
    return int(followers > INFLUENCER_FOLLOWER_THRESHOLD)


def _verified_badge(
    raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime
) -> Optional[int]:
    return int(bool(raw.get("verifiedBadge")))


def _verified_account(
    raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime
) -> Optional[int]:
    status = first_present(raw, "accountStatus")
    if status is None:
        return None
    return int("verified" in str(status).lower())


def _recent_activity(
    raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime
) -> Optional[int]:
    last = first_present(raw, "lastActivity", "lastTransactionDate")
    if last is None:
        return None
    days = days_since(last, now)
    return int(days is not None and days < RECENT_ACTIVITY_DAYS)


def _account_age(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    created = first_present(raw, "accountCreated", "createdAt", "joinDate")
    if created is None:
        return None
    days = days_since(created, now)
    return None if days is None else max(days, 0)


def _currency(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    currency = first_present(raw, "currency", "primaryCurrency")
    if currency is None:
        return None
    return int(str(currency) == str(params.get("expectedCurrency") or "USD"))


def _no_value(raw: Mapping[str, Any], params: Mapping[str, Any], now: datetime) -> Optional[int]:
    return None


def _rule(rule_type: str, message: str, constraint: Any = None) -> ValidationRule:
    return ValidationRule(ACTUAL_VALUE, rule_type, message, constraint)


NUMERIC_RULE = _rule("numeric", "Numeric value required for comparison")
REQUIRED_RULE = _rule("required", "Value must exist for boolean check")


@dataclass(frozen=True)
class ClaimStrategy:
    """
    ``inclusive`` comparisons hold when the value equals the threshold;
    the others are strict.
    """

    data_type: str
    claim_type: str
    extract: Extractor
    threshold_param: Optional[str] = None
    input_fields: Tuple[str, ...] = ()
    rules: Tuple[ValidationRule, ...] = ()
    inclusive: bool = False


CLAIM_STRATEGIES: Mapping[ClaimName, ClaimStrategy] = {
    ClaimName.BALANCE_GREATER_THAN: ClaimStrategy(
        "numeric", "comparison", _balance, "amount", ("balance", "availableBalance"), (NUMERIC_RULE,)
    ),
    ClaimName.HAS_MINIMUM_BALANCE: ClaimStrategy(
        "numeric",
        "comparison",
        _balance,
        "minimum",
        ("balance", "availableBalance"),
        (NUMERIC_RULE,),
        inclusive=True,
    ),
    ClaimName.FOLLOWERS_GREATER_THAN: ClaimStrategy(
        "numeric", "comparison", _followers, "count", ("followers",), (NUMERIC_RULE,)
    ),
    ClaimName.IS_INFLUENCER: ClaimStrategy(
        "boolean", "existence", _influencer, None, ("followers",), (REQUIRED_RULE,)
    ),
    ClaimName.HAS_VERIFIED_BADGE: ClaimStrategy(
        "boolean", "existence", _verified_badge, None, ("verifiedBadge",), (REQUIRED_RULE,)
    ),
    ClaimName.ACCOUNT_AGE: ClaimStrategy(
        "numeric",
        "comparison",
        _account_age,
        "days",
        ("accountCreated", "createdAt", "joinDate"),
        (NUMERIC_RULE,),
    ),
    ClaimName.IS_VERIFIED_ACCOUNT: ClaimStrategy(
        "boolean", "existence", _verified_account, None, ("accountStatus",), (REQUIRED_RULE,)
    ),
    ClaimName.HAS_RECENT_ACTIVITY: ClaimStrategy(
        "boolean",
        "existence",
        _recent_activity,
        None,
        ("lastActivity", "lastTransactionDate"),
        (REQUIRED_RULE,),
    ),
    ClaimName.HAS_RECENT_TRANSACTION: ClaimStrategy(
        "boolean",
        "existence",
        _recent_activity,
        None,
        ("lastActivity", "lastTransactionDate"),
        (REQUIRED_RULE,),
    ),
    ClaimName.CURRENCY_CHECK: ClaimStrategy(
        "string", "pattern", _currency, None, ("currency", "primaryCurrency")
    ),
}

DEFAULT_STRATEGY = ClaimStrategy("numeric", "comparison", _no_value)


def strategy_for(claim: str) -> ClaimStrategy:
    name = ClaimName.parse(claim)
    return DEFAULT_STRATEGY if name is None else CLAIM_STRATEGIES[name]


def is_known_claim(claim: str) -> bool:
    return ClaimName.parse(claim) is not None


def threshold_for(claim: str, params: Mapping[str, Any]) -> int:
    """Comparison threshold carried by ``params`` for ``claim`` (0 if none)."""
    param = strategy_for(claim).threshold_param
    if param is None:
        return 0
    value = parse_number(params.get(param))
    if value is None:
        if params.get(param) is not None:
            logger.warning("Ignoring non-numeric %s=%r for %s", param, params.get(param), claim)
        return 0
    return value
