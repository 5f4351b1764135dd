"""
Closed extractor expression language.

Templates name their derived values with expressions of the form
``primitive(field[, argument])``. ``field`` names a raw extracted value;
``argument`` is a number, a quoted string or a ``$param`` reference that is
resolved from the proof request parameters. Expressions are parsed into
``Extractor`` values and evaluated by table lookup: nothing in a template
is ever executed as host code.

Examples::

    number(balance)
    greater_than(balance, $amount)
    equals(currency, "USD")
    within_days(lastActivity, 30)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..exceptions import ExtractorSyntaxError
from .claims import days_since, parse_currency, parse_follower_count

logger = logging.getLogger(__name__)

_EXPRESSION = re.compile(
    r"""^\s*(?P<name>[a-z_]+)\s*\(\s*
        (?P<field>[A-Za-z_][A-Za-z0-9_.\-]*)\s*
        (?:,\s*(?P<arg>
            -?\d+(?:\.\d+)?
          | "[^"\\]*"
          | '[^'\\]*'
          | \$[A-Za-z_][A-Za-z0-9_]*
        )\s*)?
        \)\s*$""",
    re.VERBOSE,
)

Argument = Union[int, float, str, "ParamRef"]


@dataclass(frozen=True)
class ParamRef:
    name: str


def _as_number(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return parse_currency(value)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no", "off")
    return bool(value)


def _number(value: Any, arg: Any, now: datetime) -> Optional[int]:
    return _as_number(value)


def _compare(op: Callable[[float, float], bool]) -> Callable[[Any, Any, datetime], Optional[int]]:
    def apply(value: Any, arg: Any, now: datetime) -> Optional[int]:
        number = _as_number(value)
        if number is None:
            return None
        return int(op(number, float(arg)))

    return apply


def _equals(value: Any, arg: Any, now: datetime) -> Optional[int]:
    return int(str(value).strip() == str(arg))


def _contains(value: Any, arg: Any, now: datetime) -> Optional[int]:
    return int(str(arg) in str(value))


def _truthy_flag(value: Any, arg: Any, now: datetime) -> Optional[int]:
    return int(_truthy(value))


def _within_days(value: Any, arg: Any, now: datetime) -> Optional[int]:
    days = days_since(value, now)
    return 0 if days is None else int(days < float(arg))


def _followers_over(value: Any, arg: Any, now: datetime) -> Optional[int]:
    return int(parse_follower_count(value) > float(arg))


@dataclass(frozen=True)
class _Primitive:
    apply: Callable[[Any, Any, datetime], Optional[int]]
    takes_argument: bool
    numeric_argument: bool = True


PRIMITIVES: Mapping[str, _Primitive] = {
    "number": _Primitive(_number, takes_argument=False),
    "greater_than": _Primitive(_compare(lambda a, b: a > b), takes_argument=True),
    "at_least": _Primitive(_compare(lambda a, b: a >= b), takes_argument=True),
    "less_than": _Primitive(_compare(lambda a, b: a < b), takes_argument=True),
    "equals": _Primitive(_equals, takes_argument=True, numeric_argument=False),
    "contains": _Primitive(_contains, takes_argument=True, numeric_argument=False),
    "truthy": _Primitive(_truthy_flag, takes_argument=False),
    "within_days": _Primitive(_within_days, takes_argument=True),
    "followers_over": _Primitive(_followers_over, takes_argument=True),
}


@dataclass(frozen=True)
class Extractor:
    primitive: str
    field: str
    argument: Optional[Argument] = None

    def evaluate(
        self,
        raw: Mapping[str, Any],
        params: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Evaluate against raw values.

        Returns None when the field is absent or a referenced parameter is
        missing or malformed.
        """
        value = raw.get(self.field)
        if value is None:
            return None
        spec = PRIMITIVES[self.primitive]
        arg = self.argument
        if isinstance(arg, ParamRef):
            arg = (params or {}).get(arg.name)
            if arg is None:
                logger.debug("Parameter $%s not supplied for %s", self.argument.name, self)
                return None
        if spec.takes_argument and spec.numeric_argument:
            try:
                arg = float(arg)
            except (TypeError, ValueError):
                logger.warning("Non-numeric argument %r for %s", arg, self.primitive)
                return None
        return spec.apply(value, arg, now or datetime.now(timezone.utc))

    def __str__(self) -> str:
        if self.argument is None:
            return f"{self.primitive}({self.field})"
        if isinstance(self.argument, ParamRef):
            return f"{self.primitive}({self.field}, ${self.argument.name})"
        if isinstance(self.argument, str):
            return f'{self.primitive}({self.field}, "{self.argument}")'
        return f"{self.primitive}({self.field}, {self.argument})"


def parse_extractor(expression: str) -> Extractor:
    """
    Parse one extractor expression.

    Raises:
        ExtractorSyntaxError: If the expression is not in the language.
    """
    if not isinstance(expression, str):
        raise ExtractorSyntaxError(f"Extractor must be a string, got {type(expression).__name__}")
    match = _EXPRESSION.match(expression)
    if match is None:
        raise ExtractorSyntaxError(f"Syntax error in extractor: {expression!r}")

    name = match.group("name")
    spec = PRIMITIVES.get(name)
    if spec is None:
        raise ExtractorSyntaxError(f"Unknown extractor primitive: {name}")

    raw_arg = match.group("arg")
    if spec.takes_argument and raw_arg is None:
        raise ExtractorSyntaxError(f"{name} requires an argument")
    if not spec.takes_argument and raw_arg is not None:
        raise ExtractorSyntaxError(f"{name} takes no argument")

    argument: Optional[Argument] = None
    if raw_arg is not None:
        if raw_arg.startswith("$"):
            argument = ParamRef(raw_arg[1:])
        elif raw_arg[0] in "\"'":
            if spec.numeric_argument:
                raise ExtractorSyntaxError(f"{name} requires a numeric argument")
            argument = raw_arg[1:-1]
        else:
            argument = float(raw_arg) if "." in raw_arg else int(raw_arg)
    return Extractor(name, match.group("field"), argument)


def is_valid_extractor(expression: str) -> bool:
    try:
        parse_extractor(expression)
    except ExtractorSyntaxError:
        return False
    return True


def apply_extractors(
    extractors: Mapping[str, str],
    raw: Mapping[str, Any],
    params: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Evaluate every extractor of a template, keyed by extractor name.

    Extractors whose field is absent are left out of the result.

    Raises:
        ExtractorSyntaxError: If any expression does not parse.
    """
    processed: Dict[str, Any] = {}
    for name, expression in extractors.items():
        value = parse_extractor(expression).evaluate(raw, params, now)
        if value is not None:
            processed[name] = value
    return processed
