"""Condition expressions for device links.

A condition is a plain string such as ``"650"``, ``">600"`` or ``"true"``.
Numeric components may prefix the operand with ``>=``, ``<=``, ``>``, ``<``
or ``==``; anything without a prefix is compared for equality.
"""

from __future__ import annotations

import math
import operator
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple

from app.schemas import Component, Datatype

# Two-character operators must be tried before their one-character prefixes.
_OPERATORS: Tuple[Tuple[str, Callable[[float, float], bool]], ...] = (
    (">=", operator.ge),
    ("<=", operator.le),
    ("==", operator.eq),
    (">", operator.gt),
    ("<", operator.lt),
)


def parse_condition(expr: str) -> Tuple[str, str]:
    """Split ``expr`` into its comparison operator and operand."""
    candidate = expr.strip()
    for symbol, _ in _OPERATORS:
        if candidate.startswith(symbol):
            return symbol, candidate[len(symbol):].strip()
    return "==", candidate


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed):
        return None
    return parsed


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compare_number(value: Any, expr: str) -> bool:
    symbol, operand = parse_condition(expr)
    left = _to_float(value)
    right = _to_float(operand)
    if left is None or right is None:
        return False
    compare = dict(_OPERATORS)[symbol]
    return compare(left, right)


def compare_value(value: Any, expr: str, datatype: Datatype) -> bool:
    """Test one instance value against ``expr`` for the given datatype."""
    if value is None:
        return False
    if datatype is Datatype.number:
        return compare_number(value, expr)
    if datatype is Datatype.boolean:
        return _stringify(value).strip().lower() == expr.strip().lower()
    return _stringify(value) == expr


def flatten(components: Iterable[Component]) -> Iterator[Tuple[Datatype, Any]]:
    for component in components:
        for instance in component.instances:
            yield component.datatype, instance.value


def matches(
    current_value: Iterable[Component],
    expr: str,
    datatype: Optional[Datatype] = None,
) -> bool:
    """True when any instance of any component satisfies ``expr``.

    ``datatype`` overrides each component's own datatype when given.
    """
    return any(
        compare_value(value, expr, datatype or component_type)
        for component_type, value in flatten(current_value)
    )
