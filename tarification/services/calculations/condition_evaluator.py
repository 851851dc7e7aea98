import re
import operator
from typing import Any, Optional

from tarification.models.models import RateCondition

# "<field> <op> <integer>", spaces optional
CONDITION_PATTERN = re.compile(r'^\s*(\w+)\s*(<=|>=|<|>|=)\s*(-?\d+)\s*$')

OPERATORS = {
    '<=': operator.le,
    '>=': operator.ge,
    '<': operator.lt,
    '>': operator.gt,
    '=': operator.eq,
}


def parse_condition(text: Any) -> Optional[RateCondition]:
    """Parses a legacy condition string such as 'venale <= 25000000'. None when malformed."""
    if not isinstance(text, str):
        return None
    match = CONDITION_PATTERN.match(text)
    if not match:
        return None
    field, op, threshold = match.groups()
    return RateCondition(field=field, operator=op, threshold=int(threshold))


def evaluate_condition(condition: Optional[RateCondition], value: float) -> bool:
    """Compares `value` to the condition threshold. A missing condition is false."""
    if condition is None or value is None:
        return False
    return OPERATORS[condition.operator](value, condition.threshold)


def evaluate(condition_text: Any, value: float) -> bool:
    """Parses then evaluates a condition string. Never raises; malformed input is false."""
    return evaluate_condition(parse_condition(condition_text), value)
