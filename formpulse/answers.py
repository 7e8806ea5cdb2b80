"""Shape classification for untyped answer values.

Answers arrive as decoded JSON, so a value can be anything JSON can express.
Both the validator and the aggregation engine switch over the closed set of
kinds below instead of checking types ad hoc.
"""
import math
from enum import Enum
from typing import Any


class AnswerKind(str, Enum):
    EMPTY = "empty"
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    OTHER = "other"


def classify(value: Any) -> AnswerKind:
    # bool is an int subclass; test it first.
    if value is None:
        return AnswerKind.EMPTY
    if isinstance(value, bool):
        return AnswerKind.BOOL
    if isinstance(value, str):
        return AnswerKind.STRING if value else AnswerKind.EMPTY
    if isinstance(value, int):
        return AnswerKind.NUMBER
    if isinstance(value, float):
        # NaN and the infinities have no place on a rating scale or in an average.
        return AnswerKind.NUMBER if math.isfinite(value) else AnswerKind.OTHER
    if isinstance(value, list):
        return AnswerKind.LIST if value else AnswerKind.EMPTY
    return AnswerKind.OTHER


def is_number(value: Any) -> bool:
    return classify(value) is AnswerKind.NUMBER


def has_non_finite(value: Any) -> bool:
    """True when ``value`` is, or contains, NaN or an infinity."""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, list):
        return any(has_non_finite(item) for item in value)
    if isinstance(value, dict):
        return any(has_non_finite(item) for item in value.values())
    return False


def values_equal(left: Any, right: Any) -> bool:
    """Value equality that keeps booleans apart from numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return left == right
