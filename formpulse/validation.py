import logging
from typing import Any, Dict, Iterable, List, Mapping

from formpulse.answers import AnswerKind, classify, has_non_finite, is_number, values_equal
from formpulse.errors import (
    InvalidFormDefinition,
    InvalidValue,
    MissingRequired,
    OutOfRange,
    ValueNotAllowed,
)
from formpulse.models import (
    CHOICE_TYPES,
    FIELD_MULTI_SELECT,
    FIELD_RATING,
    FIELD_SINGLE_CHOICE,
    FIELD_TEXT,
    FieldSchema,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Untitled Form"
PLACEHOLDER_LABEL = "Question"


def is_visible(field: FieldSchema, answers: Mapping[str, Any]) -> bool:
    """Return whether ``field`` is shown for the given answers.

    Only the direct reference is consulted: a condition pointing at a field
    that is itself hidden still evaluates against whatever answer is present.
    """
    condition = field.show_if
    if condition is None:
        return True
    if condition.field_id not in answers:
        return False
    return values_equal(answers[condition.field_id], condition.equals)


def _check_text(field: FieldSchema, value: Any) -> None:
    if classify(value) is not AnswerKind.STRING:
        raise InvalidValue(field.id, field.label)


def _check_single_choice(field: FieldSchema, value: Any) -> None:
    if not isinstance(value, str) or value not in field.options:
        raise ValueNotAllowed(field.id, field.label)


def _check_multi_select(field: FieldSchema, value: Any) -> None:
    if not isinstance(value, list):
        raise ValueNotAllowed(field.id, field.label)
    for item in value:
        if not isinstance(item, str) or item not in field.options:
            raise ValueNotAllowed(field.id, field.label)


def _check_rating(field: FieldSchema, value: Any) -> None:
    low, high = field.rating_bounds()
    if not is_number(value) or value < low or value > high:
        raise OutOfRange(field.id, field.label)


_TYPE_CHECKS = {
    FIELD_TEXT: _check_text,
    FIELD_SINGLE_CHOICE: _check_single_choice,
    FIELD_MULTI_SELECT: _check_multi_select,
    FIELD_RATING: _check_rating,
}


def validate(fields: Iterable[FieldSchema], answers: Mapping[str, Any]) -> None:
    """Check ``answers`` against ``fields`` and raise on the first violation.

    Fields are walked in schema order. Hidden fields are skipped outright, so
    an answer supplied for one is neither required nor type checked. Once the
    schema passes, no answer anywhere may hold NaN or an infinity.
    """
    fields = list(fields)
    for field in fields:
        if not is_visible(field, answers):
            continue
        if field.id not in answers:
            if field.required:
                raise MissingRequired(field.id, field.label)
            continue
        check = _TYPE_CHECKS.get(field.type)
        if check is not None:
            check(field, answers[field.id])

    # Covers answers the per-type checks never looked at.
    labels = {field.id: field.label for field in fields}
    for field_id, value in answers.items():
        if has_non_finite(value):
            raise InvalidValue(field_id, labels.get(field_id))


def validate_form_definition(title: str, fields: List[FieldSchema]) -> None:
    if not title.strip() or title == PLACEHOLDER_TITLE:
        raise InvalidFormDefinition("Form title is required")
    if not fields:
        raise InvalidFormDefinition("At least one field is required")
    if not any(field.required for field in fields):
        raise InvalidFormDefinition("At least one field must be required")

    seen: Dict[str, FieldSchema] = {}
    for field in fields:
        if not field.id.strip():
            raise InvalidFormDefinition("All fields must have an id")
        if field.id in seen:
            raise InvalidFormDefinition(f"Duplicate field id: {field.id}")
        seen[field.id] = field

    for field in fields:
        if not field.label.strip() or field.label == PLACEHOLDER_LABEL:
            raise InvalidFormDefinition("All fields must have proper labels")
        if field.is_pii and not field.required:
            raise InvalidFormDefinition("PII fields must be required")
        if field.type in CHOICE_TYPES:
            if not field.options:
                raise InvalidFormDefinition("Choice fields must have at least one option")
            if any(not option for option in field.options):
                raise InvalidFormDefinition("All options must have text")
        if field.show_if is not None:
            target = field.show_if.field_id
            if target == field.id or target not in seen:
                raise InvalidFormDefinition(f"Field {field.id} shows on unknown field {target}")
    logger.debug("Form definition with %d fields passed validation", len(fields))
