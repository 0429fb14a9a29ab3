"""Condition definitions and evaluation for rule matching."""

import logging
import re
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator, model_validator

if TYPE_CHECKING:
    from email_rules.mail.messages import EmailMessage

logger = logging.getLogger(__name__)


class ConditionField(str, Enum):
    """Message fields a condition can inspect."""

    FROM_EMAIL = "from_email"
    FROM_NAME = "from_name"
    TO_EMAIL = "to_email"
    TO_NAME = "to_name"
    CC_EMAIL = "cc_email"
    SUBJECT = "subject"
    BODY = "body"
    FOLDER = "folder"
    LABEL = "label"
    ATTACHMENT_NAME = "attachment_name"
    PRIORITY = "priority"
    AI_CATEGORY = "ai_category"

    HAS_ATTACHMENTS = "has_attachments"
    IS_READ = "is_read"
    IS_STARRED = "is_starred"
    IS_FLAGGED = "is_flagged"

    ATTACHMENT_COUNT = "attachment_count"


class ConditionOperator(str, Enum):
    """Comparison applied between a message field and a condition value."""

    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MATCHES_REGEX = "matches_regex"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"

    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class ValueKind(str, Enum):
    """Type of value a field produces."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"


FIELD_KINDS: dict[ConditionField, ValueKind] = {
    ConditionField.FROM_EMAIL: ValueKind.STRING,
    ConditionField.FROM_NAME: ValueKind.STRING,
    ConditionField.TO_EMAIL: ValueKind.STRING,
    ConditionField.TO_NAME: ValueKind.STRING,
    ConditionField.CC_EMAIL: ValueKind.STRING,
    ConditionField.SUBJECT: ValueKind.STRING,
    ConditionField.BODY: ValueKind.STRING,
    ConditionField.FOLDER: ValueKind.STRING,
    ConditionField.LABEL: ValueKind.STRING,
    ConditionField.ATTACHMENT_NAME: ValueKind.STRING,
    ConditionField.PRIORITY: ValueKind.STRING,
    ConditionField.AI_CATEGORY: ValueKind.STRING,
    ConditionField.HAS_ATTACHMENTS: ValueKind.BOOLEAN,
    ConditionField.IS_READ: ValueKind.BOOLEAN,
    ConditionField.IS_STARRED: ValueKind.BOOLEAN,
    ConditionField.IS_FLAGGED: ValueKind.BOOLEAN,
    ConditionField.ATTACHMENT_COUNT: ValueKind.NUMBER,
}

# Multi-valued fields: positive operators match if any element matches
LIST_FIELDS = frozenset(
    {
        ConditionField.TO_EMAIL,
        ConditionField.TO_NAME,
        ConditionField.CC_EMAIL,
        ConditionField.LABEL,
        ConditionField.ATTACHMENT_NAME,
    }
)

OPERATORS_BY_KIND: dict[ValueKind, frozenset[ConditionOperator]] = {
    ValueKind.STRING: frozenset(
        {
            ConditionOperator.CONTAINS,
            ConditionOperator.NOT_CONTAINS,
            ConditionOperator.EQUALS,
            ConditionOperator.NOT_EQUALS,
            ConditionOperator.STARTS_WITH,
            ConditionOperator.ENDS_WITH,
            ConditionOperator.MATCHES_REGEX,
            ConditionOperator.IS_EMPTY,
            ConditionOperator.IS_NOT_EMPTY,
            ConditionOperator.IN_LIST,
            ConditionOperator.NOT_IN_LIST,
        }
    ),
    ValueKind.BOOLEAN: frozenset({ConditionOperator.EQUALS}),
    ValueKind.NUMBER: frozenset(
        {
            ConditionOperator.EQUALS,
            ConditionOperator.NOT_EQUALS,
            ConditionOperator.GREATER_THAN,
            ConditionOperator.LESS_THAN,
        }
    ),
}

# Negated string operators and the positive test they invert
NEGATED_OPERATORS: dict[ConditionOperator, ConditionOperator] = {
    ConditionOperator.NOT_CONTAINS: ConditionOperator.CONTAINS,
    ConditionOperator.NOT_EQUALS: ConditionOperator.EQUALS,
    ConditionOperator.NOT_IN_LIST: ConditionOperator.IN_LIST,
}

OPERATOR_ALIASES = {
    "is": "equals",
    "is_not": "not_equals",
    "does_not_contain": "not_contains",
}

# Field names used by the simplified rule shape
SIMPLE_FIELD_ALIASES = {
    "from": "from_email",
    "to": "to_email",
    "cc": "cc_email",
    "importance": "priority",
}

TRUE_STRINGS = frozenset({"true", "yes", "1"})
FALSE_STRINGS = frozenset({"false", "no", "0"})


def coerce_bool(value: Any) -> bool | None:
    """Coerce a condition value to bool, or None if it isn't boolean-like."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return None


def coerce_number(value: Any) -> float | None:
    """Coerce a condition value to a number, or None if it isn't numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class Condition(BaseModel):
    """A single predicate over one message field."""

    field: ConditionField
    operator: ConditionOperator = ConditionOperator.CONTAINS
    value: Any = Field(default=None, description="Value to compare against")

    @model_validator(mode="before")
    @classmethod
    def _accept_simple_shape(cls, data: Any) -> Any:
        """Accept ``{"type": "from", "operator": "is_domain", ...}`` conditions."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "field" not in data and "type" in data:
            field_name = data.pop("type")
            data["field"] = SIMPLE_FIELD_ALIASES.get(field_name, field_name)
        if data.get("operator") == "is_domain":
            domain = str(data.get("value") or "").lstrip("@")
            data["operator"] = "ends_with"
            data["value"] = f"@{domain}"
        return data

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return OPERATOR_ALIASES.get(value, value)
        return value

    @property
    def kind(self) -> ValueKind:
        """Value kind of the inspected field."""
        return FIELD_KINDS[self.field]

    @property
    def is_compatible(self) -> bool:
        """Whether the operator can be applied to this field's kind."""
        return self.operator in OPERATORS_BY_KIND[self.kind]

    def matches(self, email: "EmailMessage") -> bool:
        """Check if the email satisfies this condition."""
        return evaluate_condition(self, email)


def get_field_value(email: "EmailMessage", field: ConditionField) -> Any:
    """
    Extract the value a condition field refers to.

    Raises:
        AttributeError: If the message lacks the underlying attribute.
    """
    match field:
        case ConditionField.FROM_EMAIL:
            return email.from_email
        case ConditionField.FROM_NAME:
            return email.from_name
        case ConditionField.TO_EMAIL:
            return email.to_emails
        case ConditionField.TO_NAME:
            return email.to_names
        case ConditionField.CC_EMAIL:
            return email.cc_emails
        case ConditionField.SUBJECT:
            return email.subject
        case ConditionField.BODY:
            return email.body
        case ConditionField.FOLDER:
            return email.folder
        case ConditionField.LABEL:
            return email.labels
        case ConditionField.ATTACHMENT_NAME:
            return email.attachment_names
        case ConditionField.PRIORITY:
            return email.priority
        case ConditionField.AI_CATEGORY:
            return email.ai_category
        case ConditionField.HAS_ATTACHMENTS:
            return email.has_attachments
        case ConditionField.IS_READ:
            return email.is_read
        case ConditionField.IS_STARRED:
            return email.is_starred
        case ConditionField.IS_FLAGGED:
            return email.is_flagged
        case ConditionField.ATTACHMENT_COUNT:
            if email.attachments_count is not None:
                return email.attachments_count
            return len(email.attachment_names or [])


def evaluate_condition(condition: Condition, email: "EmailMessage") -> bool:
    """
    Decide whether a single condition holds for an email.

    String comparisons are case-insensitive. Incompatible operators, values
    of the wrong type and missing message attributes all evaluate to False;
    this function never raises.

    Args:
        condition: The condition to check.
        email: The message to check it against.

    Returns:
        True if the condition is satisfied.
    """
    if not condition.is_compatible:
        return False

    try:
        actual = get_field_value(email, condition.field)
        match condition.kind:
            case ValueKind.BOOLEAN:
                return _evaluate_boolean(condition, actual)
            case ValueKind.NUMBER:
                return _evaluate_number(condition, actual)
            case ValueKind.STRING:
                return _evaluate_string(condition, actual)
    except (AttributeError, TypeError, ValueError, re.error) as e:
        logger.debug("Condition %s %s not evaluable: %s", condition.field.value, condition.operator.value, e)
    return False


def evaluate_conditions(
    conditions: list[Condition],
    match_all: bool,
    email: "EmailMessage",
) -> bool:
    """
    Evaluate a rule's condition group.

    AND stops at the first false condition, OR at the first true one. An
    empty condition list never matches.
    """
    if not conditions:
        return False

    if match_all:
        return all(evaluate_condition(c, email) for c in conditions)
    return any(evaluate_condition(c, email) for c in conditions)


def explain_conditions(
    conditions: list[Condition],
    email: "EmailMessage",
) -> list[tuple[Condition, bool]]:
    """Evaluate every condition (no short-circuit) for display."""
    return [(c, evaluate_condition(c, email)) for c in conditions]


def _evaluate_boolean(condition: Condition, actual: Any) -> bool:
    expected = coerce_bool(condition.value)
    if expected is None or not isinstance(actual, bool):
        return False
    return actual is expected


def _evaluate_number(condition: Condition, actual: Any) -> bool:
    expected = coerce_number(condition.value)
    if expected is None or actual is None or isinstance(actual, bool):
        return False
    actual = float(actual)

    match condition.operator:
        case ConditionOperator.EQUALS:
            return actual == expected
        case ConditionOperator.NOT_EQUALS:
            return actual != expected
        case ConditionOperator.GREATER_THAN:
            return actual > expected
        case ConditionOperator.LESS_THAN:
            return actual < expected
        case _:
            return False


def _evaluate_string(condition: Condition, actual: Any) -> bool:
    values = actual if isinstance(actual, (list, tuple)) else [actual]
    haystacks = ["" if v is None else str(v).lower() for v in values]
    operator = condition.operator

    if operator is ConditionOperator.IS_EMPTY:
        return all(not h.strip() for h in haystacks)
    if operator is ConditionOperator.IS_NOT_EMPTY:
        return any(h.strip() for h in haystacks)

    # Value type must suit the operator, for negated operators too
    value = condition.value
    if operator in (ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST):
        if not isinstance(value, (list, tuple)):
            return False
    elif isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return False

    positive = NEGATED_OPERATORS.get(operator)
    if positive is not None:
        return not any(_string_matches(positive, h, value) for h in haystacks)
    return any(_string_matches(operator, h, value) for h in haystacks)


def _string_matches(operator: ConditionOperator, haystack: str, value: Any) -> bool:
    match operator:
        case ConditionOperator.CONTAINS:
            return str(value).lower() in haystack
        case ConditionOperator.EQUALS:
            return haystack == str(value).lower()
        case ConditionOperator.STARTS_WITH:
            return haystack.startswith(str(value).lower())
        case ConditionOperator.ENDS_WITH:
            return haystack.endswith(str(value).lower())
        case ConditionOperator.MATCHES_REGEX:
            return bool(re.search(str(value), haystack, re.IGNORECASE))
        case ConditionOperator.IN_LIST:
            return any(haystack == str(v).lower() for v in value)
        case _:
            return False
