"""Save-time validation and human-readable descriptions of rules."""

import re

from pydantic import BaseModel, Field

from email_rules.rules.actions import ActionType, RuleAction
from email_rules.rules.conditions import (
    Condition,
    ConditionField,
    ConditionOperator,
    ValueKind,
    coerce_bool,
    coerce_number,
)
from email_rules.rules.engine import Rule
from email_rules.rules.errors import ConfigurationError

# Operators that don't look at the condition value
VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY})
LIST_OPERATORS = frozenset({ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST})


class RuleValidationError(BaseModel):
    """A single problem with a rule definition."""

    field: str = Field(description="Dotted path of the offending part")
    message: str


class RuleValidationResult(BaseModel):
    """Outcome of validating a rule."""

    errors: list[RuleValidationError] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise ConfigurationError for the first problem, if any."""
        if self.errors:
            first = self.errors[0]
            raise ConfigurationError(first.message, field=first.field)


def validate_condition(condition: Condition, index: int = 0) -> list[RuleValidationError]:
    """Check one condition for type and value problems."""
    path = f"conditions[{index}]"
    errors: list[RuleValidationError] = []
    kind = condition.kind
    operator = condition.operator
    value = condition.value

    if not condition.is_compatible:
        errors.append(RuleValidationError(
            field=f"{path}.operator",
            message=f"Operator '{operator.value}' cannot be used with {kind.value} field '{condition.field.value}'",
        ))
        return errors

    if operator in VALUELESS_OPERATORS:
        return errors

    match kind:
        case ValueKind.BOOLEAN:
            if coerce_bool(value) is None:
                errors.append(RuleValidationError(
                    field=f"{path}.value",
                    message=f"'{condition.field.value}' needs a true/false value",
                ))
        case ValueKind.NUMBER:
            if coerce_number(value) is None:
                errors.append(RuleValidationError(
                    field=f"{path}.value",
                    message=f"'{condition.field.value}' needs a numeric value",
                ))
        case ValueKind.STRING:
            if operator in LIST_OPERATORS:
                if not isinstance(value, (list, tuple)) or not value:
                    errors.append(RuleValidationError(
                        field=f"{path}.value",
                        message=f"'{operator.value}' needs a non-empty list of values",
                    ))
            elif isinstance(value, bool) or not isinstance(value, (str, int, float)) or value == "":
                errors.append(RuleValidationError(
                    field=f"{path}.value", message="A text value is required"
                ))
            elif operator is ConditionOperator.MATCHES_REGEX:
                try:
                    re.compile(str(value))
                except re.error as e:
                    errors.append(RuleValidationError(
                        field=f"{path}.value", message=f"Invalid regular expression: {e}"
                    ))

    return errors


def validate_rule(rule: Rule) -> RuleValidationResult:
    """
    Validate a rule before it is saved.

    The engine tolerates every problem reported here (a broken condition
    never matches, a broken action is a no-op), so validation is what tells
    the user their rule is inert.
    """
    errors: list[RuleValidationError] = []

    if not rule.name.strip():
        errors.append(RuleValidationError(field="name", message="Rule name is required"))

    if not rule.conditions:
        errors.append(RuleValidationError(
            field="conditions", message="At least one condition is required"
        ))
    for i, condition in enumerate(rule.conditions):
        errors.extend(validate_condition(condition, i))

    if not rule.actions:
        errors.append(RuleValidationError(
            field="actions", message="At least one action is required"
        ))
    for i, action in enumerate(rule.actions):
        missing = action.missing_parameter
        if missing:
            errors.append(RuleValidationError(
                field=f"actions[{i}].{missing}",
                message=f"'{action.type.value}' requires '{missing}'",
            ))

    return RuleValidationResult(errors=errors)


FIELD_LABELS = {
    ConditionField.FROM_EMAIL: "From",
    ConditionField.FROM_NAME: "Sender name",
    ConditionField.TO_EMAIL: "To",
    ConditionField.TO_NAME: "Recipient name",
    ConditionField.CC_EMAIL: "Cc",
    ConditionField.SUBJECT: "Subject",
    ConditionField.BODY: "Body",
    ConditionField.FOLDER: "Folder",
    ConditionField.LABEL: "Label",
    ConditionField.ATTACHMENT_NAME: "Attachment name",
    ConditionField.PRIORITY: "Importance",
    ConditionField.AI_CATEGORY: "Category",
    ConditionField.ATTACHMENT_COUNT: "Attachment count",
}

BOOLEAN_LABELS = {
    ConditionField.HAS_ATTACHMENTS: ("Has attachments", "No attachments"),
    ConditionField.IS_READ: ("Is read", "Is unread"),
    ConditionField.IS_STARRED: ("Is starred", "Is not starred"),
    ConditionField.IS_FLAGGED: ("Is flagged", "Is not flagged"),
}


def describe_condition(condition: Condition) -> str:
    """Get a human-readable description of a condition."""
    if condition.field in BOOLEAN_LABELS:
        expected = coerce_bool(condition.value)
        if expected is None:
            return f"{condition.field.value} is {condition.value!r} (invalid)"
        yes, no = BOOLEAN_LABELS[condition.field]
        return yes if expected else no

    label = FIELD_LABELS[condition.field]
    value = condition.value
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value)
    verb = condition.operator.value.replace("_", " ")

    if condition.operator in VALUELESS_OPERATORS:
        return f"{label} {verb}"
    return f'{label} {verb} "{value}"'


def describe_action(action: RuleAction) -> str:
    """Get a human-readable description of an action."""
    match action.type:
        case ActionType.MOVE_TO_FOLDER:
            return f"Move to {action.folder}"
        case ActionType.ADD_LABEL:
            return f"Add label {action.label}"
        case ActionType.REMOVE_LABEL:
            return f"Remove label {action.label}"
        case ActionType.FORWARD_TO:
            return f"Forward to {action.email}"
        case ActionType.MARK_AS_READ:
            return "Mark as read"
        case ActionType.MARK_AS_UNREAD:
            return "Mark as unread"
        case ActionType.MARK_AS_SPAM:
            return "Mark as spam"
        case _:
            return action.type.value.capitalize()


def describe_rule(rule: Rule) -> str:
    """Get a human-readable description of the entire rule."""
    logic = " AND " if rule.match_all else " OR "
    conditions = logic.join(describe_condition(c) for c in rule.conditions) or "(never)"
    actions = ", ".join(describe_action(a) for a in rule.actions) or "do nothing"
    text = f"When {conditions}, then {actions}"
    if rule.stop_processing:
        text += ", and stop"
    return text
