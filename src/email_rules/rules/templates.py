"""Pre-built rule templates users can turn into rules."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from email_rules.rules.actions import ActionType, RuleAction
from email_rules.rules.conditions import Condition, ConditionField, ConditionOperator
from email_rules.rules.engine import Rule


class TemplateCategory(str, Enum):
    """Grouping shown when browsing templates."""

    PRODUCTIVITY = "productivity"
    ORGANIZATION = "organization"
    VIP = "vip"
    CLEANUP = "cleanup"
    AUTOMATION = "automation"


class RuleTemplate(BaseModel):
    """A rule definition without owner, id or statistics."""

    name: str = Field(description="Template identifier and default rule name")
    description: str
    category: TemplateCategory
    is_popular: bool = False
    match_all: bool = True
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)
    stop_processing: bool = False


BUILTIN_TEMPLATES: list[RuleTemplate] = [
    RuleTemplate(
        name="VIP Inbox",
        description="Star emails from your most important contacts",
        category=TemplateCategory.VIP,
        is_popular=True,
        match_all=False,
        conditions=[
            # Filled in with the user's VIP addresses
            Condition(field=ConditionField.FROM_EMAIL, operator=ConditionOperator.IN_LIST, value=[]),
        ],
        actions=[RuleAction(type=ActionType.STAR)],
    ),
    RuleTemplate(
        name="Newsletter Archive",
        description="Archive newsletters and marketing emails",
        category=TemplateCategory.ORGANIZATION,
        is_popular=True,
        match_all=False,
        conditions=[
            Condition(field=ConditionField.SUBJECT, operator=ConditionOperator.CONTAINS, value="newsletter"),
            Condition(field=ConditionField.BODY, operator=ConditionOperator.CONTAINS, value="unsubscribe"),
            Condition(field=ConditionField.FROM_EMAIL, operator=ConditionOperator.CONTAINS, value="noreply"),
        ],
        actions=[
            RuleAction(type=ActionType.ARCHIVE),
            RuleAction(type=ActionType.MARK_AS_READ),
            RuleAction(type=ActionType.ADD_LABEL, label="Newsletters"),
        ],
    ),
    RuleTemplate(
        name="Receipt Organizer",
        description="Label and file receipts and invoices",
        category=TemplateCategory.ORGANIZATION,
        is_popular=True,
        match_all=False,
        conditions=[
            Condition(field=ConditionField.SUBJECT, operator=ConditionOperator.CONTAINS, value="receipt"),
            Condition(field=ConditionField.SUBJECT, operator=ConditionOperator.CONTAINS, value="invoice"),
        ],
        actions=[
            RuleAction(type=ActionType.ADD_LABEL, label="Receipts"),
            RuleAction(type=ActionType.MOVE_TO_FOLDER, folder="Receipts"),
        ],
    ),
    RuleTemplate(
        name="Starred Follow-up",
        description="Flag starred emails so they show up in your follow-up list",
        category=TemplateCategory.PRODUCTIVITY,
        conditions=[
            Condition(field=ConditionField.IS_STARRED, operator=ConditionOperator.EQUALS, value=True),
        ],
        actions=[
            RuleAction(type=ActionType.FLAG),
            RuleAction(type=ActionType.ADD_LABEL, label="Follow-up"),
        ],
    ),
    RuleTemplate(
        name="Promotions Cleanup",
        description="Delete emails labelled as promotions",
        category=TemplateCategory.CLEANUP,
        conditions=[
            Condition(field=ConditionField.LABEL, operator=ConditionOperator.CONTAINS, value="Promotions"),
        ],
        actions=[RuleAction(type=ActionType.DELETE)],
    ),
    RuleTemplate(
        name="Large Attachment Label",
        description="Label emails that carry many attachments",
        category=TemplateCategory.CLEANUP,
        conditions=[
            Condition(field=ConditionField.HAS_ATTACHMENTS, operator=ConditionOperator.EQUALS, value=True),
            Condition(field=ConditionField.ATTACHMENT_COUNT, operator=ConditionOperator.GREATER_THAN, value=3),
        ],
        actions=[RuleAction(type=ActionType.ADD_LABEL, label="Large Files")],
    ),
    RuleTemplate(
        name="Spam Filter",
        description="Send obvious spam straight to the spam folder",
        category=TemplateCategory.AUTOMATION,
        match_all=False,
        conditions=[
            Condition(field=ConditionField.AI_CATEGORY, operator=ConditionOperator.EQUALS, value="spam"),
            Condition(
                field=ConditionField.SUBJECT,
                operator=ConditionOperator.MATCHES_REGEX,
                value=r"\b(lottery|winner|bitcoin)\b",
            ),
        ],
        actions=[RuleAction(type=ActionType.MARK_AS_SPAM)],
        stop_processing=True,
    ),
]


def list_templates(
    category: TemplateCategory | None = None,
    popular_only: bool = False,
) -> list[RuleTemplate]:
    """List built-in templates, optionally filtered."""
    return [
        t
        for t in BUILTIN_TEMPLATES
        if (category is None or t.category == category)
        and (not popular_only or t.is_popular)
    ]


def get_template(name: str) -> RuleTemplate | None:
    """Find a built-in template by name (case-insensitive)."""
    wanted = name.strip().lower()
    return next((t for t in BUILTIN_TEMPLATES if t.name.lower() == wanted), None)


def instantiate(template: RuleTemplate, user_id: str, **overrides: Any) -> Rule:
    """
    Create a concrete rule from a template.

    Args:
        template: The template to copy.
        user_id: Owner of the new rule.
        **overrides: Rule fields to set instead of the template's
            (e.g. ``name``, ``priority``, ``account_id``, ``conditions``).

    Returns:
        A new Rule with a fresh id and zeroed statistics.
    """
    data = template.model_dump(exclude={"category", "is_popular"})
    data.update(overrides)
    data["user_id"] = user_id
    return Rule.model_validate(data)
