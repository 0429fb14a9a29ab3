"""Rule engine for email processing."""

from email_rules.rules.actions import ActionResult, ActionType, RuleAction
from email_rules.rules.conditions import Condition, ConditionField, ConditionOperator
from email_rules.rules.dispatcher import RuleDispatcher
from email_rules.rules.engine import Rule, RuleEngine, dry_run_rule
from email_rules.rules.errors import (
    ActionExecutionError,
    ConfigurationError,
    RuleEngineError,
    RuleLoadError,
)
from email_rules.rules.models import ProcessingSummary, RuleResult, RuleRun

__all__ = [
    "ActionExecutionError",
    "ActionResult",
    "ActionType",
    "Condition",
    "ConditionField",
    "ConditionOperator",
    "ConfigurationError",
    "ProcessingSummary",
    "Rule",
    "RuleAction",
    "RuleDispatcher",
    "RuleEngine",
    "RuleEngineError",
    "RuleLoadError",
    "RuleResult",
    "RuleRun",
    "dry_run_rule",
]
