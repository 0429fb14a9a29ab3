"""Rule engine for processing emails against a user's rules."""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, Field, model_validator

from email_rules.logging import get_user_logger
from email_rules.rules.actions import ActionContext, RuleAction, execute_actions
from email_rules.rules.conditions import (
    Condition,
    evaluate_conditions,
    explain_conditions,
)
from email_rules.rules.errors import RuleLoadError
from email_rules.rules.models import (
    ConditionResult,
    ProcessingSummary,
    RuleDryRunResult,
    RuleResult,
    RuleRun,
)

if TYPE_CHECKING:
    import logging

    from email_rules.mail.messages import EmailMessage
    from email_rules.mail.store import MailStore
    from email_rules.storage.base import RuleRepository


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_rule_id() -> str:
    """Generate an id for a locally created rule."""
    return uuid.uuid4().hex


class Rule(BaseModel):
    """A user-owned automation rule."""

    id: str = Field(default_factory=new_rule_id)
    user_id: str = Field(description="Owner of the rule")
    account_id: str | None = Field(
        default=None, description="Restrict to one account (None = all accounts)"
    )
    name: str = Field(description="Human-readable rule name")
    description: str | None = Field(default=None, description="Rule description")
    is_active: bool = Field(
        default=True,
        validation_alias=AliasChoices("is_active", "is_enabled", "enabled"),
        description="Whether the rule is evaluated",
    )
    priority: int = Field(default=100, description="Lower number = evaluated first")
    match_all: bool = Field(
        default=True, description="True=AND all conditions, False=OR"
    )
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)
    stop_processing: bool = Field(
        default=False, description="Stop processing more rules if this matches"
    )

    # Statistics, only written by the engine through the repository
    execution_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    last_executed_at: datetime | None = None

    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _accept_condition_group(cls, data: Any) -> Any:
        """Accept ``conditions: {logic: AND|OR, conditions: [...]}``."""
        if not isinstance(data, dict):
            return data
        group = data.get("conditions")
        if isinstance(group, dict):
            data = dict(data)
            data["conditions"] = group.get("conditions", [])
            if "match_all" not in data:
                data["match_all"] = str(group.get("logic", "AND")).upper() == "AND"
        return data

    def applies_to(self, email: "EmailMessage") -> bool:
        """Whether the rule is active and scoped to the email's account."""
        if not self.is_active:
            return False
        return self.account_id is None or self.account_id == email.account_id

    def matches(self, email: "EmailMessage") -> bool:
        """
        Check if an email matches this rule's conditions.

        Args:
            email: The email to check.

        Returns:
            True if the rule applies and all/any conditions match.
        """
        if not self.applies_to(email):
            return False
        return evaluate_conditions(self.conditions, self.match_all, email)


class RuleEngine:
    """Evaluates a user's rules against a message and executes their actions."""

    def __init__(self, repository: "RuleRepository", store: "MailStore") -> None:
        """
        Initialize the rule engine.

        Args:
            repository: Source of rules and sink for their statistics.
            store: Mail store that actions are applied to.
        """
        self.repository = repository
        self.store = store

    def process_email(self, email: "EmailMessage", user_id: str) -> ProcessingSummary:
        """
        Process an email against all of the user's active rules.

        Rules run in priority order. A matching rule executes its actions and
        has its statistics recorded; a matching rule with ``stop_processing``
        ends the run. Errors inside one rule are logged and do not affect
        the other rules.

        Args:
            email: The newly synced message.
            user_id: Owner of the message and the rules.

        Returns:
            ProcessingSummary of matched rules and action outcomes.

        Raises:
            RuleLoadError: If the user's rules could not be loaded.
        """
        logger = get_user_logger(user_id)
        started_at = utcnow()

        try:
            rules = self.repository.load_active_rules(user_id)
        except RuleLoadError as e:
            logger.error("Rules not evaluated for email %s: %s", email.id, e)
            raise
        except Exception as e:
            logger.error("Rules not evaluated for email %s: %s", email.id, e)
            raise RuleLoadError(user_id, str(e)) from e

        # sorted() is stable, so equal priorities keep the repository order
        ordered = sorted(
            (r for r in rules if r.applies_to(email)),
            key=lambda r: r.priority,
        )
        logger.info("Processing %d rules for email %s", len(ordered), email.id)

        summary = ProcessingSummary(
            email_id=email.id,
            user_id=user_id,
            started_at=started_at,
            completed_at=started_at,
        )
        context = ActionContext(user_id=user_id, store=self.store)

        for rule in ordered:
            result = self._run_rule(rule, email, context, logger)
            summary.rules_evaluated += 1
            summary.results.append(result)

            if result.matched and rule.stop_processing:
                logger.info('Rule "%s" stopped further processing', rule.name)
                summary.stopped_early = True
                summary.stopped_by = rule.name
                break

        summary.completed_at = utcnow()
        return summary

    def _run_rule(
        self,
        rule: Rule,
        email: "EmailMessage",
        context: ActionContext,
        logger: "logging.Logger",
    ) -> RuleResult:
        """Evaluate one rule, run its actions on match, and record stats."""
        result = RuleResult(rule_id=rule.id, rule_name=rule.name)

        try:
            result.matched = evaluate_conditions(rule.conditions, rule.match_all, email)
            if not result.matched:
                return result

            logger.info('Rule "%s" matched email %s', rule.name, email.id)
            result.actions = execute_actions(rule.actions, email, context)
        except Exception as e:
            logger.exception('Error processing rule "%s" on email %s', rule.name, email.id)
            result.error = str(e)
            if not result.matched:
                return result

        for action in result.actions:
            if not action.success:
                logger.error(
                    'Rule "%s" action %s failed on email %s: %s',
                    rule.name,
                    action.type.value,
                    email.id,
                    action.error,
                )

        self._record(rule, email, result, logger)
        return result

    def _record(
        self,
        rule: Rule,
        email: "EmailMessage",
        result: RuleResult,
        logger: "logging.Logger",
    ) -> None:
        """Persist stats and the audit entry for a matched rule."""
        errors = [a.error for a in result.actions if not a.success and a.error]
        if result.error:
            errors.append(result.error)

        run = RuleRun(
            succeeded=result.succeeded,
            timestamp=utcnow(),
            actions_performed=[a.type for a in result.actions if a.success],
            error="; ".join(errors) or None,
        )

        try:
            self.repository.record_rule_run(rule.id, run)
            self.repository.log_execution(rule.id, email.id, run)
        except Exception:
            logger.exception('Failed to record run of rule "%s"', rule.name)


def dry_run_rule(rule: Rule, email: "EmailMessage") -> RuleDryRunResult:
    """
    Evaluate a rule against an email without side effects.

    Every condition is evaluated (no short-circuit) so each result can be
    shown. Activation and account scope are ignored so a disabled rule can
    be tried before enabling it.

    Args:
        rule: The rule to try.
        email: The message to try it on.

    Returns:
        RuleDryRunResult with per-condition results and pending actions.
    """
    matched = evaluate_conditions(rule.conditions, rule.match_all, email)
    return RuleDryRunResult(
        rule_id=rule.id,
        matched=matched,
        conditions=[
            ConditionResult(condition=c, matched=ok)
            for c, ok in explain_conditions(rule.conditions, email)
        ],
        actions_to_execute=[a.type for a in rule.actions] if matched else [],
    )
