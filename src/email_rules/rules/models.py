"""Result models for rule runs."""

from datetime import datetime

from pydantic import BaseModel, Field

from email_rules.rules.actions import ActionResult, ActionType
from email_rules.rules.conditions import Condition


class RuleRun(BaseModel):
    """Statistics update for one matched rule on one message."""

    matched: bool = Field(default=True, description="Whether the rule matched")
    succeeded: bool = Field(description="Whether every action succeeded")
    timestamp: datetime = Field(description="When the rule ran")
    actions_performed: list[ActionType] = Field(
        default_factory=list, description="Actions that succeeded"
    )
    error: str | None = Field(default=None, description="Failure summary")


class RuleResult(BaseModel):
    """What happened to one rule during a run."""

    rule_id: str
    rule_name: str
    matched: bool = Field(default=False, description="Whether the conditions held")
    actions: list[ActionResult] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Unexpected error, if any")

    @property
    def succeeded(self) -> bool:
        """True if the rule matched and every action succeeded."""
        return self.matched and self.error is None and all(a.success for a in self.actions)


class ProcessingSummary(BaseModel):
    """Summary of one process_email invocation."""

    email_id: str
    user_id: str
    started_at: datetime
    completed_at: datetime
    rules_evaluated: int = Field(default=0, description="Rules whose conditions were checked")
    results: list[RuleResult] = Field(default_factory=list)
    stopped_early: bool = Field(default=False, description="A stop_processing rule matched")
    stopped_by: str | None = Field(default=None, description="Name of the stopping rule")

    @property
    def matched_rules(self) -> list[RuleResult]:
        """Results for the rules that matched."""
        return [r for r in self.results if r.matched]

    @property
    def failed_actions(self) -> list[ActionResult]:
        """Every failed action across matched rules."""
        return [a for r in self.results for a in r.actions if not a.success]

    @property
    def duration_seconds(self) -> float:
        """Get run duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()


class ConditionResult(BaseModel):
    """Outcome of a single condition in a dry run."""

    condition: Condition
    matched: bool


class RuleDryRunResult(BaseModel):
    """Dry-run evaluation of one rule against one message."""

    rule_id: str
    matched: bool
    conditions: list[ConditionResult] = Field(default_factory=list)
    actions_to_execute: list[ActionType] = Field(default_factory=list)


class TopRule(BaseModel):
    """A frequently triggered rule."""

    rule_id: str
    name: str
    execution_count: int


class RuleAnalytics(BaseModel):
    """Aggregate rule statistics for one user."""

    total_rules: int = 0
    active_rules: int = 0
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    top_rules: list[TopRule] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Fraction of rule runs in which every action succeeded."""
        if not self.total_executions:
            return 0.0
        return self.successful_executions / self.total_executions
