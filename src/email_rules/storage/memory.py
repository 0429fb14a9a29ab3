"""In-process rule repository."""

import threading
from typing import TYPE_CHECKING

from email_rules.storage.base import RuleRepository

if TYPE_CHECKING:
    from email_rules.rules.engine import Rule
    from email_rules.rules.models import RuleRun


class InMemoryRuleRepository(RuleRepository):
    """Keeps rules in a list; useful for embedding the engine and for tests."""

    def __init__(self, rules: list["Rule"] | None = None) -> None:
        self._lock = threading.Lock()
        self.rules = sorted(rules or [], key=lambda r: r.priority)
        self.executions: list[tuple[str, str, "RuleRun"]] = []

    def add_rule(self, rule: "Rule") -> None:
        """Add a rule and re-sort by priority."""
        with self._lock:
            self.rules.append(rule)
            self.rules.sort(key=lambda r: r.priority)

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule by id."""
        with self._lock:
            original_count = len(self.rules)
            self.rules = [r for r in self.rules if r.id != rule_id]
            return len(self.rules) < original_count

    def get_rule(self, rule_id: str) -> "Rule | None":
        """Get a rule by id."""
        return next((r for r in self.rules if r.id == rule_id), None)

    def load_active_rules(self, user_id: str) -> list["Rule"]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self.rules
                if r.user_id == user_id and r.is_active
            ]

    def record_rule_run(self, rule_id: str, run: "RuleRun") -> None:
        with self._lock:
            rule = self.get_rule(rule_id)
            if rule is None:
                return
            rule.execution_count += 1
            if run.succeeded:
                rule.success_count += 1
            else:
                rule.failure_count += 1
            rule.last_executed_at = run.timestamp

    def log_execution(self, rule_id: str, email_id: str, run: "RuleRun") -> None:
        with self._lock:
            self.executions.append((rule_id, email_id, run))
