"""Data-layer interface the rule engine depends on."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from email_rules.rules.engine import Rule
    from email_rules.rules.models import RuleRun


class RuleRepository(ABC):
    """Abstract source of rules and sink for their statistics."""

    @abstractmethod
    def load_active_rules(self, user_id: str) -> list["Rule"]:
        """
        Load a user's active rules in evaluation order.

        Returns:
            Rules with ``is_active`` set, sorted by ascending priority.

        Raises:
            RuleLoadError: If the rules could not be read.
        """
        ...

    @abstractmethod
    def record_rule_run(self, rule_id: str, run: "RuleRun") -> None:
        """
        Persist the statistics of one matched rule run.

        Implementations must apply this as an increment, never by writing
        back a previously read count.
        """
        ...

    def log_execution(self, rule_id: str, email_id: str, run: "RuleRun") -> None:
        """Append an audit entry for a rule run (no-op by default)."""
        return None
