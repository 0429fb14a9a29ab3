"""Error classes for rule evaluation and execution."""


class RuleEngineError(Exception):
    """Base class for rule engine errors."""


class ConfigurationError(RuleEngineError):
    """Raised when a rule definition is invalid.

    The engine never raises this while evaluating; a malformed rule simply
    never matches (or its action is a no-op). It is raised when saving or
    importing a rule that fails validation.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ActionExecutionError(RuleEngineError):
    """Raised when a mail mutation for an action fails."""

    def __init__(self, action_type: str, message: str) -> None:
        super().__init__(f"{action_type}: {message}")
        self.action_type = action_type


class RuleLoadError(RuleEngineError):
    """Raised when a user's rules could not be loaded."""

    def __init__(self, user_id: str, message: str) -> None:
        super().__init__(f"Failed to load rules for {user_id}: {message}")
        self.user_id = user_id
