"""Rule actions and their execution against a mail store."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator

from email_rules.mail.store import MailStoreError
from email_rules.rules.errors import ActionExecutionError

if TYPE_CHECKING:
    from email_rules.mail.messages import EmailMessage
    from email_rules.mail.store import MailStore

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """Side effects a matching rule can perform."""

    MARK_AS_READ = "mark_as_read"
    MARK_AS_UNREAD = "mark_as_unread"
    STAR = "star"
    UNSTAR = "unstar"
    FLAG = "flag"
    UNFLAG = "unflag"
    ARCHIVE = "archive"
    DELETE = "delete"
    MARK_AS_SPAM = "mark_as_spam"
    MOVE_TO_FOLDER = "move_to_folder"
    ADD_LABEL = "add_label"
    REMOVE_LABEL = "remove_label"
    FORWARD_TO = "forward_to"


# Action names used by the simplified rule shape
ACTION_ALIASES = {
    "mark_read": "mark_as_read",
    "mark_unread": "mark_as_unread",
    "move": "move_to_folder",
    "spam": "mark_as_spam",
    "forward": "forward_to",
}

# Parameter each action needs, if any
REQUIRED_PARAMETERS: dict[ActionType, str] = {
    ActionType.MOVE_TO_FOLDER: "folder",
    ActionType.ADD_LABEL: "label",
    ActionType.REMOVE_LABEL: "label",
    ActionType.FORWARD_TO: "email",
}


class RuleAction(BaseModel):
    """One operation to perform when a rule matches."""

    type: ActionType
    folder: str | None = Field(default=None, description="Target folder for move_to_folder")
    label: str | None = Field(default=None, description="Label for add_label/remove_label")
    email: str | None = Field(default=None, description="Forward address for forward_to")

    @model_validator(mode="before")
    @classmethod
    def _accept_simple_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        action_type = data.get("type")
        if isinstance(action_type, str):
            data["type"] = ACTION_ALIASES.get(action_type, action_type)
        if "folder_name" in data and not data.get("folder"):
            data["folder"] = data.pop("folder_name")
        if "forward_to" in data and not data.get("email"):
            data["email"] = data.pop("forward_to")
        return data

    @property
    def missing_parameter(self) -> str | None:
        """Name of the required parameter that is not set, if any."""
        name = REQUIRED_PARAMETERS.get(self.type)
        if name and not (getattr(self, name) or "").strip():
            return name
        return None


class ActionResult(BaseModel):
    """Outcome of one action."""

    type: ActionType
    success: bool = Field(default=True, description="Whether the action was applied")
    error: str | None = Field(default=None, description="Failure reason")


@dataclass
class ActionContext:
    """What an action needs besides the message: its owner and the store."""

    user_id: str
    store: "MailStore"


def execute_action(
    action: RuleAction,
    email: "EmailMessage",
    context: ActionContext,
) -> ActionResult:
    """
    Apply one action to one message.

    A missing required parameter makes the action a no-op reported as a
    failure. Store failures are reported the same way; neither raises.

    Args:
        action: The action to apply.
        email: The message it applies to.
        context: Owning user and mail store.

    Returns:
        ActionResult describing success or failure.
    """
    missing = action.missing_parameter
    if missing:
        return ActionResult(
            type=action.type,
            success=False,
            error=f"Missing required parameter '{missing}'",
        )

    try:
        _apply(action, email.id, context)
    except MailStoreError as e:
        error = ActionExecutionError(action.type.value, str(e))
        logger.warning("Action failed on message %s: %s", email.id, error)
        return ActionResult(type=action.type, success=False, error=str(error))
    except Exception as e:
        # Store implementations may surface transport errors unwrapped
        error = ActionExecutionError(action.type.value, str(e))
        logger.exception("Action crashed on message %s: %s", email.id, error)
        return ActionResult(type=action.type, success=False, error=str(error))

    return ActionResult(type=action.type)


def execute_actions(
    actions: list[RuleAction],
    email: "EmailMessage",
    context: ActionContext,
) -> list[ActionResult]:
    """Run actions in order; a failed action does not stop the rest."""
    return [execute_action(action, email, context) for action in actions]


def _apply(action: RuleAction, message_id: str, context: ActionContext) -> None:
    store = context.store
    user_id = context.user_id

    match action.type:
        case ActionType.MARK_AS_READ:
            store.set_read(message_id, user_id, True)

        case ActionType.MARK_AS_UNREAD:
            store.set_read(message_id, user_id, False)

        case ActionType.STAR:
            store.set_starred(message_id, user_id, True)

        case ActionType.UNSTAR:
            store.set_starred(message_id, user_id, False)

        case ActionType.FLAG:
            store.set_flagged(message_id, user_id, True)

        case ActionType.UNFLAG:
            store.set_flagged(message_id, user_id, False)

        case ActionType.ARCHIVE:
            store.archive(message_id, user_id)

        case ActionType.DELETE:
            store.delete(message_id, user_id)

        case ActionType.MARK_AS_SPAM:
            store.mark_spam(message_id, user_id)

        case ActionType.MOVE_TO_FOLDER:
            store.move_to_folder(message_id, user_id, action.folder)

        case ActionType.ADD_LABEL:
            store.add_label(message_id, user_id, action.label)

        case ActionType.REMOVE_LABEL:
            store.remove_label(message_id, user_id, action.label)

        case ActionType.FORWARD_TO:
            store.forward(message_id, user_id, action.email)
