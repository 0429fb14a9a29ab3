"""Tests for rule actions."""

from unittest.mock import patch

import pytest

from email_rules.mail.messages import EmailMessage
from email_rules.rules.actions import (
    ActionContext,
    ActionType,
    RuleAction,
    execute_action,
    execute_actions,
)

from conftest import RecordingMailStore


@pytest.fixture
def context(store: RecordingMailStore) -> ActionContext:
    return ActionContext(user_id="user-1", store=store)


class TestExecuteAction:
    """Tests for individual actions."""

    @pytest.mark.parametrize(
        "action,expected",
        [
            (RuleAction(type=ActionType.MARK_AS_READ), ("set_read", "12345", "user-1", True)),
            (RuleAction(type=ActionType.MARK_AS_UNREAD), ("set_read", "12345", "user-1", False)),
            (RuleAction(type=ActionType.STAR), ("set_starred", "12345", "user-1", True)),
            (RuleAction(type=ActionType.UNFLAG), ("set_flagged", "12345", "user-1", False)),
            (RuleAction(type=ActionType.ARCHIVE), ("archive", "12345", "user-1")),
            (RuleAction(type=ActionType.DELETE), ("delete", "12345", "user-1")),
            (RuleAction(type=ActionType.MARK_AS_SPAM), ("mark_spam", "12345", "user-1")),
            (
                RuleAction(type=ActionType.MOVE_TO_FOLDER, folder="Receipts"),
                ("move_to_folder", "12345", "user-1", "Receipts"),
            ),
            (
                RuleAction(type=ActionType.REMOVE_LABEL, label="Inbox"),
                ("remove_label", "12345", "user-1", "Inbox"),
            ),
            (
                RuleAction(type=ActionType.FORWARD_TO, email="boss@example.com"),
                ("forward", "12345", "user-1", "boss@example.com"),
            ),
        ],
    )
    def test_action_calls_store(
        self,
        action: RuleAction,
        expected: tuple,
        sample_email: EmailMessage,
        store: RecordingMailStore,
        context: ActionContext,
    ) -> None:
        """Test each action maps to one store call."""
        result = execute_action(action, sample_email, context)
        assert result.success is True
        assert store.calls == [expected]

    def test_missing_parameter_is_noop(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test add_label without a label fails without touching the store."""
        result = execute_action(RuleAction(type=ActionType.ADD_LABEL), sample_email, context)
        assert result.success is False
        assert "label" in result.error
        assert store.calls == []

    def test_blank_parameter_is_noop(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test a whitespace-only folder counts as missing."""
        action = RuleAction(type=ActionType.MOVE_TO_FOLDER, folder="  ")
        assert execute_action(action, sample_email, context).success is False
        assert store.calls == []

    def test_store_error_reported(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test a store failure becomes a failed result instead of raising."""
        store.fail_on.add("archive")
        result = execute_action(RuleAction(type=ActionType.ARCHIVE), sample_email, context)
        assert result.success is False
        assert "archive" in result.error


class TestExecuteActions:
    """Tests for action sequences."""

    def test_archive_and_mark_read(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test actions run in listed order."""
        actions = [RuleAction(type=ActionType.ARCHIVE), RuleAction(type=ActionType.MARK_AS_READ)]
        results = execute_actions(actions, sample_email, context)
        assert [r.success for r in results] == [True, True]
        assert store.methods == ["archive", "set_read"]

    def test_failure_does_not_stop_later_actions(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test a failed action is followed by the remaining ones."""
        store.fail_on.add("set_starred")
        actions = [
            RuleAction(type=ActionType.STAR),
            RuleAction(type=ActionType.ADD_LABEL, label="VIP"),
        ]
        results = execute_actions(actions, sample_email, context)
        assert [r.success for r in results] == [False, True]
        assert store.calls == [("add_label", "12345", "user-1", "VIP")]

    def test_unexpected_store_error_does_not_stop_later_actions(
        self, sample_email: EmailMessage, store: RecordingMailStore, context: ActionContext
    ) -> None:
        """Test a transport error from the store is reported like any failure."""
        actions = [RuleAction(type=ActionType.ARCHIVE), RuleAction(type=ActionType.STAR)]

        with patch.object(store, "archive", side_effect=ConnectionError("network down")):
            results = execute_actions(actions, sample_email, context)

        assert [r.success for r in results] == [False, True]
        assert "network down" in results[0].error
        assert store.methods == ["set_starred"]


class TestRuleActionParsing:
    """Tests for accepted action shapes."""

    def test_aliases(self) -> None:
        """Test short action names."""
        assert RuleAction.model_validate({"type": "mark_read"}).type is ActionType.MARK_AS_READ
        assert RuleAction.model_validate({"type": "spam"}).type is ActionType.MARK_AS_SPAM

    def test_folder_name_and_forward_to(self) -> None:
        """Test alternate parameter keys."""
        move = RuleAction.model_validate({"type": "move", "folder_name": "Archive/2024"})
        assert move.type is ActionType.MOVE_TO_FOLDER
        assert move.folder == "Archive/2024"

        forward = RuleAction.model_validate({"type": "forward", "forward_to": "a@b.com"})
        assert forward.email == "a@b.com"
        assert forward.missing_parameter is None
