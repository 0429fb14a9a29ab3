"""Pytest fixtures for email-rules tests."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from email_rules.logging import reset_logging, setup_logging
from email_rules.mail.messages import EmailMessage
from email_rules.mail.store import MailStore, MailStoreError
from email_rules.storage.database import RulesDatabase, SqliteMailStore
from email_rules.storage.memory import InMemoryRuleRepository


class RecordingMailStore(MailStore):
    """Mail store that records every call and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def _record(self, method: str, *args) -> None:
        if method in self.fail_on:
            raise MailStoreError(f"{method} failed", message_id=args[0])
        self.calls.append((method, *args))

    def set_read(self, message_id: str, user_id: str, read: bool) -> None:
        self._record("set_read", message_id, user_id, read)

    def set_starred(self, message_id: str, user_id: str, starred: bool) -> None:
        self._record("set_starred", message_id, user_id, starred)

    def set_flagged(self, message_id: str, user_id: str, flagged: bool) -> None:
        self._record("set_flagged", message_id, user_id, flagged)

    def move_to_folder(self, message_id: str, user_id: str, folder: str) -> None:
        self._record("move_to_folder", message_id, user_id, folder)

    def add_label(self, message_id: str, user_id: str, label: str) -> None:
        self._record("add_label", message_id, user_id, label)

    def remove_label(self, message_id: str, user_id: str, label: str) -> None:
        self._record("remove_label", message_id, user_id, label)

    def archive(self, message_id: str, user_id: str) -> None:
        self._record("archive", message_id, user_id)

    def delete(self, message_id: str, user_id: str) -> None:
        self._record("delete", message_id, user_id)

    def mark_spam(self, message_id: str, user_id: str) -> None:
        self._record("mark_spam", message_id, user_id)

    def forward(self, message_id: str, user_id: str, address: str) -> None:
        self._record("forward", message_id, user_id, address)

    @property
    def methods(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path: Path):
    """Write log files under the test's temporary directory."""
    setup_logging(log_dir=tmp_path / "logs")
    yield
    reset_logging()


@pytest.fixture
def sample_email() -> EmailMessage:
    """Create a sample email for testing."""
    return EmailMessage(
        id="12345",
        account_id="acct-1",
        from_email="sender@example.com",
        from_name="Sam Sender",
        to_emails=["recipient@example.com"],
        to_names=["Rita Recipient"],
        subject="Test Subject",
        body_text="This is a test email body.",
        is_read=False,
        is_starred=False,
        is_flagged=False,
        has_attachments=False,
        folder="inbox",
        labels=["Inbox"],
        received_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def newsletter_email() -> EmailMessage:
    """Create a newsletter-like email for testing."""
    return EmailMessage(
        id="12346",
        account_id="acct-1",
        from_email="noreply@company.com",
        from_name="Company News",
        to_emails=["user@example.com"],
        subject="Weekly Newsletter - December Edition",
        body_text="Check out our latest updates! Click here to unsubscribe.",
        is_read=False,
        folder="inbox",
        labels=["Inbox", "Promotions"],
    )


@pytest.fixture
def invoice_email() -> EmailMessage:
    """Create an invoice email with attachments."""
    return EmailMessage(
        id="12347",
        account_id="acct-2",
        from_email="billing@vendor.com",
        subject="Your Invoice #4411",
        snippet="Please find your invoice attached.",
        has_attachments=True,
        attachment_names=["invoice-4411.pdf", "terms.pdf"],
        is_read=False,
        folder="inbox",
    )


@pytest.fixture
def store() -> RecordingMailStore:
    """Mail store that records calls."""
    return RecordingMailStore()


@pytest.fixture
def repository() -> InMemoryRuleRepository:
    """Empty in-memory rule repository."""
    return InMemoryRuleRepository()


@pytest.fixture
def database(tmp_path: Path) -> RulesDatabase:
    """Fresh SQLite rules database."""
    return RulesDatabase(tmp_path / "rules.db")


@pytest.fixture
def mail_store(database: RulesDatabase) -> SqliteMailStore:
    """SQLite mail store sharing the test database."""
    return SqliteMailStore(database)
