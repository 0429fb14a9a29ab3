"""Message records and the mail mutation interface."""

from email_rules.mail.messages import EmailMessage
from email_rules.mail.store import MailStore, MailStoreError

__all__ = [
    "EmailMessage",
    "MailStore",
    "MailStoreError",
]
