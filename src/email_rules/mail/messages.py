"""Email message records as delivered by the mail-sync pipeline."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class EmailMessage:
    """A synced email message.

    Rules read this record but never modify it; actions are routed to a
    ``MailStore`` which owns the persisted copy.
    """

    id: str
    account_id: str | None = None
    provider_message_id: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    to_emails: list[str] = field(default_factory=list)
    to_names: list[str] = field(default_factory=list)
    cc_emails: list[str] = field(default_factory=list)
    subject: str | None = None
    snippet: str | None = None
    body_text: str | None = None
    body_html: str | None = None
    has_attachments: bool | None = None
    attachment_names: list[str] = field(default_factory=list)
    attachments_count: int | None = None
    is_read: bool | None = None
    is_starred: bool | None = None
    is_flagged: bool | None = None
    folder: str | None = None
    labels: list[str] = field(default_factory=list)
    priority: str | None = None
    ai_category: str | None = None
    received_at: datetime | None = None

    @property
    def body(self) -> str | None:
        """Best available plain body: text part, then snippet, then HTML."""
        return self.body_text or self.snippet or self.body_html

    @property
    def preview(self) -> str:
        """Get a short preview of the message content."""
        content = (self.body or "")[:200].replace("\n", " ").strip()
        return f"{content}..." if len(self.body or "") > 200 else content

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmailMessage":
        """Build a message from a loosely-typed mapping (YAML/JSON/DB row).

        Unknown keys are ignored. ``received_at`` may be an ISO string.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        for key in ("to_emails", "to_names", "cc_emails", "attachment_names", "labels"):
            value = values.get(key)
            if value is None:
                values.pop(key, None)
            elif isinstance(value, str):
                values[key] = [value]
            else:
                values[key] = list(value)

        received = values.get("received_at")
        if isinstance(received, str):
            values["received_at"] = datetime.fromisoformat(received)

        values["id"] = str(values["id"])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain mapping."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if self.received_at is not None:
            data["received_at"] = self.received_at.isoformat()
        return data
