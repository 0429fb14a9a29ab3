"""Mail mutation interface used by rule actions."""

from abc import ABC, abstractmethod


class MailStoreError(Exception):
    """Raised when a mail mutation could not be applied."""

    def __init__(self, message: str, message_id: str | None = None) -> None:
        super().__init__(message)
        self.message_id = message_id


class MessageNotFoundError(MailStoreError):
    """Raised when the target message does not exist for the user."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found", message_id=message_id)


class MailStore(ABC):
    """Mutations that rule actions may apply to a message.

    Every call is scoped to one message and its owning user. Implementations
    treat "already in the target state" as success and raise
    ``MailStoreError`` on failure.
    """

    @abstractmethod
    def set_read(self, message_id: str, user_id: str, read: bool) -> None:
        """Mark the message read or unread."""
        ...

    @abstractmethod
    def set_starred(self, message_id: str, user_id: str, starred: bool) -> None:
        """Star or unstar the message."""
        ...

    @abstractmethod
    def set_flagged(self, message_id: str, user_id: str, flagged: bool) -> None:
        """Flag or unflag the message."""
        ...

    @abstractmethod
    def move_to_folder(self, message_id: str, user_id: str, folder: str) -> None:
        """Move the message into ``folder``."""
        ...

    @abstractmethod
    def add_label(self, message_id: str, user_id: str, label: str) -> None:
        """Attach ``label`` to the message."""
        ...

    @abstractmethod
    def remove_label(self, message_id: str, user_id: str, label: str) -> None:
        """Detach ``label`` from the message."""
        ...

    @abstractmethod
    def archive(self, message_id: str, user_id: str) -> None:
        """Archive the message."""
        ...

    @abstractmethod
    def delete(self, message_id: str, user_id: str) -> None:
        """Move the message to trash."""
        ...

    @abstractmethod
    def mark_spam(self, message_id: str, user_id: str) -> None:
        """Move the message to spam."""
        ...

    @abstractmethod
    def forward(self, message_id: str, user_id: str, address: str) -> None:
        """Forward the message to ``address``."""
        ...
