"""SQLite storage for rules, rule statistics and the local mail table."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from pydantic import ValidationError

from email_rules.mail.messages import EmailMessage
from email_rules.mail.store import MailStore, MailStoreError, MessageNotFoundError
from email_rules.rules.engine import Rule
from email_rules.rules.errors import RuleLoadError
from email_rules.rules.models import RuleAnalytics, RuleRun, TopRule
from email_rules.storage.base import RuleRepository

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "id, user_id, account_id, name, description, is_active, priority, match_all, "
    "conditions, actions, stop_processing, execution_count, success_count, "
    "failure_count, last_executed_at, created_at"
)

# Message columns holding JSON-encoded lists
LIST_COLUMNS = ("to_emails", "to_names", "cc_emails", "attachment_names", "labels")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_json_loads(data: str | None, default: Any = None) -> Any:
    """Safely parse JSON, returning default on error."""
    if not data:
        return default
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError) as e:
        # Don't crash on corrupted data
        logger.warning("Failed to parse JSON in database: %s", e)
        return default


class RulesDatabase(RuleRepository):
    """SQLite database holding rules, their statistics and execution log."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create database tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS rules (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    account_id TEXT,
                    name TEXT NOT NULL,
                    description TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    priority INTEGER NOT NULL DEFAULT 100,
                    match_all INTEGER NOT NULL DEFAULT 1,
                    conditions TEXT NOT NULL,
                    actions TEXT NOT NULL,
                    stop_processing INTEGER NOT NULL DEFAULT 0,
                    execution_count INTEGER NOT NULL DEFAULT 0,
                    success_count INTEGER NOT NULL DEFAULT 0,
                    failure_count INTEGER NOT NULL DEFAULT 0,
                    last_executed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                -- One row per matched rule per message
                CREATE TABLE IF NOT EXISTS rule_executions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    rule_id TEXT NOT NULL REFERENCES rules(id) ON DELETE CASCADE,
                    email_id TEXT NOT NULL,
                    executed_at TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    error TEXT,
                    actions_performed TEXT NOT NULL
                );

                -- Local copy of synced messages that actions mutate
                CREATE TABLE IF NOT EXISTS emails (
                    id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    account_id TEXT,
                    provider_message_id TEXT,
                    from_email TEXT,
                    from_name TEXT,
                    to_emails TEXT NOT NULL DEFAULT '[]',
                    to_names TEXT NOT NULL DEFAULT '[]',
                    cc_emails TEXT NOT NULL DEFAULT '[]',
                    subject TEXT,
                    snippet TEXT,
                    body_text TEXT,
                    body_html TEXT,
                    has_attachments INTEGER,
                    attachment_names TEXT NOT NULL DEFAULT '[]',
                    attachments_count INTEGER,
                    is_read INTEGER,
                    is_starred INTEGER,
                    is_flagged INTEGER,
                    folder TEXT,
                    labels TEXT NOT NULL DEFAULT '[]',
                    priority TEXT,
                    ai_category TEXT,
                    received_at TEXT,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    is_trashed INTEGER NOT NULL DEFAULT 0,
                    is_spam INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (id, user_id)
                );

                -- Forward requests awaiting the mail-send service
                CREATE TABLE IF NOT EXISTS outbound_forwards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    address TEXT NOT NULL,
                    requested_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    UNIQUE (message_id, user_id, address)
                );

                CREATE INDEX IF NOT EXISTS idx_rules_user_active
                    ON rules(user_id, is_active, priority);
                CREATE INDEX IF NOT EXISTS idx_executions_rule
                    ON rule_executions(rule_id);
                CREATE INDEX IF NOT EXISTS idx_executions_at
                    ON rule_executions(executed_at);
            """)

    # ─── Rules ────────────────────────────────────────────────────────────

    def save_rule(self, rule: Rule) -> None:
        """Insert or update a rule definition, leaving its statistics intact."""
        now = _now()
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO rules
                (id, user_id, account_id, name, description, is_active, priority,
                 match_all, conditions, actions, stop_processing, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    account_id = excluded.account_id,
                    name = excluded.name,
                    description = excluded.description,
                    is_active = excluded.is_active,
                    priority = excluded.priority,
                    match_all = excluded.match_all,
                    conditions = excluded.conditions,
                    actions = excluded.actions,
                    stop_processing = excluded.stop_processing,
                    updated_at = excluded.updated_at
                """,
                (
                    rule.id,
                    rule.user_id,
                    rule.account_id,
                    rule.name,
                    rule.description,
                    int(rule.is_active),
                    rule.priority,
                    int(rule.match_all),
                    json.dumps([c.model_dump(mode="json") for c in rule.conditions]),
                    json.dumps(
                        [a.model_dump(mode="json", exclude_none=True) for a in rule.actions]
                    ),
                    int(rule.stop_processing),
                    rule.created_at.isoformat(),
                    now,
                ),
            )

    def get_rule(self, rule_id: str) -> Rule | None:
        """Get a rule by id."""
        with self.connection() as conn:
            cursor = conn.execute(
                f"SELECT {RULE_COLUMNS} FROM rules WHERE id = ?",
                (rule_id,),
            )
            row = cursor.fetchone()
        return self._row_to_rule(row) if row else None

    def list_rules(self, user_id: str | None = None) -> list[Rule]:
        """List rules in evaluation order, optionally for one user."""
        query = f"SELECT {RULE_COLUMNS} FROM rules"
        params: list[Any] = []
        if user_id is not None:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY priority, created_at, id"

        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [rule for rule in map(self._row_to_rule, rows) if rule is not None]

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule and its execution log."""
        with self.connection() as conn:
            conn.execute("DELETE FROM rule_executions WHERE rule_id = ?", (rule_id,))
            cursor = conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
            return cursor.rowcount > 0

    def set_rule_active(self, rule_id: str, active: bool) -> bool:
        """Enable or disable a rule."""
        with self.connection() as conn:
            cursor = conn.execute(
                "UPDATE rules SET is_active = ?, updated_at = ? WHERE id = ?",
                (int(active), _now(), rule_id),
            )
            return cursor.rowcount > 0

    def load_active_rules(self, user_id: str) -> list[Rule]:
        """
        Load a user's active rules ordered by priority.

        Ties are ordered by creation time, then id. Rows that no longer parse
        as a rule are skipped with a warning.
        """
        try:
            with self.connection() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {RULE_COLUMNS} FROM rules
                    WHERE user_id = ? AND is_active = 1
                    ORDER BY priority, created_at, id
                    """,
                    (user_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise RuleLoadError(user_id, str(e)) from e

        return [rule for rule in map(self._row_to_rule, rows) if rule is not None]

    def _row_to_rule(self, row: sqlite3.Row) -> Rule | None:
        try:
            return Rule.model_validate({
                "id": row["id"],
                "user_id": row["user_id"],
                "account_id": row["account_id"],
                "name": row["name"],
                "description": row["description"],
                "is_active": bool(row["is_active"]),
                "priority": row["priority"],
                "match_all": bool(row["match_all"]),
                "conditions": _safe_json_loads(row["conditions"], []),
                "actions": _safe_json_loads(row["actions"], []),
                "stop_processing": bool(row["stop_processing"]),
                "execution_count": row["execution_count"],
                "success_count": row["success_count"],
                "failure_count": row["failure_count"],
                "last_executed_at": row["last_executed_at"],
                "created_at": row["created_at"],
            })
        except ValidationError as e:
            logger.warning("Skipping malformed rule %s: %s", row["id"], e)
            return None

    # ─── Statistics ───────────────────────────────────────────────────────

    def record_rule_run(self, rule_id: str, run: RuleRun) -> None:
        """Increment a rule's counters in a single statement."""
        with self.connection() as conn:
            conn.execute(
                """
                UPDATE rules
                SET execution_count = execution_count + 1,
                    success_count = success_count + ?,
                    failure_count = failure_count + ?,
                    last_executed_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    int(run.succeeded),
                    int(not run.succeeded),
                    run.timestamp.isoformat(),
                    _now(),
                    rule_id,
                ),
            )

    def log_execution(self, rule_id: str, email_id: str, run: RuleRun) -> None:
        """Log a rule run to the execution table."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO rule_executions
                (rule_id, email_id, executed_at, success, error, actions_performed)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    rule_id,
                    email_id,
                    run.timestamp.isoformat(),
                    int(run.succeeded),
                    run.error,
                    json.dumps([a.value for a in run.actions_performed]),
                ),
            )

    def get_executions(
        self,
        rule_id: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Get recent execution log entries."""
        query = "SELECT * FROM rule_executions"
        params: list[Any] = []
        if rule_id:
            query += " WHERE rule_id = ?"
            params.append(rule_id)
        query += " ORDER BY executed_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self.connection() as conn:
            cursor = conn.execute(query, params)
            return [
                {
                    "id": row["id"],
                    "rule_id": row["rule_id"],
                    "email_id": row["email_id"],
                    "executed_at": row["executed_at"],
                    "success": bool(row["success"]),
                    "error": row["error"],
                    "actions_performed": _safe_json_loads(row["actions_performed"], []),
                }
                for row in cursor.fetchall()
            ]

    def get_rule_analytics(self, user_id: str, top: int = 5) -> RuleAnalytics:
        """Aggregate rule counters for one user."""
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(is_active), 0) AS active,
                       COALESCE(SUM(execution_count), 0) AS executions,
                       COALESCE(SUM(success_count), 0) AS successes,
                       COALESCE(SUM(failure_count), 0) AS failures
                FROM rules WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()

            top_rows = conn.execute(
                """
                SELECT id, name, execution_count FROM rules
                WHERE user_id = ? AND execution_count > 0
                ORDER BY execution_count DESC, name
                LIMIT ?
                """,
                (user_id, top),
            ).fetchall()

        return RuleAnalytics(
            total_rules=row["total"],
            active_rules=row["active"],
            total_executions=row["executions"],
            successful_executions=row["successes"],
            failed_executions=row["failures"],
            top_rules=[
                TopRule(rule_id=r["id"], name=r["name"], execution_count=r["execution_count"])
                for r in top_rows
            ],
        )


class SqliteMailStore(MailStore):
    """Applies rule actions to the ``emails`` table of a RulesDatabase."""

    def __init__(self, database: RulesDatabase) -> None:
        self.db = database

    # ─── Messages ─────────────────────────────────────────────────────────

    def insert_message(self, email: EmailMessage, user_id: str) -> bool:
        """Store a synced message. Returns False if it already existed."""
        data = email.to_dict()
        for column in LIST_COLUMNS:
            data[column] = json.dumps(data[column])
        now = _now()
        data.update(user_id=user_id, created_at=now, updated_at=now)

        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        with self.db.connection() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO emails ({columns}) VALUES ({placeholders})",
                list(data.values()),
            )
            return cursor.rowcount > 0

    def get_message(self, message_id: str, user_id: str) -> EmailMessage | None:
        """Get the current state of a stored message."""
        row = self._get_row(message_id, user_id)
        if row is None:
            return None

        data = dict(row)
        for column in LIST_COLUMNS:
            data[column] = _safe_json_loads(data[column], [])
        for column in ("has_attachments", "is_read", "is_starred", "is_flagged"):
            if data[column] is not None:
                data[column] = bool(data[column])
        return EmailMessage.from_dict(data)

    def get_message_state(self, message_id: str, user_id: str) -> dict[str, Any] | None:
        """Get the raw row, including archive/trash/spam flags."""
        row = self._get_row(message_id, user_id)
        return dict(row) if row else None

    def get_forwards(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """Get queued forward requests."""
        query = "SELECT * FROM outbound_forwards"
        params: list[Any] = []
        if user_id:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY id"

        with self.db.connection() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    def _get_row(self, message_id: str, user_id: str) -> sqlite3.Row | None:
        with self.db.connection() as conn:
            return conn.execute(
                "SELECT * FROM emails WHERE id = ? AND user_id = ?",
                (message_id, user_id),
            ).fetchone()

    # ─── Mutations ────────────────────────────────────────────────────────

    def set_read(self, message_id: str, user_id: str, read: bool) -> None:
        self._update(message_id, user_id, "is_read = ?", (int(read),))

    def set_starred(self, message_id: str, user_id: str, starred: bool) -> None:
        self._update(message_id, user_id, "is_starred = ?", (int(starred),))

    def set_flagged(self, message_id: str, user_id: str, flagged: bool) -> None:
        self._update(message_id, user_id, "is_flagged = ?", (int(flagged),))

    def move_to_folder(self, message_id: str, user_id: str, folder: str) -> None:
        self._update(message_id, user_id, "folder = ?", (folder,))

    def archive(self, message_id: str, user_id: str) -> None:
        self._update(message_id, user_id, "is_archived = 1, folder = 'archive'", ())

    def delete(self, message_id: str, user_id: str) -> None:
        self._update(message_id, user_id, "is_trashed = 1, folder = 'trash'", ())

    def mark_spam(self, message_id: str, user_id: str) -> None:
        self._update(message_id, user_id, "is_spam = 1, folder = 'spam'", ())

    def add_label(self, message_id: str, user_id: str, label: str) -> None:
        try:
            with self.db.connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE emails
                    SET labels = json_insert(labels, '$[#]', ?), updated_at = ?
                    WHERE id = ? AND user_id = ?
                      AND NOT EXISTS (
                          SELECT 1 FROM json_each(emails.labels) WHERE json_each.value = ?
                      )
                    """,
                    (label, _now(), message_id, user_id, label),
                )
                if cursor.rowcount == 0:
                    # Either already labelled or missing
                    self._require(conn, message_id, user_id)
        except sqlite3.Error as e:
            raise MailStoreError(str(e), message_id=message_id) from e

    def remove_label(self, message_id: str, user_id: str, label: str) -> None:
        self._update(
            message_id,
            user_id,
            """labels = (
                SELECT json_group_array(json_each.value)
                FROM json_each(emails.labels)
                WHERE json_each.value != ?
            )""",
            (label,),
        )

    def forward(self, message_id: str, user_id: str, address: str) -> None:
        try:
            with self.db.connection() as conn:
                self._require(conn, message_id, user_id)
                conn.execute(
                    """
                    INSERT OR IGNORE INTO outbound_forwards
                    (message_id, user_id, address, requested_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (message_id, user_id, address, _now()),
                )
        except sqlite3.Error as e:
            raise MailStoreError(str(e), message_id=message_id) from e

    def _update(
        self,
        message_id: str,
        user_id: str,
        assignments: str,
        params: tuple[Any, ...],
    ) -> None:
        """Run one UPDATE against a message, raising if it doesn't exist."""
        try:
            with self.db.connection() as conn:
                cursor = conn.execute(
                    f"""
                    UPDATE emails SET {assignments}, updated_at = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (*params, _now(), message_id, user_id),
                )
                if cursor.rowcount == 0:
                    raise MessageNotFoundError(message_id)
        except sqlite3.Error as e:
            raise MailStoreError(str(e), message_id=message_id) from e

    @staticmethod
    def _require(conn: sqlite3.Connection, message_id: str, user_id: str) -> None:
        cursor = conn.execute(
            "SELECT 1 FROM emails WHERE id = ? AND user_id = ?",
            (message_id, user_id),
        )
        if cursor.fetchone() is None:
            raise MessageNotFoundError(message_id)
