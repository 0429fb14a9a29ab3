"""Tests for the command-line interface."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from email_rules.cli import app, imported_rule_id
from email_rules.storage.database import RulesDatabase, SqliteMailStore

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point settings at a temporary configuration directory."""
    directory = tmp_path / "config"
    monkeypatch.setenv("EMAIL_RULES_CONFIG_DIR", str(directory))
    monkeypatch.setenv("EMAIL_RULES_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("EMAIL_RULES_DEFAULT_USER_ID", "tester")
    return directory


@pytest.fixture
def messages_file(tmp_path: Path) -> Path:
    path = tmp_path / "messages.yaml"
    path.write_text(yaml.safe_dump({
        "messages": [
            {
                "id": "n1",
                "from_email": "noreply@company.com",
                "subject": "Weekly Newsletter",
                "is_read": False,
                "folder": "inbox",
            },
            {
                "id": "p1",
                "from_email": "friend@example.com",
                "subject": "Lunch?",
                "is_read": False,
                "folder": "inbox",
            },
        ]
    }))
    return path


class TestCli:
    """Tests for CLI commands."""

    def test_version(self) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "email-rules v" in result.output

    def test_init_then_import(self, config_dir: Path) -> None:
        """Test the example rules file imports cleanly, twice."""
        assert runner.invoke(app, ["init"]).exit_code == 0
        assert (config_dir / "rules.yaml").exists()

        for _ in range(2):
            result = runner.invoke(app, ["rules", "import"])
            assert result.exit_code == 0, result.output

        db = RulesDatabase(config_dir / "email-rules.db")
        names = [r.name for r in db.list_rules("tester")]
        assert names == ["Star Invoices", "Archive Newsletters"]

    def test_import_rejects_invalid_rules(self, config_dir: Path, tmp_path: Path) -> None:
        """Test invalid rules are reported and not stored."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({
            "rules": [
                {"name": "No actions", "conditions": [{"field": "subject", "value": "x"}]},
                {"name": "Bad field", "conditions": [{"field": "x_mailer", "value": "x"}],
                 "actions": [{"type": "archive"}]},
            ]
        }))

        result = runner.invoke(app, ["rules", "import", str(path)])

        assert result.exit_code == 1
        assert "2 rejected" in result.output
        assert RulesDatabase(config_dir / "email-rules.db").list_rules() == []

    def test_ingest_runs_rules(self, config_dir: Path, messages_file: Path) -> None:
        """Test ingesting messages applies the imported rules."""
        runner.invoke(app, ["init"])
        runner.invoke(app, ["rules", "import"])

        result = runner.invoke(app, ["messages", "ingest", str(messages_file)])
        assert result.exit_code == 0, result.output
        assert "Processed 2" in result.output

        store = SqliteMailStore(RulesDatabase(config_dir / "email-rules.db"))
        newsletter = store.get_message("n1", "tester")
        assert newsletter.folder == "archive"
        assert newsletter.is_read is True
        assert store.get_message("p1", "tester").folder == "inbox"

        # Re-ingesting known messages doesn't run rules again
        result = runner.invoke(app, ["messages", "ingest", str(messages_file)])
        assert "Processed 0" in result.output

    def test_ingest_stores_messages_outside_event_loop(
        self, config_dir: Path, messages_file: Path
    ) -> None:
        """Test message inserts happen before the dispatcher loop runs."""
        runner.invoke(app, ["init"])
        runner.invoke(app, ["rules", "import"])
        loop_running: list[bool] = []
        insert = SqliteMailStore.insert_message

        def recording_insert(self: SqliteMailStore, *args: object) -> bool:
            try:
                asyncio.get_running_loop()
                loop_running.append(True)
            except RuntimeError:
                loop_running.append(False)
            return insert(self, *args)

        with patch.object(SqliteMailStore, "insert_message", recording_insert):
            result = runner.invoke(app, ["messages", "ingest", str(messages_file)])

        assert result.exit_code == 0, result.output
        assert "Processed 2" in result.output
        assert loop_running == [False, False]

    def test_rules_test_dry_run(self, config_dir: Path, messages_file: Path) -> None:
        """Test a dry run reports a match without changing anything."""
        runner.invoke(app, ["init"])
        runner.invoke(app, ["rules", "import"])
        rule_id = imported_rule_id("tester", "Archive Newsletters")

        result = runner.invoke(app, ["rules", "test", rule_id, str(messages_file)])

        assert result.exit_code == 0, result.output
        assert "Matched" in result.output
        assert "archive" in result.output

    def test_enable_disable_unknown_rule(self, config_dir: Path) -> None:
        """Test unknown ids exit with an error."""
        result = runner.invoke(app, ["rules", "disable", "missing"])
        assert result.exit_code == 1

    def test_templates_apply(self, config_dir: Path) -> None:
        """Test creating a rule from a template with list values."""
        result = runner.invoke(app, ["templates", "apply", "vip inbox"])
        assert result.exit_code == 1

        result = runner.invoke(
            app, ["templates", "apply", "VIP Inbox", "--value", "boss@corp.com"]
        )
        assert result.exit_code == 0, result.output

        rules = RulesDatabase(config_dir / "email-rules.db").list_rules("tester")
        assert rules[0].conditions[0].value == ["boss@corp.com"]
