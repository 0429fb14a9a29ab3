"""Tests for settings and file loaders."""

from pathlib import Path

import pytest

from email_rules.config import Settings, load_messages, load_rules, save_rules


class TestSettings:
    """Tests for Settings."""

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test EMAIL_RULES_ environment variables."""
        monkeypatch.setenv("EMAIL_RULES_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("EMAIL_RULES_DISPATCH_WORKERS", "8")

        settings = Settings()

        assert settings.config_dir == tmp_path
        assert settings.dispatch_workers == 8
        assert settings.database_path == tmp_path / "email-rules.db"
        assert settings.rules_path == tmp_path / "rules.yaml"

    def test_workers_must_be_positive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test invalid worker counts are rejected."""
        monkeypatch.setenv("EMAIL_RULES_DISPATCH_WORKERS", "0")
        with pytest.raises(ValueError):
            Settings()


class TestLoaders:
    """Tests for YAML loaders."""

    def test_rules_round_trip(self, tmp_path: Path) -> None:
        """Test saving and loading a rules file."""
        path = tmp_path / "nested" / "rules.yaml"
        rules = [{"name": "A", "conditions": [], "actions": [{"type": "archive"}]}]
        save_rules(path, rules)
        assert load_rules(path) == rules

    def test_missing_rules_file(self, tmp_path: Path) -> None:
        """Test a missing file yields no rules."""
        assert load_rules(tmp_path / "absent.yaml") == []

    def test_messages_list_or_mapping(self, tmp_path: Path) -> None:
        """Test both message file shapes."""
        bare = tmp_path / "bare.yaml"
        bare.write_text("- id: 1\n  subject: Hi\n")
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text('{"messages": [{"id": "2", "subject": "Yo"}]}')

        assert load_messages(bare) == [{"id": 1, "subject": "Hi"}]
        assert load_messages(wrapped) == [{"id": "2", "subject": "Yo"}]
