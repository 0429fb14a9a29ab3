"""Application configuration management."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_RULES_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "email-rules" / ".env",  # User config (higher priority)
        ],
        env_file_encoding="utf-8",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "email-rules",
        description="Configuration directory",
    )
    rules_file: str = Field(default="rules.yaml", description="Rules config filename")
    database_file: str = Field(
        default="email-rules.db", description="SQLite database filename"
    )
    default_user_id: str = Field(
        default="local", description="User id used when the CLI is not given one"
    )

    # Dispatch settings
    dispatch_workers: int = Field(
        default=4, ge=1, description="Concurrent rule-processing workers"
    )
    dispatch_queue_size: int = Field(
        default=1000, ge=0, description="Max queued messages (0 = unbounded)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=Path.home() / ".local" / "state" / "email-rules",
        description="Directory for log files (per-user logs written here)",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    @property
    def rules_path(self) -> Path:
        """Full path to rules file."""
        return self.config_dir / self.rules_file

    @property
    def database_path(self) -> Path:
        """Path to the SQLite database holding rules, stats and messages."""
        return self.config_dir / self.database_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_rules(path: Path) -> list[dict]:
    """Load rules from a YAML file."""
    if not path.exists():
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return data.get("rules", [])


def save_rules(path: Path, rules: list[dict]) -> None:
    """Save rules to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump({"rules": rules}, f, default_flow_style=False, sort_keys=False)


def load_messages(path: Path) -> list[dict[str, Any]]:
    """Load message records from a YAML (or JSON) file.

    The file may hold a bare list or a mapping with a ``messages`` key.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("messages", [])
    return list(data)
