"""Persistence for rules, execution statistics and the local mail table."""

from email_rules.storage.base import RuleRepository
from email_rules.storage.database import RulesDatabase, SqliteMailStore

__all__ = [
    "RuleRepository",
    "RulesDatabase",
    "SqliteMailStore",
]
