"""Condition/action rule engine for incoming email."""

__version__ = "0.1.0"
