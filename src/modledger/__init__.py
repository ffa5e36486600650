"""Modledger: case history and moderation action reconciliation for Discord."""

__version__ = "0.1.0"
