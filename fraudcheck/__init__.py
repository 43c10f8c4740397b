"""Shared bank-account fraud reporting database."""

__version__ = "1.0.0"
