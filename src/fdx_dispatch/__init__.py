"""Retry-and-dispatch engine for financial-account data operations."""

__version__ = "0.1.0"
