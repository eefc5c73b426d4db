"""Ledger builder for Brazilian bank statement exports and app notifications."""

__version__ = "0.1.0"
