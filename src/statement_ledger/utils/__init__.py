"""Shared helpers for amounts, dates, logging and CSV sanitization."""
