"""Logging and audit utilities."""
