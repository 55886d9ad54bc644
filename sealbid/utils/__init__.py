"""Shared helpers: logging, input validation, suspension-point timeouts."""
