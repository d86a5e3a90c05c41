"""Logging and metrics setup for ledgerctl."""
