"""Shared utilities: configuration, logging and errors."""
