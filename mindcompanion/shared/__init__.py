"""Shared models, errors, utilities and database access."""
