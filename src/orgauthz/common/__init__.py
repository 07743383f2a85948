"""Shared helpers (logging, identifiers)."""
