"""Adapters for external systems: the remote SQL-over-HTTP executor."""
