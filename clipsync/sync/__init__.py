"""Synchronization engine: merge, single-flight lock, retry ledger and coordinator."""
