"""Destroy coordination and state manifest locking."""
