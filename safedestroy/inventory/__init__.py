"""Resource inventory scanning."""
