"""Manual resolution console."""
