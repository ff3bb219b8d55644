"""Verification and inventory reporting."""
