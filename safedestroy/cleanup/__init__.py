"""Remedial cleanup: executor and direct provider deletion."""
