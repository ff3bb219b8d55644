"""Blocking rules, one module per concern; discovered automatically."""
