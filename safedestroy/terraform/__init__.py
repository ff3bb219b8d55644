"""Terraform CLI integration."""
