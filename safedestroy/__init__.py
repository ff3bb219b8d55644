"""safedestroy - dependency-aware teardown of Terraform-managed AWS deployments."""

__version__ = "0.3.0"
