"""kubectl integration for orchestrator-managed services."""
