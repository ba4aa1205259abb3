"""agentstream CLI commands."""
