"""agentstream: turn raw agent CLI output streams into conversation messages."""

__version__ = "0.1.0"
