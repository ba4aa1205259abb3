"""Configuration model and loader for agentstream.yaml."""

from agentstream.config.models import AgentStreamConfig
from agentstream.config.parser import ConfigError, load_config

__all__ = [
    "AgentStreamConfig",
    "ConfigError",
    "load_config",
]
