"""Helpers shared by the agentstream commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from agentstream.config.models import AgentStreamConfig
from agentstream.config.parser import ConfigError, load_config
from agentstream.timeline.models import TimelineEntry

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_STATUS_COLORS = {
    "completed": "green",
    "failed": "red",
    "in_progress": "yellow",
    "pending": "white",
}


def load_cli_config(path: Path | None) -> AgentStreamConfig:
    """Load config (or defaults) and set up logging; exit 1 on bad config."""
    try:
        config = load_config(path)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    logging.basicConfig(level=config.log_level, format=_LOG_FORMAT, stream=sys.stderr)
    return config


def format_step(step: TimelineEntry) -> str:
    status = click.style(f"[{step.status}]", fg=_STATUS_COLORS[step.status])
    return f"  {status} {step.label}"


config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to agentstream.yaml (default: ./agentstream.yaml if present).",
)
