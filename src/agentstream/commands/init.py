"""agentstream init — scaffold an agentstream.yaml."""

from __future__ import annotations

from pathlib import Path

import click

from agentstream.config.parser import DEFAULT_CONFIG_NAME

TEMPLATE_YAML = """\
# agentstream configuration
version: "1"

# Wire format for sessions opened without an explicit kind.
# Options: plain (default, raw text is appended), codex, claude
default_kind: plain

# Agent name -> wire format, resolved once when a session opens.
agents:
  codex: codex
  claude: claude

# Chunks starting with this marker only flip the running/streaming flags.
# announcement_prefix: "🔗 Agent:"

# Messages kept by the in-memory store used by `agentstream replay`.
# max_messages: 500

# Evict parsers of sessions idle this many seconds (0 disables the sweep).
# stale_after: 0

# Logging level (overridden by AGENTSTREAM_LOG_LEVEL, also read from .env).
# log_level: WARNING
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help=f"Overwrite existing {DEFAULT_CONFIG_NAME} if it exists.",
)
def init(force: bool) -> None:
    """Write a starter agentstream.yaml in the current directory."""
    config_path = Path.cwd() / DEFAULT_CONFIG_NAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(
            f"Cannot write {DEFAULT_CONFIG_NAME}: {exc}"
        ) from exc
    click.echo(f"  Created {DEFAULT_CONFIG_NAME}")
