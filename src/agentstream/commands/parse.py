"""agentstream parse — run a raw agent output file through one parser."""

from __future__ import annotations

import json
from pathlib import Path

import click

from agentstream.commands.common import config_option, format_step, load_cli_config
from agentstream.parsers import create_parser
from agentstream.parsers.base import AgentKind


@click.command()
@click.argument(
    "file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-k",
    "--kind",
    type=click.Choice(["codex", "claude"]),
    required=True,
    help="Wire format of the captured output.",
)
@click.option("--steps", "show_steps", is_flag=True, help="Also list the steps.")
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the message projection as JSON instead of text.",
)
@config_option
def parse(
    file: Path,
    kind: AgentKind,
    show_steps: bool,
    as_json: bool,
    config_path: Path | None,
) -> None:
    """Feed every line of FILE to a fresh parser and print the result."""
    config = load_cli_config(config_path)
    parser = create_parser(kind, agent_label=config.claude_agent_label)

    text = ""
    with file.open("r", encoding="utf-8") as fh:
        outputs = [parser.feed(line) for line in fh]
    outputs.append(parser.flush())
    for output in outputs:
        if output is None:
            continue
        text = output if parser.output_mode == "full" else text + output

    if as_json:
        payload = [
            m.model_dump(mode="json", by_alias=True, exclude_none=True)
            for m in parser.to_messages()
        ]
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    click.echo(text.rstrip("\n"))
    if show_steps:
        steps = parser.get_steps()
        click.echo()
        click.echo(click.style(f"Steps ({len(steps)})", bold=True))
        for step in steps:
            click.echo(format_step(step))
