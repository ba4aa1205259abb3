"""Root CLI group and version flag."""

import click

from agentstream import __version__
from agentstream.commands.init import init
from agentstream.commands.parse import parse
from agentstream.commands.replay import replay


@click.group()
@click.version_option(version=__version__, prog_name="agentstream")
def cli() -> None:
    """agentstream — parse coding-agent output streams into chat messages."""


cli.add_command(init)
cli.add_command(parse)
cli.add_command(replay)
