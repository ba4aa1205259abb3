"""agentstream replay — replay a recorded chunk stream through the dispatcher."""

from __future__ import annotations

import json
from pathlib import Path

import click

from agentstream.commands.common import config_option, format_step, load_cli_config
from agentstream.dispatcher import ChunkDispatcher, DispatchError
from agentstream.session.models import CancelRecord, ChunkRecord, OpenRecord
from agentstream.session.recorder import Recording, RecordingError, load_recording
from agentstream.store import ConversationMessage, InMemoryMessageStore


def _replay(recording: Recording, dispatcher: ChunkDispatcher, store: InMemoryMessageStore) -> None:
    for record in recording.records:
        match record:
            case OpenRecord():
                dispatcher.open_session(record.session_id, record.kind)
                store.open(record.session_id, agent=record.kind)
            case ChunkRecord():
                try:
                    dispatcher.handle(record.to_chunk())
                except DispatchError as exc:
                    click.echo(f"⚠️  {exc}", err=True)
            case CancelRecord():
                dispatcher.cancel(record.session_id)


def _format_message(message: ConversationMessage) -> None:
    header = f"── {message.id} [{message.agent or 'agent'}] {message.status}"
    click.echo(click.style(header, fg="cyan"))
    if message.content:
        click.echo(message.content.rstrip("\n"))
    for step in message.steps:
        click.echo(format_step(step))
    click.echo()


@click.command()
@click.argument(
    "recording_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Dump the resulting messages as JSON.",
)
@config_option
def replay(recording_file: Path, as_json: bool, config_path: Path | None) -> None:
    """Replay RECORDING_FILE (JSONL) and print the resulting messages."""
    config = load_cli_config(config_path)

    try:
        recording = load_recording(recording_file)
    except RecordingError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if recording.parse_warnings:
        click.echo(f"⚠️  {len(recording.parse_warnings)} parse warnings:", err=True)
        for warning in recording.parse_warnings[:5]:
            click.echo(f"   {warning}", err=True)
        if len(recording.parse_warnings) > 5:
            click.echo(f"   ... and {len(recording.parse_warnings) - 5} more", err=True)

    store = InMemoryMessageStore(max_messages=config.max_messages)
    dispatcher = ChunkDispatcher(store, config=config)
    _replay(recording, dispatcher, store)

    if as_json:
        payload = [
            m.model_dump(mode="json", by_alias=True, exclude_none=True)
            for m in store.messages()
        ]
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    for message in store.messages():
        _format_message(message)
