"""
Sync CLI command.

Connects the transport and lets the ingestion pipeline mirror history and
live messages into the local store.
"""
import time

import click

from wamirror.core.errors import MirrorError
from wamirror.core import timeutil
from wamirror.cli.common import output_json


@click.command()
@click.option(
    '--follow',
    is_flag=True,
    help='Run continuously, syncing messages in real-time'
)
@click.pass_context
def sync(ctx, follow):
    """Sync messages from WhatsApp.

    By default, performs a one-time sync and exits once history sync
    completes (or the follow timeout elapses). Use --follow to keep
    running until interrupted.
    """
    try:
        config = ctx.obj.get_config()
        store = ctx.obj.get_store()
        session = ctx.obj.connect()
        scheduler = ctx.obj.get_scheduler()

        if follow:
            click.echo("Connected. Syncing messages continuously. Press Ctrl+C to stop.", err=True)
            try:
                while True:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                click.echo("\nInterrupted, disconnecting...", err=True)
            store.set_last_sync_time(timeutil.utcnow())
        else:
            click.echo("Connected. Performing one-time sync...", err=True)
            scheduler.wait_for_sync(session, config.follow_timeout)

        session.disconnect()

        chat_count = store.count_chats()
        message_count = store.count_messages()
        click.secho(f"Synced {chat_count} chats, {message_count} messages", fg='green', err=True)
        output_json({"chats": chat_count, "messages": message_count})
    except MirrorError as e:
        click.secho(f"Error during sync: {e}", fg='red', err=True)
        raise click.Abort()
