"""
Read-side CLI commands.

Commands for inspecting, listing, searching and exporting the local
mirror. Each runs the auto-sync policy before reading.
"""
import click
from pathlib import Path

from wamirror.core.errors import MirrorError
from wamirror.core.models import MessageQuery
from wamirror.core import timeutil
from wamirror.services.search import ChatSearchService
from wamirror.services.exporter import ChatExporter
from wamirror.cli.common import (
    chat_option, limit_option, output_json, timeframe_option, type_option,
)


@click.command()
@click.pass_context
def status(ctx):
    """Show mirror statistics and sync state."""
    try:
        config = ctx.obj.get_config()
        store = ctx.obj.get_store()
        last_sync = store.get_last_sync_time()

        output_json({
            "store": str(config.store_dir),
            "chats": store.count_chats(),
            "messages": store.count_messages(),
            "last_sync": last_sync.isoformat() if last_sync else None,
            "last_sync_ago": timeutil.format_time_since(last_sync),
            "auto_sync_due": ctx.obj.get_scheduler().should_auto_sync(),
            "transport": config.transport,
        })
    except MirrorError as e:
        click.secho(f"Error reading status: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.option('--query', default='', help='Filter by chat name or identifier')
@click.option('--groups', 'only_groups', is_flag=True, help='Show groups only')
@limit_option(50)
@click.pass_context
def chats(ctx, query, only_groups, limit):
    """List chats, most recent first."""
    ctx.obj.auto_sync()

    try:
        service = ChatSearchService(ctx.obj.get_store())
        results = service.list_chats(query=query, only_groups=only_groups, limit=limit)
        output_json([chat.to_dict() for chat in results])
    except MirrorError as e:
        click.secho(f"Error listing chats: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@chat_option(required=False)
@click.option('--from', 'sender', default='', help='Limit to a sender (user part)')
@click.option('--after', default='', help='Messages after timestamp (RFC 3339)')
@click.option('--before', default='', help='Messages before timestamp (RFC 3339)')
@timeframe_option
@type_option
@limit_option(50)
@click.pass_context
def messages(ctx, chat, sender, after, before, timeframe, media_class, limit):
    """List messages, newest first."""
    ctx.obj.auto_sync()

    try:
        service = ChatSearchService(ctx.obj.get_store())
        query = MessageQuery(
            chat_identifier=chat,
            sender=sender,
            after=after,
            before=before,
            media_class=media_class,
            limit=limit,
        )
        results = service.list_messages(query, timeframe=timeframe)
        output_json([m.to_dict() for m in results])
    except MirrorError as e:
        click.secho(f"Error listing messages: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('query')
@chat_option(required=False)
@click.option('--from', 'sender', default='', help='Limit to a sender (user part)')
@timeframe_option
@type_option
@limit_option(50)
@click.pass_context
def search(ctx, query, chat, sender, timeframe, media_class, limit):
    """Full-text search over message content (FTS5 syntax)."""
    ctx.obj.auto_sync()

    try:
        service = ChatSearchService(ctx.obj.get_store())
        results = service.search(MessageQuery(
            text=query,
            chat_identifier=chat,
            sender=sender,
            media_class=media_class,
            limit=limit,
        ), timeframe=timeframe)
        output_json([m.to_dict() for m in results])
    except MirrorError as e:
        click.secho(f"Error during search: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('chat')
@click.option(
    '--format',
    type=click.Choice(['json', 'csv']),
    default='json',
    help='Output format (default: json)'
)
@click.option(
    '-o', '--output',
    type=click.Path(path_type=Path),
    help='Output file (default: exports/<chat>.<format>)'
)
@click.pass_context
def export(ctx, chat, format, output):
    """Export all messages of a chat."""
    ctx.obj.auto_sync()

    try:
        exporter = ChatExporter(ctx.obj.get_store())
        if output is None:
            output = Path('exports') / f"{chat.replace(':', '_')}.{format}"

        if format == 'csv':
            count = exporter.export_chat_csv(chat, output)
        else:
            count = exporter.export_chat_json(chat, output)

        click.secho(f"Exported {count} messages to {output}", fg='green', err=True)
        output_json({"chat": chat, "messages": count, "path": str(output)})
    except MirrorError as e:
        click.secho(f"Error during export: {e}", fg='red', err=True)
        raise click.Abort()
