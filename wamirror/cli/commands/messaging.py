"""
Messaging CLI commands.

Commands for sending, reacting to, forwarding and downloading messages
through a connected transport.
"""
import click
from pathlib import Path

from wamirror.core.errors import MirrorError
from wamirror.services.messaging import MessagingService
from wamirror.cli.common import chat_option, output_json


def _service(ctx) -> MessagingService:
    session = ctx.obj.connect()
    return MessagingService(ctx.obj.get_store(), session.transport)


@click.command()
@click.argument('recipient')
@click.argument('text', required=False, default='')
@click.option(
    '--file', 'file_path',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Send a file (image, video, audio, document)'
)
@click.option('--caption', default='', help='Caption for media file')
@click.option('--reply-to', default=None, help='Message ID to reply to')
@click.pass_context
def send(ctx, recipient, text, file_path, caption, reply_to):
    """Send a text message or a file to RECIPIENT (identifier or phone number)."""
    if not text and not file_path:
        raise click.UsageError("Provide TEXT or --file")

    try:
        service = _service(ctx)
        if file_path:
            receipt = service.send_media(recipient, file_path, caption=caption or text, reply_to=reply_to)
        else:
            receipt = service.send_text(recipient, text, reply_to=reply_to)
        output_json(receipt.to_dict())
    except (MirrorError, ValueError) as e:
        click.secho(f"Error sending message: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('message_id')
@click.argument('emoji', required=False, default='')
@chat_option(required=True)
@click.option('--remove', is_flag=True, help='Remove reaction instead of adding')
@click.pass_context
def react(ctx, message_id, emoji, chat, remove):
    """React to MESSAGE_ID with EMOJI."""
    if not emoji and not remove:
        raise click.UsageError("Provide EMOJI or --remove")

    try:
        receipt = _service(ctx).react(chat, message_id, emoji, remove=remove)
        output_json(receipt.to_dict())
    except (MirrorError, ValueError) as e:
        click.secho(f"Error sending reaction: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('message_id')
@click.argument('recipient')
@click.option('--from', 'from_chat', required=True, help='Source chat identifier')
@click.pass_context
def forward(ctx, message_id, recipient, from_chat):
    """Forward a stored text message to RECIPIENT."""
    try:
        receipt = _service(ctx).forward(recipient, message_id, from_chat)
        output_json(receipt.to_dict())
    except (MirrorError, ValueError) as e:
        click.secho(f"Error forwarding message: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('message_id')
@chat_option(required=True)
@click.pass_context
def download(ctx, message_id, chat):
    """Download the media attached to MESSAGE_ID."""
    try:
        service = _service(ctx)
        path = service.download_media(message_id, chat, ctx.obj.get_config().media_dir)
        output_json({"message_id": message_id, "chat": chat, "path": str(path)})
    except MirrorError as e:
        click.secho(f"Error downloading media: {e}", fg='red', err=True)
        raise click.Abort()
