"""
Directory CLI commands.

Commands for listing contacts and groups. Contact listing and group
details need a connected transport; the group list reads the local mirror.
"""
import click

from wamirror.core.errors import MirrorError
from wamirror.services.directory import DirectoryService
from wamirror.cli.common import limit_option, output_json


def _service(ctx, connect: bool = True) -> DirectoryService:
    transport = ctx.obj.connect().transport if connect else None
    return DirectoryService(ctx.obj.get_store(), transport)


@click.command()
@click.option('--query', default='', help='Filter by name or phone number')
@click.pass_context
def contacts(ctx, query):
    """List address-book contacts."""
    try:
        results = _service(ctx).list_contacts(query=query)
        output_json([c.to_dict() for c in results])
    except MirrorError as e:
        click.secho(f"Error listing contacts: {e}", fg='red', err=True)
        raise click.Abort()


@click.command()
@click.argument('identifier', required=False)
@limit_option(100)
@click.pass_context
def groups(ctx, identifier, limit):
    """List groups, or show IDENTIFIER's details and participants."""
    try:
        if identifier:
            info = _service(ctx).group_info(identifier)
            output_json(info.to_dict())
            return

        ctx.obj.auto_sync()
        results = _service(ctx, connect=False).list_groups(limit=limit)
        output_json([chat.to_dict() for chat in results])
    except MirrorError as e:
        click.secho(f"Error reading groups: {e}", fg='red', err=True)
        raise click.Abort()
