"""
Click-based CLI for wamirror.

This module provides the main Click group and entry point. Commands are
organized in the commands/ subpackage.
"""
import click
import logging
import sys
from pathlib import Path

from .context import CLIContext

# Configure logging format
logging.basicConfig(
    level=logging.INFO,
    format='%(message)s'
)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option(
    '--store',
    'store_dir',
    type=click.Path(file_okay=False, path_type=Path),
    help='Store directory (default: OS-specific location)'
)
@click.option(
    '--config',
    'config_path',
    type=click.Path(dir_okay=False, path_type=Path),
    help='Config file (default: <config dir>/config.yaml)'
)
@click.option('--no-auto-sync', is_flag=True, help='Skip the automatic sync before reading')
@click.pass_context
def cli(ctx, verbose, store_dir, config_path, no_auto_sync):
    """
    wamirror - a local, searchable mirror of your WhatsApp history.

    Sync history into a local SQLite store, then list, search and export
    it offline. Output is JSON on stdout.
    """
    ctx.obj = CLIContext(
        verbose=verbose,
        config_path=config_path,
        store_dir=store_dir,
        no_auto_sync=no_auto_sync,
    )

    # Configure logging level based on verbosity
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.result_callback()
@click.pass_context
def cleanup(ctx, result, **kwargs):
    """
    Clean up resources after command execution.

    Disconnects any transport session and closes the store, which lets
    SQLite checkpoint the write-ahead log.
    """
    if ctx.obj:
        ctx.obj.close()


from .commands.sync import sync

cli.add_command(sync)

from .commands.database import status, chats, messages, search, export

cli.add_command(status)
cli.add_command(chats)
cli.add_command(messages)
cli.add_command(search)
cli.add_command(export)

from .commands.messaging import send, react, forward, download

cli.add_command(send)
cli.add_command(react)
cli.add_command(forward)
cli.add_command(download)

from .commands.directory import contacts, groups

cli.add_command(contacts)
cli.add_command(groups)

from .commands.misc import doctor

cli.add_command(doctor)


def main():
    """
    Main entry point for the CLI.

    Used by the ``wamirror`` console script and ``python -m wamirror``.
    """
    try:
        cli()
    except Exception as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
