"""
Miscellaneous CLI commands (doctor).
"""
import click

from wamirror.core.errors import MirrorError
from wamirror.services.diagnostics import run_checks
from wamirror.cli.common import output_json


@click.command()
@click.option('--connect', is_flag=True, help='Also test the connection to WhatsApp')
@click.pass_context
def doctor(ctx, connect):
    """Check the store, full-text search and transport setup."""
    try:
        report = run_checks(ctx.obj.get_config(), connect=connect)
    except MirrorError as e:
        click.secho(f"Error running diagnostics: {e}", fg='red', err=True)
        raise click.Abort()

    output_json(report.to_dict())
    if not report.healthy:
        ctx.exit(1)
