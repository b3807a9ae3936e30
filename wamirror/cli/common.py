"""
Common Click decorators and utilities for CLI commands.

Provides reusable option decorators to reduce boilerplate across command definitions.
"""
import json
from typing import Any, Callable

import click

from wamirror.core.timeutil import TIMEFRAME_PRESETS


def limit_option(default: int = 50) -> Callable:
    """
    Add --limit option to command.

    Args:
        default: Default maximum number of results

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        return click.option(
            '--limit',
            type=int,
            default=default,
            help=f'Maximum number of results (default: {default})'
        )(f)
    return decorator


def timeframe_option(f: Callable) -> Callable:
    """Add --timeframe preset option to command."""
    return click.option(
        '--timeframe',
        type=click.Choice(TIMEFRAME_PRESETS),
        help='Timeframe preset (overrides --after/--before)'
    )(f)


def type_option(f: Callable) -> Callable:
    """
    Add --type message class filter to command.

    Left as free text: an unknown class is dropped by the query builder
    with a warning rather than rejected.
    """
    return click.option(
        '--type', 'media_class',
        default='',
        help='Filter by type (text, image, video, audio, document, sticker)'
    )(f)


def chat_option(required: bool = True) -> Callable:
    """Add --chat identifier option to command."""
    def decorator(f: Callable) -> Callable:
        return click.option(
            '--chat',
            required=required,
            default=None if required else '',
            help='Chat identifier'
        )(f)
    return decorator


def output_json(data: Any):
    """Write a result to stdout as indented JSON."""
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))
