#!/usr/bin/env python3
"""
jctl - Journey Control CLI
Main entry point for journey export, import and maintenance
"""

import click

from .journey import journey
from .conn import conn
from ..core.version import get_version

@click.group()
def cli():
    """Journey Control - export, import and maintain authentication journeys"""
    pass

@cli.command()
def version():
    """Show version information"""
    version_str = get_version()
    click.echo(f"jctl version {version_str}")

# Add subcommand groups
cli.add_command(journey)
cli.add_command(conn)

if __name__ == '__main__':
    cli()
