#!/usr/bin/env python3
"""
Deferred Reveal Asset Protocol - Command Line Interface

CLI for creating collections, minting assets against hidden provenance
commitments, revealing them, and inspecting the registry.
"""

import sys
from typing import Optional

import click

from cli import __version__
from cli.commands.collection import collection
from cli.commands.config import config
from cli.commands.mint import mint
from cli.commands.provenance import provenance
from cli.commands.reveal import reveal
from cli.context import CLIContext, handle_cli_error, pass_context


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              type=click.Path(),
              help='Path to configuration file')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json', 'yaml']),
              help='Output format (default from configuration)')
@click.option('--profile',
              type=click.Choice(['production', 'development']),
              help='Configuration profile')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.version_option(__version__, '--version', message='DRAP CLI v%(version)s')
@pass_context
@handle_cli_error
def cli(ctx: CLIContext, config_file: Optional[str], output_format: Optional[str],
        profile: Optional[str], verbose: int):
    """
    Deferred Reveal Asset Protocol (DRAP) Command Line Interface

    Mint assets bound to a hidden provenance commitment and reveal their
    attributes and content later, under fixed supply limits.

    Examples:
        drap collection create --target-supply 100 --capabilities caps.json
        drap mint single --capabilities caps.json --name "Item" --commitment <hex>
        drap reveal asset <asset-id> --capabilities caps.json -a skin=gold --locator <b64>
        drap collection info <collection-id>
    """
    ctx.config_file = config_file
    ctx.output_format = output_format
    ctx.profile = profile
    ctx.verbose = verbose or int(ctx.get_config('cli.verbose', 0))

    ctx.setup_logging()

    ctx.logger.debug("CLI initialized with context")


cli.add_command(collection)
cli.add_command(mint)
cli.add_command(reveal)
cli.add_command(provenance)
cli.add_command(config)


def main():
    """Console script entry point."""
    cli(obj=CLIContext())


if __name__ == '__main__':
    sys.exit(main())
