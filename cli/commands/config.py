"""
Configuration Commands for DRAP CLI

Commands for inspecting, validating and writing CLI configuration.
"""

import sys
from pathlib import Path
from typing import Optional

import click

from cli.config import ENV_PREFIX, build_default_config, write_config_file
from cli.context import CLIContext, handle_cli_error, pass_context


@click.group()
@pass_context
def config(ctx: CLIContext):
    """
    Configuration management commands.

    Inspect the merged configuration and check it for errors.
    """
    ctx.logger.debug("Config command group invoked")


@config.command('init')
@click.option('--profile', type=click.Choice(['production', 'development']),
              help='Profile to base the configuration on')
@click.option('--output', type=click.Path(), help='Output file path (default: ./.drap.yml)')
@click.option('--format', 'file_format', type=click.Choice(['yaml', 'json']),
              default='yaml', help='Configuration file format')
@click.option('--force', is_flag=True, help='Overwrite existing configuration')
@pass_context
@handle_cli_error
def init_config(ctx: CLIContext, profile: Optional[str], output: Optional[str],
                file_format: str, force: bool):
    """
    Write a configuration file with the default settings.

    Examples:
        drap config init
        drap config init --profile production --output /etc/drap/config.yml
    """
    output_path = Path(output) if output else Path.cwd() / ('.drap.yml' if file_format == 'yaml' else '.drap.json')

    if output_path.exists() and not force:
        raise click.ClickException(f"Configuration file exists: {output_path} (use --force to overwrite)")

    write_config_file(build_default_config(profile), output_path, file_format)

    click.echo(f"Configuration written to {output_path}")
    click.echo(f"Override any key with {ENV_PREFIX}SECTION__KEY environment variables.")


@config.command('show')
@click.option('--key', help='Specific configuration key to show (dot notation)')
@click.option('--sources', is_flag=True, help='Show configuration sources')
@pass_context
@handle_cli_error
def show_config(ctx: CLIContext, key: Optional[str], sources: bool):
    """
    Display current configuration settings.

    Shows the merged configuration from defaults, profile, file and
    environment variables.

    Examples:
        drap config show
        drap config show --key registry.storage_dir
        drap config show --sources
    """
    manager = ctx.config_manager

    if sources:
        click.echo("Configuration sources (lowest to highest precedence):")
        for i, source in enumerate(manager.get_sources(), 1):
            click.echo(f"   {i}. {source}")
        return

    if key:
        value = manager.get(key)
        if value is None:
            click.echo(f"Configuration key not found: {key}", err=True)
            sys.exit(1)

        if isinstance(value, dict):
            ctx.output(value)
        else:
            ctx.output({key: value})
    else:
        ctx.output(manager.load())


@config.command('validate')
@pass_context
@handle_cli_error
def validate_config(ctx: CLIContext):
    """
    Validate the merged configuration.

    Exits with status 1 when any setting is invalid.

    Examples:
        drap config validate
        drap -c custom.yml config validate
    """
    errors = ctx.config_manager.validate()

    if not errors:
        click.echo("Configuration is valid")
        return

    click.echo(f"Configuration has {len(errors)} error(s):", err=True)
    for error in errors:
        click.echo(f"   - {error}", err=True)
    sys.exit(1)
