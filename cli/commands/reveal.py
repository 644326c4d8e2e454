"""
Reveal Commands for DRAP CLI

Commands for disclosing an asset's attributes and content locator, and for
checking disclosed data against a commitment without revealing.
"""

import sys
from typing import List, Optional, Tuple

import click

from registry.authority import AuthorityKind

from cli.context import (
    CLIContext,
    handle_cli_error,
    load_capability,
    load_json_file,
    parse_attribute_pairs,
    pass_context,
)


def _collect_attributes(attributes: Tuple[str, ...],
                        attributes_file: Optional[str]) -> Tuple[List[str], List[str]]:
    """Build ordered key and value lists from a file and KEY=VALUE options."""
    keys: List[str] = []
    values: List[str] = []

    if attributes_file:
        data = load_json_file(attributes_file)
        if isinstance(data, dict):
            pairs = list(data.items())
        elif isinstance(data, list):
            pairs = [(item.get('key'), item.get('value')) for item in data if isinstance(item, dict)]
        else:
            raise click.BadParameter("Attributes file must hold an object or a list of {key, value} entries")

        for key, value in pairs:
            if not isinstance(key, str) or not isinstance(value, str):
                raise click.BadParameter("Attribute keys and values must be strings")
            keys.append(key)
            values.append(value)

    option_keys, option_values = parse_attribute_pairs(attributes)
    keys.extend(option_keys)
    values.extend(option_values)

    return keys, values


@click.group()
@pass_context
def reveal(ctx: CLIContext):
    """
    Asset reveal commands.

    Disclose the attributes and content committed to at mint time.
    Attribute order must match the order used to build the commitment.
    """
    ctx.logger.debug("Reveal command group invoked")


@reveal.command('asset')
@click.argument('asset_id')
@click.option('--capabilities', 'capabilities_file', type=click.Path(exists=True), required=True,
              help='Capabilities file of the collection')
@click.option('--attribute', '-a', 'attributes', multiple=True,
              help='Attribute as KEY=VALUE (repeatable, order matters)')
@click.option('--attributes-file', type=click.Path(exists=True),
              help='JSON file with ordered attributes')
@click.option('--locator', required=True, help='Content locator (base64)')
@pass_context
@handle_cli_error
def reveal_asset(ctx: CLIContext, asset_id: str, capabilities_file: str,
                 attributes: Tuple[str, ...], attributes_file: Optional[str], locator: str):
    """
    Reveal an asset's attributes and content.

    The content must be present in the configured content store, and the
    disclosed data must reproduce the commitment stored at mint time.
    An asset can be revealed only once.

    Examples:
        drap reveal asset 5e88... --capabilities caps.json -a aura=none -a skin=gold --locator MvcX...
        drap reveal asset 5e88... --capabilities caps.json --attributes-file attrs.json --locator MvcX...
    """
    keys, values = _collect_attributes(attributes, attributes_file)
    capability = load_capability(capabilities_file, AuthorityKind.REVEAL)

    asset = ctx.get_manager().reveal(
        asset_id, keys, values, locator, capability, ctx.get_content_gate()
    )

    ctx.output({
        'asset_id': asset.asset_id,
        'number': asset.number,
        'content_locator': asset.content_locator,
        'attributes': asset.attributes,
        'revealed_at': asset.revealed_at,
    })


@reveal.command('check')
@click.argument('asset_id')
@click.option('--attribute', '-a', 'attributes', multiple=True,
              help='Attribute as KEY=VALUE (repeatable, order matters)')
@click.option('--attributes-file', type=click.Path(exists=True),
              help='JSON file with ordered attributes')
@click.option('--locator', required=True, help='Content locator (base64)')
@pass_context
@handle_cli_error
def check_reveal(ctx: CLIContext, asset_id: str, attributes: Tuple[str, ...],
                 attributes_file: Optional[str], locator: str):
    """
    Check reveal data against an asset's commitment.

    Nothing is changed. Exits with status 1 when the data does not match.

    Examples:
        drap reveal check 5e88... -a aura=none -a skin=gold --locator MvcX...
    """
    keys, values = _collect_attributes(attributes, attributes_file)

    matches = ctx.get_manager().verify_reveal(asset_id, keys, values, locator)

    ctx.output({'asset_id': asset_id, 'matches': matches})
    if not matches:
        sys.exit(1)
