"""
Provenance Commands for DRAP CLI

Offline helpers for building commitments and content locators before an
asset is minted or revealed.
"""

from pathlib import Path
from typing import Optional, Tuple

import click

from crypto.commitments import (
    AttributeOrder,
    CommitmentScheme,
    HashAlgorithm,
    NumberEncoding,
    compute_provenance_digest,
    serialize_provenance_data,
)
from crypto.locator import decode_locator, encode_locator, normalize_locator
from nft.content import content_id_for

from cli.context import CLIContext, handle_cli_error, parse_attribute_pairs, pass_context


def _parse_content_id(value: str) -> int:
    """Parse a decimal or 0x-prefixed hex content identifier."""
    try:
        return int(value, 0)
    except ValueError:
        raise click.BadParameter(f"Content ID must be decimal or 0x-prefixed hex: {value}")


@click.group()
@pass_context
def provenance(ctx: CLIContext):
    """
    Commitment and locator helpers.

    Compute the commitment to publish at mint time, and convert between
    content identifiers and textual locators.
    """
    ctx.logger.debug("Provenance command group invoked")


@provenance.command('digest')
@click.option('--number', type=int, required=True, help='Sequence number the asset will be minted with')
@click.option('--attribute', '-a', 'attributes', multiple=True,
              help='Attribute as KEY=VALUE (repeatable, order matters)')
@click.option('--locator', required=True, help='Content locator (base64)')
@click.option('--collection-id', help='Use the commitment scheme pinned by this collection')
@click.option('--number-encoding', type=click.Choice([e.value for e in NumberEncoding]),
              help='Sequence number encoding')
@click.option('--attribute-order', type=click.Choice([e.value for e in AttributeOrder]),
              help='Attribute layout')
@click.option('--hash-algorithm', type=click.Choice([e.value for e in HashAlgorithm]),
              help='Hash algorithm')
@click.option('--show-preimage', is_flag=True, help='Include the preimage bytes (hex)')
@pass_context
@handle_cli_error
def digest(ctx: CLIContext, number: int, attributes: Tuple[str, ...], locator: str,
           collection_id: Optional[str], number_encoding: Optional[str],
           attribute_order: Optional[str], hash_algorithm: Optional[str],
           show_preimage: bool):
    """
    Compute a provenance commitment.

    Without --collection-id the configured provenance scheme is used,
    adjusted by any scheme options given.

    Examples:
        drap provenance digest --number 1 -a aura=none -a skin=gold --locator MvcX...
        drap provenance digest --number 7 -a skin=gold --locator MvcX... --collection-id 3f2a...
    """
    keys, values = parse_attribute_pairs(attributes)

    if collection_id:
        collection = ctx.get_manager().get_collection(collection_id)
        if collection is None:
            raise click.ClickException(f"Collection not found: {collection_id}")
        scheme = collection.scheme
    else:
        scheme_config = dict(ctx.get_config('provenance', {}))
        overrides = {
            'number_encoding': number_encoding,
            'attribute_order': attribute_order,
            'hash_algorithm': hash_algorithm,
        }
        scheme_config.update({k: v for k, v in overrides.items() if v})
        scheme = CommitmentScheme.from_dict(scheme_config)

    result = {
        'number': number,
        'commitment': compute_provenance_digest(number, keys, values, locator, scheme),
        **scheme.to_dict(),
    }
    if show_preimage:
        result['preimage'] = serialize_provenance_data(number, keys, values, locator, scheme).hex()

    ctx.output(result)


@provenance.command('encode-locator')
@click.option('--content-id', help='Content identifier (decimal or 0x-prefixed hex)')
@click.option('--file', 'content_file', type=click.Path(exists=True, dir_okay=False),
              help='Derive the identifier from a file\'s SHA-256 digest')
@click.option('--url-safe', is_flag=True, help='Use the URL-safe alphabet without padding')
@pass_context
@handle_cli_error
def encode(ctx: CLIContext, content_id: Optional[str], content_file: Optional[str], url_safe: bool):
    """
    Encode a content identifier as a locator.

    Examples:
        drap provenance encode-locator --content-id 17743117
        drap provenance encode-locator --file artwork.png
    """
    if bool(content_id) == bool(content_file):
        raise click.UsageError("Give exactly one of --content-id or --file")

    if content_file:
        identifier = content_id_for(Path(content_file).read_bytes())
    else:
        identifier = _parse_content_id(content_id)

    ctx.output({
        'content_id': str(identifier),
        'content_id_hex': f"0x{identifier:064x}",
        'locator': encode_locator(identifier, url_safe=url_safe, padded=not url_safe),
    })


@provenance.command('decode-locator')
@click.argument('locator')
@pass_context
@handle_cli_error
def decode(ctx: CLIContext, locator: str):
    """
    Decode a locator into its content identifier.

    Accepts padded or unpadded, standard or URL-safe locators.

    Examples:
        drap provenance decode-locator DbuJ7GRmwjoqo1LDp2qk/H/aI1ycOi2lH3Ka4ATdLzo=
    """
    identifier = decode_locator(locator)

    ctx.output({
        'content_id': str(identifier),
        'content_id_hex': f"0x{identifier:064x}",
        'canonical_locator': normalize_locator(locator),
    })
