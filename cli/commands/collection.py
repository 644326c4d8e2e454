"""
Collection Commands for DRAP CLI

Commands for creating collections, inspecting supply and reveal progress,
resolving sequence numbers, and retiring completed authorities.
"""

from typing import Optional

import click

from crypto.commitments import AttributeOrder, CommitmentScheme, HashAlgorithm, NumberEncoding
from registry.authority import AuthorityKind

from cli.context import (
    CLIContext,
    handle_cli_error,
    load_capability,
    pass_context,
    save_capabilities,
)


@click.group()
@pass_context
def collection(ctx: CLIContext):
    """
    Collection lifecycle commands.

    Create collections, inspect their progress, and retire authorities
    once their supply is complete.
    """
    ctx.logger.debug("Collection command group invoked")


@collection.command('create')
@click.option('--target-supply', type=int, required=True, help='Fixed number of assets in the collection')
@click.option('--collection-id', help='Collection identifier (generated if omitted)')
@click.option('--capabilities', 'capabilities_file', type=click.Path(), required=True,
              help='File to write the mint and reveal capabilities to')
@click.option('--number-encoding', type=click.Choice([e.value for e in NumberEncoding]),
              help='Sequence number encoding in commitments')
@click.option('--attribute-order', type=click.Choice([e.value for e in AttributeOrder]),
              help='Attribute layout in commitments')
@click.option('--hash-algorithm', type=click.Choice([e.value for e in HashAlgorithm]),
              help='Commitment hash algorithm')
@pass_context
@handle_cli_error
def create_collection(ctx: CLIContext, target_supply: int, collection_id: Optional[str],
                      capabilities_file: str, number_encoding: Optional[str],
                      attribute_order: Optional[str], hash_algorithm: Optional[str]):
    """
    Create a collection with a fixed target supply.

    The mint and reveal capabilities are written to the capabilities file.
    Anyone holding that file can mint or reveal in the collection.

    Examples:
        drap collection create --target-supply 100 --capabilities caps.json
        drap collection create --target-supply 10 --capabilities caps.json --hash-algorithm sha3_256
    """
    scheme_config = dict(ctx.get_config('provenance', {}))
    overrides = {
        'number_encoding': number_encoding,
        'attribute_order': attribute_order,
        'hash_algorithm': hash_algorithm,
    }
    scheme_config.update({k: v for k, v in overrides.items() if v})
    scheme = CommitmentScheme.from_dict(scheme_config)

    manager = ctx.get_manager()
    mint_cap, reveal_cap = manager.create_collection(target_supply, collection_id, scheme)

    save_capabilities(mint_cap, reveal_cap, capabilities_file)
    ctx.logger.info(f"Capabilities written to {capabilities_file}")

    ctx.output({
        'collection_id': mint_cap.collection_id,
        'target_supply': target_supply,
        'mint_authority': mint_cap.authority_id,
        'reveal_authority': reveal_cap.authority_id,
        'capabilities_file': capabilities_file,
        **scheme.to_dict(),
    })


@collection.command('info')
@click.argument('collection_id')
@pass_context
@handle_cli_error
def collection_info(ctx: CLIContext, collection_id: str):
    """
    Show supply and reveal progress for a collection.

    Examples:
        drap collection info 3f2a...
        drap -o json collection info 3f2a...
    """
    stats = ctx.get_manager().get_collection_stats(collection_id)
    ctx.output(stats)


@collection.command('assets')
@click.argument('collection_id')
@click.option('--revealed/--unrevealed', default=None, help='Filter by reveal status')
@click.option('--limit', type=int, help='Maximum number of assets to show')
@click.option('--offset', type=int, default=0, help='Number of assets to skip')
@pass_context
@handle_cli_error
def list_assets(ctx: CLIContext, collection_id: str, revealed: Optional[bool],
                limit: Optional[int], offset: int):
    """
    List assets of a collection in sequence order.

    Examples:
        drap collection assets 3f2a... --unrevealed --limit 20
    """
    manager = ctx.get_manager()
    if manager.get_collection(collection_id) is None:
        raise click.ClickException(f"Collection not found: {collection_id}")

    assets = manager.list_assets(collection_id, revealed=revealed, limit=limit, offset=offset)
    rows = [{
        'number': a.number,
        'asset_id': a.asset_id,
        'name': a.name,
        'revealed': a.is_revealed,
        'locator': a.content_locator or None,
    } for a in assets]

    ctx.output(rows)


@collection.command('lookup')
@click.argument('collection_id')
@click.argument('number', type=int)
@pass_context
@handle_cli_error
def lookup(ctx: CLIContext, collection_id: str, number: int):
    """
    Resolve a sequence number to the asset minted with it.

    Examples:
        drap collection lookup 3f2a... 42
    """
    manager = ctx.get_manager()
    asset_id = manager.lookup(collection_id, number)
    asset = manager.get_asset(asset_id)

    ctx.output(asset.model_dump(mode='json'))


@collection.command('retire')
@click.option('--capabilities', 'capabilities_file', type=click.Path(exists=True), required=True,
              help='Capabilities file of the collection')
@click.option('--kind', type=click.Choice([k.value for k in AuthorityKind]), required=True,
              help='Authority to destroy')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@pass_context
@handle_cli_error
def retire_authority(ctx: CLIContext, capabilities_file: str, kind: str, yes: bool):
    """
    Destroy a completed mint or reveal authority.

    A mint authority can be destroyed once the full supply is minted, a
    reveal authority once every asset is revealed. Destruction is permanent.

    Examples:
        drap collection retire --capabilities caps.json --kind mint
    """
    authority_kind = AuthorityKind(kind)
    capability = load_capability(capabilities_file, authority_kind)

    if not yes and not click.confirm(
        f"Permanently destroy the {kind} authority of {capability.collection_id}?", default=False
    ):
        ctx.logger.info("Retire cancelled by user")
        return

    manager = ctx.get_manager()
    if authority_kind == AuthorityKind.MINT:
        manager.destroy_mint_authority(capability)
    else:
        manager.destroy_reveal_authority(capability)

    click.echo(f"Destroyed {kind} authority {capability.authority_id}")
