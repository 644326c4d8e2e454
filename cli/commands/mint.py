"""
Minting Commands for DRAP CLI

Commands for minting assets bound to a provenance commitment, one at a time
or as a single atomic batch from a CSV or JSON file.
"""

import csv
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from registry.authority import AuthorityKind

from cli.context import (
    CLIContext,
    handle_cli_error,
    load_capability,
    load_json_file,
    pass_context,
)


BATCH_COLUMNS = ['name', 'description', 'external_url', 'commitment']


@click.group()
@pass_context
def mint(ctx: CLIContext):
    """
    Asset minting commands.

    Mint assets against a hidden provenance commitment. Attributes and
    content stay undisclosed until the asset is revealed.
    """
    ctx.logger.debug("Mint command group invoked")


@mint.command('single')
@click.option('--capabilities', 'capabilities_file', type=click.Path(exists=True), required=True,
              help='Capabilities file of the collection')
@click.option('--name', default='', help='Asset name')
@click.option('--description', default='', help='Asset description')
@click.option('--external-url', default='', help='External URL for the asset')
@click.option('--commitment', required=True, help='Provenance commitment (hex digest)')
@pass_context
@handle_cli_error
def mint_single(ctx: CLIContext, capabilities_file: str, name: str, description: str,
                external_url: str, commitment: str):
    """
    Mint one asset.

    The asset receives the next sequence number of its collection. The
    commitment must be computed for that number; use
    `drap collection info` to see how many assets are already minted.

    Examples:
        drap mint single --capabilities caps.json --name "Item #1" --commitment 9f86d0...
    """
    capability = load_capability(capabilities_file, AuthorityKind.MINT)

    asset = ctx.get_manager().mint(
        name, description, external_url, commitment, capability, capability.collection_id
    )

    ctx.output({
        'asset_id': asset.asset_id,
        'collection_id': asset.collection_id,
        'number': asset.number,
        'name': asset.name,
        'provenance_commitment': asset.provenance_commitment,
    })


@mint.command('batch')
@click.option('--capabilities', 'capabilities_file', type=click.Path(exists=True), required=True,
              help='Capabilities file of the collection')
@click.option('--batch-file', type=click.Path(exists=True), required=True,
              help='CSV or JSON file with one entry per asset')
@click.option('--format', 'batch_format', type=click.Choice(['csv', 'json']),
              help='Override batch file format detection')
@click.option('--dry-run', is_flag=True, help='Validate the batch file without minting')
@pass_context
@handle_cli_error
def mint_batch(ctx: CLIContext, capabilities_file: str, batch_file: str,
               batch_format: Optional[str], dry_run: bool):
    """
    Mint several assets atomically.

    Either every entry is minted or none is. Entries receive consecutive
    sequence numbers in file order.

    Batch files carry the columns name, description, external_url and
    commitment. JSON files hold a list of objects or an object with an
    'assets' key.

    Examples:
        drap mint batch --capabilities caps.json --batch-file assets.csv
        drap mint batch --capabilities caps.json --batch-file assets.json --dry-run
    """
    ctx.logger.info(f"Processing batch mint from {batch_file}")

    file_format = batch_format or _detect_file_format(batch_file)
    if file_format == 'csv':
        entries = _load_csv_batch(batch_file)
    else:
        entries = _load_json_batch(batch_file)

    if not entries:
        raise click.ClickException("No entries found in batch file")

    for row_number, entry in enumerate(entries, 1):
        if not entry.get('commitment'):
            raise click.ClickException(f"Entry {row_number} has no commitment")

    capability = load_capability(capabilities_file, AuthorityKind.MINT)

    if dry_run:
        ctx.logger.info("Dry run mode - validating batch only")
        ctx.output({
            'collection_id': capability.collection_id,
            'entries': len(entries),
            'valid': True,
        })
        return

    assets = ctx.get_manager().bulk_mint(
        names=[e.get('name', '') for e in entries],
        descriptions=[e.get('description', '') for e in entries],
        provenance_commitments=[e['commitment'] for e in entries],
        mint_authority=capability,
        external_urls=[e.get('external_url', '') for e in entries],
    )

    ctx.output([{
        'number': a.number,
        'asset_id': a.asset_id,
        'name': a.name,
    } for a in assets])


def _detect_file_format(file_path: str) -> str:
    """Detect file format from extension."""
    extension = Path(file_path).suffix.lower()
    if extension == '.csv':
        return 'csv'
    elif extension == '.json':
        return 'json'
    else:
        raise click.BadParameter(f"Unsupported file extension: {extension}")


def _normalize_entry(row: Dict[str, Any]) -> Dict[str, str]:
    """Keep the known batch columns, as strings."""
    return {column: str(row.get(column) or '') for column in BATCH_COLUMNS}


def _load_csv_batch(file_path: str) -> List[Dict[str, str]]:
    """Load batch entries from CSV file."""
    with open(file_path, 'r', newline='') as csvfile:
        reader = csv.DictReader(csvfile)
        if reader.fieldnames is None or 'commitment' not in reader.fieldnames:
            raise click.ClickException("CSV batch file must have a 'commitment' column")
        return [_normalize_entry(row) for row in reader]


def _load_json_batch(file_path: str) -> List[Dict[str, str]]:
    """Load batch entries from JSON file."""
    data = load_json_file(file_path)

    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict) and 'assets' in data:
        entries = data['assets']
    else:
        raise click.BadParameter("JSON file must contain an array of entries or an object with an 'assets' key")

    for row_number, entry in enumerate(entries, 1):
        if not isinstance(entry, dict):
            raise click.ClickException(f"Entry {row_number} must be an object")

    return [_normalize_entry(entry) for entry in entries]
