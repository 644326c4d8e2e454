"""
Shared CLI context and helpers for DRAP command modules.
"""

import functools
import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from crypto.exceptions import CryptoError
from nft.content import ContentGate, ContentGateError, create_content_gate
from registry.authority import AuthorityKind, Capability
from registry.concurrency import ConcurrencyError
from registry.exceptions import RegistryError
from registry.manager import RegistryManager
from registry.storage import StorageError

from .config import ConfigurationManager
from .output import OutputFormatter


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: Optional[str] = None
        self.verbose: int = 0
        self.logger: logging.Logger = logging.getLogger('drap-cli')
        self._config_manager: Optional[ConfigurationManager] = None
        self._manager: Optional[RegistryManager] = None
        self._content_gate: Optional[ContentGate] = None

    def setup_logging(self):
        """Configure logging based on verbosity level (-v flags, else cli.verbose)."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }

        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)

        root = logging.getLogger()
        root.handlers = [handler]
        root.setLevel(level)

        # Suppress verbose third-party logs unless in debug mode
        if self.verbose < 2:
            logging.getLogger('requests').setLevel(logging.WARNING)
            logging.getLogger('urllib3').setLevel(logging.WARNING)

    @property
    def config_manager(self) -> ConfigurationManager:
        if self._config_manager is None:
            self._config_manager = ConfigurationManager(self.config_file, self.profile)
        return self._config_manager

    @property
    def config(self) -> Dict[str, Any]:
        return self.config_manager.load()

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot path with fallback to default."""
        return self.config_manager.get(key, default)

    def get_manager(self) -> RegistryManager:
        """Registry manager built from configuration."""
        if self._manager is None:
            self._manager = RegistryManager.from_config(self.config)
            self.logger.debug(f"Registry storage: {self._manager.storage.get_storage_info()}")
        return self._manager

    def get_content_gate(self) -> ContentGate:
        """Content gate built from configuration."""
        if self._content_gate is None:
            self._content_gate = create_content_gate(self.config.get('content', {}))
        return self._content_gate

    def output(self, data: Any, headers: Optional[List[str]] = None):
        """Output data in the selected format."""
        format_type = self.output_format or self.get_config('cli.output_format', 'table')
        click.echo(OutputFormatter(format_type).format(data, headers))


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to handle CLI errors gracefully."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except click.ClickException:
            raise
        except (RegistryError, CryptoError, ContentGateError, StorageError,
                ConcurrencyError, ValueError, OSError) as e:
            ctx = click.get_current_context().find_object(CLIContext)

            code = getattr(e, 'code', None)
            prefix = f"Error [{code}]" if code else "Error"
            click.echo(f"{prefix}: {e}", err=True)

            if ctx and ctx.verbose >= 2:
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)

            sys.exit(1)

    return wrapper


def load_json_file(file_path: str) -> Any:
    """Load and validate JSON file."""
    path = Path(file_path)
    if not path.exists():
        raise click.FileError(file_path, hint="file not found")

    try:
        with open(path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.FileError(file_path, hint=f"invalid JSON: {e}")


def save_json_file(data: Any, file_path: str, indent: int = 2):
    """Save data to JSON file."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        json.dump(data, f, indent=indent, default=str)


def save_capabilities(mint_cap: Capability, reveal_cap: Capability, file_path: str):
    """Write a collection's capabilities to a JSON file."""
    save_json_file({
        'collection_id': mint_cap.collection_id,
        'mint': mint_cap.model_dump(mode='json'),
        'reveal': reveal_cap.model_dump(mode='json'),
    }, file_path)


def load_capability(file_path: str, kind: AuthorityKind) -> Capability:
    """Read one capability out of a capabilities file."""
    data = load_json_file(file_path)
    entry = data.get(kind.value) if isinstance(data, dict) else None
    if entry is None:
        raise click.BadParameter(f"No {kind.value} capability in {file_path}")
    return Capability.model_validate(entry)


def parse_attribute_pairs(pairs: Tuple[str, ...]) -> Tuple[List[str], List[str]]:
    """Split repeated KEY=VALUE options into ordered key and value lists."""
    keys, values = [], []
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"Attribute must be KEY=VALUE, got {pair!r}")
        key, value = pair.split('=', 1)
        keys.append(key)
        values.append(value)
    return keys, values
