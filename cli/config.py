"""
Configuration Management Module for DRAP CLI

Handles hierarchical configuration loading, environment variable mapping,
validation, and management of settings across different environments.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from crypto.commitments import AttributeOrder, HashAlgorithm, NumberEncoding


# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.drap.yml',
    Path.cwd() / '.drap.json',
    Path.cwd() / 'drap.config.yml',
    Path.cwd() / 'drap.config.json',
    Path.home() / '.drap' / 'config.yml',
    Path.home() / '.drap' / 'config.json',
    Path('/etc/drap/config.yml'),
    Path('/etc/drap/config.json'),
]

# Environment variable prefix; nested keys are separated by a double underscore
ENV_PREFIX = 'DRAP_'
ENV_SEPARATOR = '__'

DEFAULT_CONFIG = {
    'registry': {
        'storage_dir': '~/.drap/registry',
        'compressed': False,
        'backup_count': 5,
        'backup_on_write': True,
        'cache_enabled': True,
        'cache_ttl': 300,  # seconds
        'lock_timeout': 30.0
    },

    # Canonical form for commitments of newly created collections
    'provenance': {
        'number_encoding': NumberEncoding.U64_LE.value,
        'attribute_order': AttributeOrder.INTERLEAVED.value,
        'hash_algorithm': HashAlgorithm.SHA256.value
    },

    'content': {
        'gate': 'local',  # local, http, memory
        'local_dir': '~/.drap/content',
        'http_endpoint': None,
        'timeout': 10.0,
        'max_retries': 0
    },

    'events': {
        'log_file': None
    },

    'cli': {
        'output_format': 'table',  # table, json, yaml
        'verbose': 0
    }
}

PROFILES = {
    'production': {
        'registry': {'backup_on_write': True, 'backup_count': 20},
        'content': {'gate': 'http'},
        'cli': {'verbose': 0}
    },
    'development': {
        'registry': {'backup_on_write': False, 'cache_ttl': 5},
        'content': {'gate': 'local'},
        'cli': {'verbose': 2}
    }
}

VALID_GATES = ['local', 'http', 'memory']
VALID_OUTPUT_FORMATS = ['table', 'json', 'yaml']


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to load (production, development)
        """
        self.logger = logging.getLogger('drap-cli.config')
        self.config_file = config_file
        self.profile = profile
        self._config_cache = None
        self._config_sources = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        self._config_sources = []
        configs = [copy.deepcopy(DEFAULT_CONFIG)]
        self._config_sources.append("defaults")

        if self.profile:
            if self.profile not in PROFILES:
                raise ValueError(f"Unknown configuration profile: {self.profile}")
            configs.append(PROFILES[self.profile])
            self._config_sources.append(f"profile:{self.profile}")
            self.logger.debug(f"Applied profile: {self.profile}")

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for config_path in CONFIG_SEARCH_PATHS:
                if config_path.exists():
                    configs.append(self._load_config_file(config_path))
                    self._config_sources.append(f"file:{config_path}")
                    self.logger.debug(f"Loaded config from {config_path}")
                    break  # Use first found config file

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        self._expand_paths(self._config_cache)

        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        with open(path, 'r') as f:
            if path.suffix in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unknown config file format: {path}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            # e.g., DRAP_REGISTRY__STORAGE_DIR -> {'registry': {'storage_dir': value}}
            parts = key[len(ENV_PREFIX):].lower().split(ENV_SEPARATOR)
            current = env_config

            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = self._parse_env_value(value)

        return env_config

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool, None]:
        """Parse environment variable value to appropriate type."""
        # JSON covers numbers, booleans, null and nested structures
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

        if value.lower() in ['true', 'yes']:
            return True
        elif value.lower() in ['false', 'no']:
            return False

        return value

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = copy.deepcopy(value)

        return result

    def _expand_paths(self, config: Dict[str, Any]):
        """Expand ~ and environment variables in path values."""
        for key, value in config.items():
            if isinstance(value, dict):
                self._expand_paths(value)
            elif isinstance(value, str):
                if '~' in value or '$' in value:
                    config[key] = os.path.expanduser(os.path.expandvars(value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'registry.storage_dir')
            default: Default value if key not found
        """
        current = self.load()

        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def set(self, key_path: str, value: Any):
        """Set configuration value by dot-notation path."""
        config = self.load()

        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def save(self, path: Optional[str] = None, format: str = 'yaml'):
        """
        Save current configuration to file.

        Args:
            path: File path to save to (default: project config file)
            format: Output format ('yaml' or 'json')
        """
        if not path:
            path = Path.cwd() / ('.drap.yml' if format == 'yaml' else '.drap.json')

        path = write_config_file(self.load(), path, format)
        self.logger.info(f"Configuration saved to {path}")

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        config = self.load()
        errors = []

        provenance = config.get('provenance', {})
        for key, enum_type in (('number_encoding', NumberEncoding),
                               ('attribute_order', AttributeOrder),
                               ('hash_algorithm', HashAlgorithm)):
            allowed = [e.value for e in enum_type]
            if provenance.get(key) not in allowed:
                errors.append(f"Invalid provenance.{key}: {provenance.get(key)} (expected one of {allowed})")

        registry = config.get('registry', {})
        if not registry.get('storage_dir'):
            errors.append("registry.storage_dir is required")
        if not isinstance(registry.get('backup_count'), int) or registry['backup_count'] < 0:
            errors.append("registry.backup_count must be a non-negative integer")
        if not isinstance(registry.get('cache_ttl'), (int, float)) or registry['cache_ttl'] <= 0:
            errors.append("registry.cache_ttl must be a positive number")

        content = config.get('content', {})
        gate = content.get('gate')
        if gate not in VALID_GATES:
            errors.append(f"Invalid content gate: {gate}")
        elif gate == 'http' and not content.get('http_endpoint'):
            errors.append("content.http_endpoint is required for the http gate")
        elif gate == 'local' and not content.get('local_dir'):
            errors.append("content.local_dir is required for the local gate")

        output_format = config.get('cli', {}).get('output_format')
        if output_format not in VALID_OUTPUT_FORMATS:
            errors.append(f"Invalid output format: {output_format}")

        return errors

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def reset(self):
        """Drop the cached configuration so the next access reloads it."""
        self._config_cache = None
        self._config_sources = []


def build_default_config(profile: Optional[str] = None) -> Dict[str, Any]:
    """Defaults with an optional profile applied, ignoring files and environment."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if profile:
        if profile not in PROFILES:
            raise ValueError(f"Unknown configuration profile: {profile}")
        for section, values in PROFILES[profile].items():
            config.setdefault(section, {}).update(values)
    return config


def write_config_file(config: Dict[str, Any], path: Union[str, Path], format: str = 'yaml') -> Path:
    """Write a configuration mapping as YAML or JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        if format == 'yaml':
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(config, f, indent=2)

    return path
