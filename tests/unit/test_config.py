"""
Unit tests for CLI configuration management.
"""

import json

import pytest
import yaml

from cli import config as config_module
from cli.config import (
    ConfigurationManager,
    DEFAULT_CONFIG,
    build_default_config,
    write_config_file,
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep real config files and DRAP_* variables out of the tests."""
    monkeypatch.setattr(config_module, 'CONFIG_SEARCH_PATHS', [])
    for key in list(config_module.os.environ):
        if key.startswith(config_module.ENV_PREFIX):
            monkeypatch.delenv(key)


class TestConfigurationLoading:
    """Test hierarchical loading."""

    def test_defaults(self):
        """Test loading with no sources beyond defaults."""
        manager = ConfigurationManager()
        config = manager.load()

        assert config['registry']['cache_ttl'] == DEFAULT_CONFIG['registry']['cache_ttl']
        assert config['provenance']['number_encoding'] == 'u64le'
        assert manager.get_sources() == ['defaults']

    def test_defaults_not_mutated(self):
        """Test that loaded configs are copies."""
        config = ConfigurationManager().load()
        config['registry']['cache_ttl'] = 1

        assert DEFAULT_CONFIG['registry']['cache_ttl'] == 300

    def test_profile(self):
        """Test profile overrides."""
        config = ConfigurationManager(profile='development').load()

        assert config['registry']['cache_ttl'] == 5
        assert config['registry']['backup_on_write'] is False
        # Untouched keys keep their defaults
        assert config['registry']['backup_count'] == 5

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            ConfigurationManager(profile='staging').load()

    def test_yaml_file(self, tmp_path):
        """Test explicit YAML file."""
        path = tmp_path / "drap.yml"
        path.write_text(yaml.safe_dump({'content': {'gate': 'memory'}}))

        manager = ConfigurationManager(config_file=str(path))
        assert manager.get('content.gate') == 'memory'
        assert manager.get('content.timeout') == 10.0
        assert manager.get_sources() == ['defaults', f"file:{path}"]

    def test_json_file(self, tmp_path):
        """Test explicit JSON file."""
        path = tmp_path / "drap.json"
        path.write_text(json.dumps({'registry': {'storage_dir': str(tmp_path / 'reg')}}))

        assert ConfigurationManager(str(path)).get('registry.storage_dir') == str(tmp_path / 'reg')

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigurationManager(str(tmp_path / "missing.yml")).load()

    def test_unknown_file_format(self, tmp_path):
        path = tmp_path / "drap.toml"
        path.write_text("[registry]")

        with pytest.raises(ValueError):
            ConfigurationManager(str(path)).load()

    def test_environment_variables(self, monkeypatch):
        """Test DRAP_* overrides with typed values."""
        monkeypatch.setenv('DRAP_REGISTRY__CACHE_TTL', '60')
        monkeypatch.setenv('DRAP_REGISTRY__CACHE_ENABLED', 'no')
        monkeypatch.setenv('DRAP_CONTENT__GATE', 'memory')

        manager = ConfigurationManager()
        config = manager.load()

        assert config['registry']['cache_ttl'] == 60
        assert config['registry']['cache_enabled'] is False
        assert config['content']['gate'] == 'memory'
        assert 'environment' in manager.get_sources()

    def test_path_expansion(self):
        """Test that ~ in path values is expanded."""
        storage_dir = ConfigurationManager().get('registry.storage_dir')
        assert '~' not in storage_dir


class TestConfigurationAccess:
    """Test get/set/reset."""

    def test_get_missing(self):
        manager = ConfigurationManager()

        assert manager.get('registry.nope') is None
        assert manager.get('registry.nope', 'fallback') == 'fallback'

    def test_set(self):
        manager = ConfigurationManager()
        manager.set('cli.output_format', 'json')
        manager.set('extra.nested.key', 1)

        assert manager.get('cli.output_format') == 'json'
        assert manager.get('extra.nested.key') == 1

    def test_reset(self):
        manager = ConfigurationManager()
        manager.set('cli.output_format', 'json')
        manager.reset()

        assert manager.get('cli.output_format') == 'table'


class TestConfigurationValidation:
    """Test validation."""

    def test_defaults_are_valid(self):
        assert ConfigurationManager().validate() == []

    def test_invalid_values(self):
        """Test that each invalid value is reported."""
        manager = ConfigurationManager()
        manager.set('provenance.hash_algorithm', 'md5')
        manager.set('registry.cache_ttl', 0)
        manager.set('cli.output_format', 'xml')

        errors = manager.validate()
        assert len(errors) == 3
        assert any('hash_algorithm' in e for e in errors)
        assert any('cache_ttl' in e for e in errors)
        assert any('output format' in e for e in errors)

    def test_http_gate_requires_endpoint(self):
        manager = ConfigurationManager(profile='production')

        errors = manager.validate()
        assert errors == ["content.http_endpoint is required for the http gate"]

    def test_unknown_gate(self):
        manager = ConfigurationManager()
        manager.set('content.gate', 'ipfs')

        assert manager.validate() == ["Invalid content gate: ipfs"]


class TestConfigurationFiles:
    """Test config file generation."""

    def test_build_default_config(self):
        config = build_default_config('production')

        assert config['content']['gate'] == 'http'
        assert config['registry']['backup_count'] == 20
        assert config['registry']['cache_ttl'] == 300

    def test_build_default_config_unknown_profile(self):
        with pytest.raises(ValueError):
            build_default_config('staging')

    def test_write_yaml(self, tmp_path):
        path = write_config_file(build_default_config(), tmp_path / "sub" / "config.yml")

        assert yaml.safe_load(path.read_text()) == DEFAULT_CONFIG

    def test_write_json_and_reload(self, tmp_path):
        config = build_default_config()
        config['content']['gate'] = 'memory'
        path = write_config_file(config, tmp_path / "config.json", format='json')

        assert ConfigurationManager(str(path)).get('content.gate') == 'memory'

    def test_save(self, tmp_path):
        manager = ConfigurationManager()
        manager.set('cli.verbose', 1)
        manager.save(str(tmp_path / "saved.yml"))

        assert yaml.safe_load((tmp_path / "saved.yml").read_text())['cli']['verbose'] == 1
