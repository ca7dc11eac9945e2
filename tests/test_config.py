"""Tests for configuration management."""

import pytest
import tempfile
import os
from pathlib import Path

import yaml

from nc_migrate.config.config import (
    Config,
    ExportConfig,
    MigrationConfig,
    ServerConfig,
)


class TestServerConfig:
    """Test N-central server configuration."""

    def test_valid_config(self):
        """Test valid configuration creation."""
        config = ServerConfig(
            url='https://ncentral.example.com',
            jwt='test-jwt',
            service_org_id=50,
            timeout=30,
            rate_limit_per_second=10,
        )

        assert config.url == 'https://ncentral.example.com'
        assert config.jwt == 'test-jwt'
        assert config.service_org_id == 50
        assert config.timeout == 30
        assert config.rate_limit_per_second == 10
        assert config.page_size == 100
        assert config.verify_ssl is True

    def test_url_validation(self):
        """Test URL normalization."""
        cases = {
            'https://ncentral.example.com': 'https://ncentral.example.com',
            'https://ncentral.example.com/': 'https://ncentral.example.com',
            'http://localhost:8080': 'http://localhost:8080',
            'ncentral.example.com': 'https://ncentral.example.com',
        }

        for url, expected in cases.items():
            config = ServerConfig(url=url, jwt='test')
            assert config.url == expected

    def test_missing_jwt(self):
        """Test that missing JWT raises validation error."""
        with pytest.raises(ValueError):
            ServerConfig(url='https://ncentral.example.com')

    def test_invalid_rate_limit(self):
        with pytest.raises(ValueError):
            ServerConfig(url='ncentral.example.com', jwt='jwt', rate_limit_per_second=0)

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            ServerConfig(url='ncentral.example.com', jwt='jwt', page_size=0)


class TestMigrationConfig:
    """Test migration settings."""

    def test_defaults(self):
        config = MigrationConfig()

        assert config.customers is True
        assert config.users is True
        assert config.org_properties is False
        assert config.device_properties is False
        assert config.collision_policy == 'first_wins'
        assert config.default_permission_ids == [1701]

    def test_collision_policy_validation(self):
        assert MigrationConfig(collision_policy='ERROR').collision_policy == 'error'

        with pytest.raises(ValueError):
            MigrationConfig(collision_policy='last_wins')


class TestExportConfig:
    """Test export settings."""

    def test_formats_normalized(self):
        config = ExportConfig(formats=['CSV', 'json', 'csv'])

        assert config.formats == ['csv', 'json']

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            ExportConfig(formats=['xml'])

    def test_empty_formats(self):
        with pytest.raises(ValueError):
            ExportConfig(formats=[])


class TestConfig:
    """Test main configuration class."""

    def test_config_creation(self):
        """Test configuration creation with all fields."""
        config = Config(
            source=ServerConfig(url='https://source.example.com', jwt='source-jwt'),
            destination=ServerConfig(url='https://dest.example.com', jwt='dest-jwt'),
        )

        assert config.source.url == 'https://source.example.com'
        assert config.destination.url == 'https://dest.example.com'
        assert config.migration.customers is True
        assert config.export.formats == ['csv']
        assert config.logging.level == 'INFO'

    def test_destination_optional(self):
        """Export-only configurations have no destination."""
        config = Config(source={'url': 'https://source.example.com', 'jwt': 'jwt'})

        assert config.destination is None

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError):
            Config(
                source={'url': 'https://source.example.com', 'jwt': 'jwt'},
                git={'clone': True},
            )

    def test_config_from_dict(self):
        """Test configuration creation from dictionary."""
        config_dict = {
            'source': {'url': 'https://source.example.com', 'jwt': 'source-jwt'},
            'destination': {'url': 'https://dest.example.com', 'jwt': 'dest-jwt'},
            'migration': {'users': False, 'collision_policy': 'error'},
        }

        config = Config(**config_dict)
        assert config.migration.users is False
        assert config.migration.collision_policy == 'error'

    def test_config_from_file(self):
        """Test configuration loading from YAML file."""
        config_content = """
source:
  url: https://source.example.com
  jwt: source-jwt
  service_org_id: 50

destination:
  url: https://dest.example.com
  jwt: dest-jwt
  service_org_id: 60

migration:
  users: true
  access_groups: false

export:
  formats: [csv, json]
"""

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write(config_content)
            f.flush()

            try:
                config = Config.from_file(f.name)
                assert config.source.service_org_id == 50
                assert config.destination.service_org_id == 60
                assert config.migration.users is True
                assert config.migration.access_groups is False
                assert config.export.formats == ['csv', 'json']
            finally:
                os.unlink(f.name)

    def test_config_from_env(self, monkeypatch):
        """Test configuration loading from environment variables."""
        env_vars = {
            'NC_SOURCE_URL': 'https://source.example.com',
            'NC_SOURCE_JWT': 'source-jwt',
            'NC_SOURCE_SO_ID': '50',
            'NC_DEST_URL': 'https://dest.example.com',
            'NC_DEST_JWT': 'dest-jwt',
            'NC_DEST_SO_ID': '60',
            'NC_EXPORT_FORMATS': 'csv,json',
            'LOG_LEVEL': 'debug',
        }
        for key, value in env_vars.items():
            monkeypatch.setenv(key, value)

        config = Config.from_env()

        assert config.source.url == 'https://source.example.com'
        assert config.source.service_org_id == 50
        assert config.destination.jwt == 'dest-jwt'
        assert config.destination.service_org_id == 60
        assert config.export.formats == ['csv', 'json']
        assert config.logging.level == 'DEBUG'

    def test_config_from_env_without_destination(self, monkeypatch):
        monkeypatch.setenv('NC_SOURCE_URL', 'https://source.example.com')
        monkeypatch.setenv('NC_SOURCE_JWT', 'source-jwt')
        for key in ('NC_DEST_URL', 'NC_DEST_JWT', 'NC_DEST_SO_ID'):
            monkeypatch.delenv(key, raising=False)

        config = Config.from_env()

        assert config.destination is None

    def test_invalid_config_file(self):
        """Test handling of invalid configuration file."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write('invalid: yaml: content:')
            f.flush()

            try:
                with pytest.raises(yaml.YAMLError):
                    Config.from_file(f.name)
            finally:
                os.unlink(f.name)

    def test_non_mapping_config_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('- just\n- a list\n')

        with pytest.raises(ValueError):
            Config.from_file(str(path))

    def test_missing_config_file(self):
        """Test handling of missing configuration file."""
        with pytest.raises(FileNotFoundError):
            Config.from_file('/nonexistent/config.yaml')

    def test_to_file_round_trip(self, tmp_path):
        config = Config(
            source={'url': 'https://source.example.com', 'jwt': 'jwt', 'service_org_id': 1}
        )
        path = tmp_path / 'nested' / 'config.yaml'

        config.to_file(str(path))

        assert Config.from_file(str(path)) == config

    def test_create_template(self, tmp_path):
        path = tmp_path / 'config.yaml'

        Config.create_template(str(path))

        config = Config.from_file(str(path))
        assert config.destination is not None
        assert config.migration.collision_policy == 'first_wins'
        assert Path(path).read_text().startswith('source:')
