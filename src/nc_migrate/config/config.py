"""Configuration management for the N-central migration tool."""

from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml
from dotenv import load_dotenv


VALID_EXPORT_FORMATS = ('csv', 'json')
COLLISION_POLICIES = ('first_wins', 'error')


class ServerConfig(BaseModel):
    """Connection settings for one N-central server and service organization."""

    url: str = Field(..., description='N-central server URL')
    jwt: Optional[str] = Field(
        default=None, validate_default=True, description='API-only user JWT'
    )
    service_org_id: Optional[int] = Field(
        default=None, description='Service organization that bounds the scope'
    )
    timeout: int = Field(default=60, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=5.0, description='API requests per second limit'
    )
    page_size: int = Field(default=100, description='Records per listing page')
    max_retries: int = Field(
        default=3, description='Retries for rate limited (HTTP 429) requests'
    )
    verify_ssl: bool = Field(default=True, description='Verify TLS certificates')

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Accept a bare FQDN or an http(s) URL."""
        v = v.strip()
        if not v:
            raise ValueError('URL must not be empty')
        if not v.startswith(('http://', 'https://')):
            v = f'https://{v}'
        return v.rstrip('/')

    @field_validator('jwt')
    @classmethod
    def validate_jwt(cls, v):
        """Ensure a JWT is provided."""
        if not v:
            raise ValueError('A JWT must be provided')
        return v.strip()

    @field_validator('rate_limit_per_second')
    @classmethod
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v

    @field_validator('page_size', 'timeout')
    @classmethod
    def validate_positive(cls, v):
        """Validate sizes and timeouts are positive."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_retries(cls, v):
        """Validate retry count is not negative."""
        if v < 0:
            raise ValueError('max_retries must not be negative')
        return v


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    customers: bool = Field(default=True, description='Migrate customers')
    sites: bool = Field(default=True, description='Migrate sites')
    access_groups: bool = Field(default=True, description='Migrate access groups')
    user_roles: bool = Field(default=True, description='Migrate user roles')
    users: bool = Field(default=True, description='Migrate users')
    org_properties: bool = Field(
        default=False, description='Migrate organization custom property values'
    )
    device_properties: bool = Field(
        default=False, description='Migrate device custom property values'
    )

    collision_policy: str = Field(
        default='first_wins',
        description='Handling of source records sharing a natural key',
    )
    default_permission_ids: List[int] = Field(
        default_factory=lambda: [1701],
        description='Permission ids used for roles that carry none',
    )

    @field_validator('collision_policy')
    @classmethod
    def validate_collision_policy(cls, v):
        """Validate the natural key collision policy."""
        v = v.lower()
        if v not in COLLISION_POLICIES:
            raise ValueError(f'collision_policy must be one of: {COLLISION_POLICIES}')
        return v


class ExportConfig(BaseModel):
    """Export-specific configuration."""

    customers: bool = Field(default=True, description='Export customers')
    sites: bool = Field(default=True, description='Export sites')
    devices: bool = Field(default=True, description='Export devices')
    access_groups: bool = Field(default=True, description='Export access groups')
    user_roles: bool = Field(default=True, description='Export user roles')
    users: bool = Field(default=True, description='Export users')
    org_properties: bool = Field(default=True, description='Export org properties')
    device_properties: bool = Field(
        default=False, description='Export device properties'
    )

    output_dir: str = Field(default='./nc_export', description='Output directory')
    formats: List[str] = Field(
        default_factory=lambda: ['csv'], description='Output formats'
    )
    basename: str = Field(default='nc_export', description='Output file base name')

    @field_validator('formats')
    @classmethod
    def validate_formats(cls, v):
        """Validate export formats."""
        formats = [f.strip().lower() for f in v if f.strip()]
        if not formats:
            raise ValueError('At least one export format is required')
        invalid = [f for f in formats if f not in VALID_EXPORT_FORMATS]
        if invalid:
            raise ValueError(
                f'Unsupported export formats {invalid}; '
                f'valid formats: {VALID_EXPORT_FORMATS}'
            )
        return list(dict.fromkeys(formats))


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the N-central migration tool."""

    model_config = ConfigDict(extra='forbid')

    source: ServerConfig = Field(..., description='Source N-central server')
    destination: Optional[ServerConfig] = Field(
        default=None, description='Destination N-central server (migration only)'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    export: ExportConfig = Field(
        default_factory=ExportConfig, description='Export settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f'Configuration file is not a mapping: {config_path}')

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        formats = os.getenv('NC_EXPORT_FORMATS')

        config_data = {
            'source': {
                'url': os.getenv('NC_SOURCE_URL'),
                'jwt': os.getenv('NC_SOURCE_JWT'),
                'service_org_id': _int_or_none(os.getenv('NC_SOURCE_SO_ID')),
            },
            'destination': {
                'url': os.getenv('NC_DEST_URL'),
                'jwt': os.getenv('NC_DEST_JWT'),
                'service_org_id': _int_or_none(os.getenv('NC_DEST_SO_ID')),
            },
            'export': {
                'output_dir': os.getenv('NC_EXPORT_DIR'),
                'formats': formats.split(',') if formats else None,
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)

        # A destination without a URL means export-only
        if 'url' not in config_data.get('destination', {}):
            config_data.pop('destination', None)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'url': 'https://ncentral-source.example.com',
                'jwt': 'your-source-api-user-jwt',
                'service_org_id': 50,
                'timeout': 60,
                'rate_limit_per_second': 5,
                'page_size': 100,
            },
            'destination': {
                'url': 'https://ncentral-dest.example.com',
                'jwt': 'your-destination-api-user-jwt',
                'service_org_id': 50,
                'timeout': 60,
                'rate_limit_per_second': 5,
                'page_size': 100,
            },
            'migration': {
                'customers': True,
                'sites': True,
                'access_groups': True,
                'user_roles': True,
                'users': True,
                'org_properties': False,
                'device_properties': False,
                'collision_policy': 'first_wins',
            },
            'export': {
                'output_dir': './nc_export',
                'formats': ['csv', 'json'],
                'basename': 'nc_export',
            },
            'logging': {
                'level': 'INFO',
                'file': 'nc-migrate.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)
