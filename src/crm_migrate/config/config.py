"""Configuration management for the CRM migration tool."""

from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import yaml
from dotenv import load_dotenv

DEFAULT_PROPERTIES = [
    'firstname',
    'lastname',
    'email',
    'phone',
    'jobtitle',
    'company',
    'website',
    'address',
    'city',
    'state',
    'zip',
]


class ApiConfig(BaseModel):
    """Configuration for one CRM API."""

    url: str = Field(..., description='API base URL')
    token: Optional[str] = Field(default=None, description='Bearer token')
    api_key: Optional[str] = Field(
        default=None, description='API key sent as "Token token=<key>"'
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_requests: int = Field(
        default=40, description='Requests allowed per rate window'
    )
    rate_limit_interval: float = Field(
        default=60.0, description='Rate window length in seconds'
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Validate API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('timeout', 'rate_limit_requests', 'rate_limit_interval')
    @classmethod
    def validate_positive(cls, v):
        """Validate timeouts and rate limits are positive."""
        if v <= 0:
            raise ValueError('Timeout and rate limits must be positive')
        return v

    @model_validator(mode='after')
    def validate_auth_complete(self):
        """Ensure at least one authentication method is provided."""
        if not self.token and not self.api_key:
            raise ValueError('Either token or api_key must be provided')
        return self


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    page_size: int = Field(default=100, description='Source records per page')
    max_retries: int = Field(
        default=3, description='Retries after the first attempt of a call'
    )
    properties: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PROPERTIES),
        description='Source properties to fetch',
    )

    checkpoint_file: str = Field(
        default='migration_progress.json', description='Checkpoint file path'
    )
    failed_log: str = Field(
        default='failed_contacts.csv', description='Failed record log path'
    )
    migrated_log: str = Field(
        default='migrated_contacts.txt', description='Migrated record log path'
    )
    error_log: str = Field(default='api_error_log.txt', description='API error log path')

    @field_validator('page_size')
    @classmethod
    def validate_page_size(cls, v):
        """Validate page size is positive."""
        if v <= 0:
            raise ValueError('Page size must be positive')
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v):
        """Validate retry count is not negative."""
        if v < 0:
            raise ValueError('Max retries must not be negative')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: str = Field(
        default='{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
        description='Log format',
    )

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the CRM migration tool."""

    model_config = ConfigDict(extra='forbid')

    source: ApiConfig = Field(..., description='Source API (paginated reads)')
    destination: ApiConfig = Field(..., description='Destination API (creates)')
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
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

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'source': {
                'url': os.getenv('SOURCE_API_URL'),
                'token': os.getenv('SOURCE_API_TOKEN'),
                'rate_limit_requests': int(os.getenv('SOURCE_RATE_LIMIT', 96)),
                'rate_limit_interval': float(os.getenv('SOURCE_RATE_INTERVAL', 10)),
            },
            'destination': {
                'url': os.getenv('DEST_API_URL'),
                'api_key': os.getenv('DEST_API_KEY'),
                'rate_limit_requests': int(os.getenv('DEST_RATE_LIMIT', 40)),
                'rate_limit_interval': float(os.getenv('DEST_RATE_INTERVAL', 60)),
            },
            'migration': {
                'page_size': int(os.getenv('MIGRATION_PAGE_SIZE', 100)),
                'max_retries': int(os.getenv('MIGRATION_MAX_RETRIES', 3)),
                'checkpoint_file': os.getenv('CHECKPOINT_FILE'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

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
                self.model_dump(),
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
                'url': 'https://api.hubapi.com',
                'token': 'your-source-bearer-token',
                'timeout': 30,
                'rate_limit_requests': 96,
                'rate_limit_interval': 10,
            },
            'destination': {
                'url': 'https://yourdomain.myfreshworks.com/crm/sales',
                'api_key': 'your-destination-api-key',
                'timeout': 30,
                'rate_limit_requests': 40,
                'rate_limit_interval': 60,
            },
            'migration': {
                'page_size': 100,
                'max_retries': 3,
                'properties': list(DEFAULT_PROPERTIES),
                'checkpoint_file': 'migration_progress.json',
                'failed_log': 'failed_contacts.csv',
                'migrated_log': 'migrated_contacts.txt',
                'error_log': 'api_error_log.txt',
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
                'format': '{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
