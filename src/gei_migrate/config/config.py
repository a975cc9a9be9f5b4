"""Configuration management for the GEI migration control plane."""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, validator

DEFAULT_STATE_DIR = '~/.gei-mcp'
DEFAULT_LOG_FORMAT = (
    '{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[component]} | {message}'
)
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class GitHubAPIConfig(BaseModel):
    """Configuration for the GitHub GraphQL endpoint."""

    graphql_url: str = Field(
        default='https://api.github.com/graphql', description='GraphQL endpoint URL'
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='Client-side request budget per second'
    )

    @validator('graphql_url')
    def validate_graphql_url(cls, v):
        """Require an http(s) endpoint; trailing slashes are dropped."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('graphql_url must be an http:// or https:// URL')
        return v.rstrip('/')

    @validator('timeout', 'rate_limit_per_second')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('value must be positive')
        return v


class AzureDevOpsConfig(BaseModel):
    """Configuration for the Azure DevOps REST API used by the inventory."""

    base_url: str = Field(
        default='https://dev.azure.com', description='Organization host URL'
    )
    api_version: str = Field(default='7.0', description='REST api-version')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    max_concurrent_requests: int = Field(
        default=8, description='Parallel commit lookups during an inventory'
    )

    @validator('base_url')
    def validate_base_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must be an http:// or https:// URL')
        return v.rstrip('/')

    @validator('timeout', 'max_concurrent_requests')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('value must be positive')
        return v


class StateConfig(BaseModel):
    """Persistent state configuration."""

    state_dir: str = Field(
        default=DEFAULT_STATE_DIR,
        description='Directory holding state.json (active migrations, history, sources)',
    )
    write_retries: int = Field(
        default=3, description='Attempts for a state write before giving up'
    )

    @validator('state_dir', always=True)
    def expand_state_dir(cls, v):
        return str(Path(v).expanduser())

    @validator('write_retries')
    def validate_write_retries(cls, v):
        if v <= 0:
            raise ValueError('write_retries must be positive')
        return v


class PollingConfig(BaseModel):
    """Migration status polling configuration."""

    poll_interval_seconds: float = Field(
        default=10.0, description='Seconds between provider status checks'
    )
    default_timeout_minutes: float = Field(
        default=30.0, description='Default wait budget for a migration'
    )

    @validator('poll_interval_seconds', 'default_timeout_minutes')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('value must be positive')
        return v


class SessionConfig(BaseModel):
    """Session credential registry configuration."""

    idle_ttl_seconds: Optional[float] = Field(
        default=None,
        description='Reap session credentials idle for longer than this. Disabled when unset.',
    )

    @validator('idle_ttl_seconds')
    def validate_idle_ttl(cls, v):
        if v is not None and v <= 0:
            raise ValueError('idle_ttl_seconds must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Minimum level for every sink')
    file: Optional[str] = Field(default=None, description='Rotating log file')
    format: str = Field(default=DEFAULT_LOG_FORMAT, description='Console format')

    @validator('level')
    def normalize_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f'level must be one of {", ".join(LOG_LEVELS)}')
        return level


# (section, field) -> (environment variable, parser)
ENV_OVERRIDES: Dict[Tuple[str, str], Tuple[str, Callable[[str], Any]]] = {
    ('github', 'graphql_url'): ('GEI_GRAPHQL_URL', str),
    ('github', 'timeout'): ('GEI_API_TIMEOUT', int),
    ('ado', 'base_url'): ('GEI_ADO_URL', str),
    ('state', 'state_dir'): ('GEI_STATE_DIR', str),
    ('polling', 'poll_interval_seconds'): ('GEI_POLL_INTERVAL', float),
    ('polling', 'default_timeout_minutes'): ('GEI_WAIT_TIMEOUT_MINUTES', float),
    ('session', 'idle_ttl_seconds'): ('GEI_SESSION_IDLE_TTL', float),
    ('logging', 'level'): ('LOG_LEVEL', str),
    ('logging', 'file'): ('LOG_FILE', str),
}


class Config(BaseModel):
    """Main configuration for the GEI migration control plane.

    Secrets are deliberately absent: they are resolved per call from session
    credentials or the environment.
    """

    github: GitHubAPIConfig = Field(
        default_factory=GitHubAPIConfig, description='GitHub API settings'
    )
    ado: AzureDevOpsConfig = Field(
        default_factory=AzureDevOpsConfig, description='Azure DevOps API settings'
    )
    state: StateConfig = Field(
        default_factory=StateConfig, description='Persistent state settings'
    )
    polling: PollingConfig = Field(
        default_factory=PollingConfig, description='Status polling settings'
    )
    session: SessionConfig = Field(
        default_factory=SessionConfig, description='Session registry settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(config_path)
        if not path.is_file():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        return cls(**(yaml.safe_load(path.read_text(encoding='utf-8')) or {}))

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from ``GEI_*`` variables (and a ``.env`` file)."""
        load_dotenv()

        sections: Dict[str, Dict[str, Any]] = {}
        for (section, field), (env_var, parse) in ENV_OVERRIDES.items():
            raw = os.getenv(env_var)
            if raw:
                sections.setdefault(section, {})[field] = parse(raw)

        return cls(**sections)

    def to_file(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        _write_yaml(config_path, self.dict())

    @staticmethod
    def create_template(output_path: str) -> None:
        """Write a starter configuration with default values."""
        template = Config().dict()
        template['state']['state_dir'] = DEFAULT_STATE_DIR
        template['logging']['file'] = 'gei-migrate.log'
        _write_yaml(output_path, template)


def _write_yaml(path: str, data: Dict[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
