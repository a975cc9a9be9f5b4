"""Configuration models and loaders."""

from .config import (
    AzureDevOpsConfig,
    Config,
    GitHubAPIConfig,
    LoggingConfig,
    PollingConfig,
    SessionConfig,
    StateConfig,
)

__all__ = [
    'AzureDevOpsConfig',
    'Config',
    'GitHubAPIConfig',
    'LoggingConfig',
    'PollingConfig',
    'SessionConfig',
    'StateConfig',
]
