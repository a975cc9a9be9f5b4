"""GitHub and Azure DevOps API access."""

from .ado import AzureDevOpsClient, AzureDevOpsInventoryAPI
from .client import APIResponse, GitHubClient, GitHubClientFactory
from .exceptions import (
    AuthenticationError,
    ExternalAPIError,
    GraphQLError,
    RateLimitError,
)
from .github import GitHubInventoryAPI, GitHubMigrationAPI
from .provider import MigrationProvider, RepositorySource

__all__ = [
    'APIResponse',
    'AzureDevOpsClient',
    'AzureDevOpsInventoryAPI',
    'GitHubClient',
    'GitHubClientFactory',
    'AuthenticationError',
    'ExternalAPIError',
    'GraphQLError',
    'RateLimitError',
    'GitHubInventoryAPI',
    'GitHubMigrationAPI',
    'MigrationProvider',
    'RepositorySource',
]
