"""Data models for migrations, credentials and origin repositories."""

from .credentials import CredentialKind, PrerequisiteReport, SessionCredentials
from .migration import (
    TERMINAL_STATES,
    MigrationRecord,
    MigrationState,
    MigrationStatus,
    PersistedState,
    SourcePlatform,
    WaitResult,
)
from .repository import OrganizationInventory, RepositoryInfo, find_large, find_stale

__all__ = [
    'CredentialKind',
    'PrerequisiteReport',
    'SessionCredentials',
    'TERMINAL_STATES',
    'MigrationRecord',
    'MigrationState',
    'MigrationStatus',
    'PersistedState',
    'SourcePlatform',
    'WaitResult',
    'OrganizationInventory',
    'RepositoryInfo',
    'find_large',
    'find_stale',
]
