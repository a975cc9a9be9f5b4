"""Core error taxonomy for the migration control plane."""

from typing import Any, Dict, List, Optional


class GeiMigrateError(Exception):
    """Base exception for control plane errors."""

    kind = 'error'

    def __init__(self, message: str, **details: Any):
        """Initialize control plane error.

        Args:
            message: Human-readable error message
            **details: Structured details surfaced to the caller
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def to_result(self) -> Dict[str, Any]:
        """Render the error as a structured result payload."""
        return {'kind': self.kind, 'detail': self.message, **self.details}


class ConfigurationMissingError(GeiMigrateError):
    """A required secret is absent for the requested scope."""

    kind = 'configuration_missing'

    def __init__(
        self,
        message: str,
        header: Optional[str] = None,
        query_param: Optional[str] = None,
        env_vars: Optional[List[str]] = None,
    ):
        super().__init__(
            message,
            header=header,
            query_param=query_param,
            env_vars=list(env_vars or []),
        )
        self.header = header
        self.query_param = query_param
        self.env_vars = list(env_vars or [])


class NotFoundError(GeiMigrateError):
    """An operation referenced an unknown identifier."""

    kind = 'not_found'


class SessionNotFoundError(NotFoundError):
    """Unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f'Session not found: {session_id}', session_id=session_id)
        self.session_id = session_id


class MigrationNotFoundError(NotFoundError):
    """Unknown migration id."""

    def __init__(self, migration_id: str):
        super().__init__(
            f'Migration not found: {migration_id}', migration_id=migration_id
        )
        self.migration_id = migration_id


class StateConflictError(GeiMigrateError):
    """Another writer changed the state file during a read-modify-write cycle."""

    kind = 'state_conflict'

    def __init__(self, expected_version: int, actual_version: int):
        super().__init__(
            f'State file changed concurrently '
            f'(expected version {expected_version}, found {actual_version})',
            expected_version=expected_version,
            actual_version=actual_version,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class OrganizationNotFoundError(NotFoundError):
    """Unknown origin organization or project."""

    def __init__(self, org: str):
        super().__init__(f'Organization not found: {org}', organization=org)
        self.organization = org
