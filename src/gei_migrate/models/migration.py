"""Migration entity models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class MigrationState(str, Enum):
    """Repository migration states as reported by the importer.

    ``ABORTED`` is recorded locally when a cancellation is requested.
    """

    NOT_STARTED = 'NOT_STARTED'
    QUEUED = 'QUEUED'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    IN_PROGRESS = 'IN_PROGRESS'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'
    ABORTED = 'ABORTED'

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        MigrationState.SUCCEEDED,
        MigrationState.FAILED,
        MigrationState.FAILED_VALIDATION,
        MigrationState.ABORTED,
    }
)


class SourcePlatform(str, Enum):
    """Origin platform of a migration."""

    GITHUB = 'github'
    ADO = 'ado'

    @property
    def source_type(self) -> str:
        """Importer migration source type for this platform."""
        if self is SourcePlatform.GITHUB:
            return 'GITHUB_ARCHIVE'
        return 'AZURE_DEVOPS'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationRecord(BaseModel):
    """A migration tracked by the state store."""

    id: str = Field(..., description='Provider-assigned migration ID')
    source_org: str = Field(..., description='Origin organization')
    target_org: str = Field(..., description='Target organization')
    repo_name: str = Field(..., description='Final repository name in the target')
    state: MigrationState = Field(
        default=MigrationState.QUEUED, description='Current migration state'
    )
    started_at: datetime = Field(
        default_factory=utcnow, description='Migration start time'
    )
    completed_at: Optional[datetime] = Field(
        default=None, description='Time the migration reached a terminal state'
    )
    source: SourcePlatform = Field(..., description='Origin platform tag')

    @validator('id')
    def validate_id(cls, v):
        if not v:
            raise ValueError('Migration id must not be empty')
        return v

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation used by the state file."""
        return {
            'id': self.id,
            'source_org': self.source_org,
            'target_org': self.target_org,
            'repo_name': self.repo_name,
            'state': self.state.value,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat()
            if self.completed_at
            else None,
            'source': self.source.value,
        }


class MigrationStatus(BaseModel):
    """Status snapshot returned by the provider."""

    id: str = Field(..., description='Migration ID')
    state: MigrationState = Field(..., description='Provider-reported state')
    repository_name: Optional[str] = Field(
        default=None, description='Target repository name'
    )
    created_at: Optional[datetime] = Field(
        default=None, description='Creation timestamp'
    )
    failure_reason: Optional[str] = Field(
        default=None, description='Failure reason for failed migrations'
    )


class WaitResult(BaseModel):
    """Outcome of waiting for a migration to finish.

    ``completed`` is False when the wait budget ran out or the wait was
    cancelled; the remote migration is left untouched in both cases.
    """

    migration_id: str = Field(..., description='Migration ID')
    completed: bool = Field(..., description='A terminal state was observed')
    final_state: Optional[MigrationState] = Field(
        default=None, description='Terminal state, when completed'
    )
    elapsed: float = Field(..., description='Seconds spent waiting')
    status: Optional[MigrationStatus] = Field(
        default=None, description='Last status seen'
    )
    cancelled: bool = Field(
        default=False, description='The wait loop was stopped by the caller'
    )


class PersistedState(BaseModel):
    """Root document of the state file."""

    version: int = Field(default=0, description='Write counter')
    active_migrations: List[MigrationRecord] = Field(default_factory=list)
    migration_history: List[MigrationRecord] = Field(default_factory=list)
    migration_sources: Dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'active_migrations': [m.to_dict() for m in self.active_migrations],
            'migration_history': [m.to_dict() for m in self.migration_history],
            'migration_sources': dict(self.migration_sources),
        }
