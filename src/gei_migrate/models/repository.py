"""Origin repository inventory models."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from .migration import SourcePlatform, utcnow

BYTES_PER_MB = 1024 * 1024


class RepositoryInfo(BaseModel):
    """A repository in an origin organization."""

    name: str = Field(..., description='Repository name')
    platform: SourcePlatform = Field(..., description='Origin platform')
    id: Optional[str] = Field(default=None, description='Platform repository id')
    url: Optional[str] = Field(default=None, description='Web or clone URL')
    project: Optional[str] = Field(
        default=None, description='Azure DevOps project holding the repository'
    )
    description: Optional[str] = Field(default=None, description='Description')
    archived: bool = Field(default=False, description='Archived or disabled')
    private: Optional[bool] = Field(default=None, description='Private repository')
    fork: Optional[bool] = Field(default=None, description='Fork of another repository')
    size_bytes: int = Field(default=0, description='Repository size in bytes')
    last_activity: Optional[datetime] = Field(
        default=None, description='Last push or last commit time'
    )
    default_branch: Optional[str] = Field(default=None, description='Default branch')
    languages: List[str] = Field(default_factory=list, description='Main languages')

    @validator('last_activity')
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / BYTES_PER_MB, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'platform': self.platform.value,
            'project': self.project,
            'url': self.url,
            'description': self.description,
            'archived': self.archived,
            'private': self.private,
            'fork': self.fork,
            'size_mb': self.size_mb,
            'last_activity': self.last_activity.isoformat()
            if self.last_activity
            else None,
            'default_branch': self.default_branch,
            'languages': list(self.languages),
        }


class OrganizationInventory(BaseModel):
    """Repositories of an origin organization with summary figures."""

    organization: str = Field(..., description='Origin organization')
    platform: SourcePlatform = Field(..., description='Origin platform')
    projects: List[str] = Field(
        default_factory=list, description='Azure DevOps projects scanned'
    )
    repositories: List[RepositoryInfo] = Field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        total_bytes = sum(r.size_bytes for r in self.repositories)
        archived = sum(1 for r in self.repositories if r.archived)
        summary = {
            'total_repos': len(self.repositories),
            'total_size_mb': round(total_bytes / BYTES_PER_MB, 2),
            'archived_repos': archived,
            'active_repos': len(self.repositories) - archived,
            'forks': sum(1 for r in self.repositories if r.fork),
        }
        if self.platform is SourcePlatform.ADO:
            by_project = Counter(r.project for r in self.repositories)
            summary['total_projects'] = len(self.projects)
            summary['repos_by_project'] = {p: by_project.get(p, 0) for p in self.projects}
        return summary


def find_large(
    repositories: List[RepositoryInfo], threshold_mb: float
) -> List[RepositoryInfo]:
    """Repositories strictly larger than ``threshold_mb``, largest first."""
    if threshold_mb < 0:
        raise ValueError('threshold_mb must not be negative')

    threshold_bytes = threshold_mb * BYTES_PER_MB
    large = [r for r in repositories if r.size_bytes > threshold_bytes]
    return sorted(large, key=lambda r: r.size_bytes, reverse=True)


def find_stale(
    repositories: List[RepositoryInfo],
    days_inactive: float,
    now: Optional[datetime] = None,
) -> List[RepositoryInfo]:
    """Repositories without activity for ``days_inactive`` days, oldest first.

    Repositories whose last activity is unknown are left out.
    """
    if days_inactive < 0:
        raise ValueError('days_inactive must not be negative')

    cutoff = (now or utcnow()) - timedelta(days=days_inactive)
    stale = [
        r
        for r in repositories
        if r.last_activity is not None and r.last_activity < cutoff
    ]
    return sorted(stale, key=lambda r: r.last_activity)
