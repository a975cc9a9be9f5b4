"""Provider operations the migration core depends on."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.migration import MigrationStatus, SourcePlatform
from ..models.repository import OrganizationInventory, RepositoryInfo


class MigrationProvider(ABC):
    """Remote service that runs repository migrations."""

    @abstractmethod
    async def create_migration_source(
        self, target_org_id: str, origin_org_url: str, platform: SourcePlatform
    ) -> str:
        """Register an origin organization; returns the migration source id."""

    @abstractmethod
    async def start_migration(
        self,
        source_id: str,
        target_org_id: str,
        origin_repo_url: str,
        target_repo_name: str,
        access_token: str,
    ) -> str:
        """Start a repository migration; returns the migration id."""

    @abstractmethod
    async def get_migration_status(self, migration_id: str) -> MigrationStatus:
        """Current status of a migration.

        Raises:
            MigrationNotFoundError: If the provider does not know the id
        """

    @abstractmethod
    async def abort_migration(self, migration_id: str) -> bool:
        """Request cancellation; returns the provider's success flag."""

    @abstractmethod
    async def resolve_organization_id(self, org_name: str) -> str:
        """Node id of an organization."""

    @abstractmethod
    async def grant_migrator_role(
        self, org_name: str, actor: str, actor_type: str
    ) -> bool:
        """Allow a user or team to run migrations into an organization."""


class RepositorySource(ABC):
    """Read-only view of the repositories in an origin organization."""

    @abstractmethod
    async def list_repositories(
        self, org: str, project: Optional[str] = None
    ) -> List[RepositoryInfo]:
        """Repositories of an organization, or of one Azure DevOps project."""

    @abstractmethod
    async def inventory(self, org: str) -> OrganizationInventory:
        """Every repository of an organization with activity and metadata."""
