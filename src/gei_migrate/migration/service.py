"""Request-level migration operations.

Each public coroutine serves one caller request. It resolves that caller's
secrets, runs the operation and reports the outcome as an
:class:`OperationResult`; per-request failures never escape as exceptions.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from ..api.ado import AzureDevOpsClient, AzureDevOpsInventoryAPI
from ..api.client import GitHubClientFactory
from ..api.exceptions import ExternalAPIError
from ..api.github import GitHubInventoryAPI, GitHubMigrationAPI
from ..api.provider import MigrationProvider, RepositorySource
from ..auth.credentials import CredentialResolver
from ..auth.sessions import SessionCredentialRegistry
from ..config.config import Config
from ..exceptions import ConfigurationMissingError, GeiMigrateError
from ..models.credentials import CredentialKind
from ..models.migration import SourcePlatform
from ..models.repository import find_large, find_stale
from ..state.store import MigrationStateStore
from .lifecycle import MigrationLifecycleController
from .sources import MigrationSourceCache, canonical_org_url

ProviderFactory = Callable[[str], MigrationProvider]
InventoryFactory = Callable[[SourcePlatform, str], RepositorySource]


class OperationResult(BaseModel):
    """Structured outcome of a request."""

    success: bool = Field(..., description='Operation succeeded')
    data: Dict[str, Any] = Field(default_factory=dict, description='Result payload')
    error_kind: Optional[str] = Field(default=None, description='Failure kind')
    detail: Optional[str] = Field(default=None, description='Failure message')
    error: Dict[str, Any] = Field(
        default_factory=dict, description='Structured failure details'
    )

    @classmethod
    def ok(cls, **data: Any) -> 'OperationResult':
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, kind: str, detail: str, **error: Any) -> 'OperationResult':
        return cls(success=False, error_kind=kind, detail=detail, error=error)


def build_source_urls(
    platform: SourcePlatform,
    source_org: str,
    repo_name: str,
    ado_project: Optional[str] = None,
) -> Tuple[str, str]:
    """Origin organization and repository URLs for a platform.

    Raises:
        ValueError: If an Azure DevOps migration lacks a project
    """
    platform = SourcePlatform(platform)
    if platform is SourcePlatform.GITHUB:
        org_url = f'https://github.com/{source_org}'
        return org_url, f'{org_url}/{repo_name}'

    if not ado_project:
        raise ValueError('ado_project is required for Azure DevOps migrations')
    org_url = f'https://dev.azure.com/{source_org}'
    return org_url, f'{org_url}/{ado_project}/_git/{repo_name}'


class MigrationService:
    """Composes credentials, source registration and lifecycle control."""

    def __init__(
        self,
        config: Config,
        registry: SessionCredentialRegistry,
        store: Optional[MigrationStateStore] = None,
        provider_factory: Optional[ProviderFactory] = None,
        environ: Optional[Dict[str, str]] = None,
        inventory_factory: Optional[InventoryFactory] = None,
    ):
        """Initialize migration service.

        Args:
            config: Control plane configuration
            registry: Session credential registry shared with the transports
            store: State store (built from ``config.state`` when omitted)
            provider_factory: Builds a provider for a target-platform token
            environ: Environment used for secret fallbacks
            inventory_factory: Builds a repository source for an origin token
        """
        self.config = config
        self.registry = registry
        self.resolver = CredentialResolver(registry, environ)
        self.store = store or MigrationStateStore(
            config.state.state_dir, config.state.write_retries
        )
        self.sources = MigrationSourceCache(self.store)

        self.client_factory = GitHubClientFactory(config.github)

        if provider_factory is None:

            def provider_factory(token: str) -> MigrationProvider:
                return GitHubMigrationAPI(self.client_factory.create_client(token))

        if inventory_factory is None:

            def inventory_factory(
                platform: SourcePlatform, token: str
            ) -> RepositorySource:
                if platform is SourcePlatform.GITHUB:
                    return GitHubInventoryAPI(self.client_factory.create_client(token))
                return AzureDevOpsInventoryAPI(AzureDevOpsClient(config.ado, token))

        self.provider_factory = provider_factory
        self.inventory_factory = inventory_factory
        self.logger = logger.bind(component='MigrationService')

    def controller_for(
        self, session_id: Optional[str] = None
    ) -> MigrationLifecycleController:
        """Lifecycle controller acting with the caller's target token."""
        token = self.resolver.resolve(CredentialKind.GITHUB_TARGET, session_id)
        return MigrationLifecycleController(
            self.provider_factory(token),
            self.store,
            poll_interval=self.config.polling.poll_interval_seconds,
        )

    def origin_token(
        self, platform: SourcePlatform, session_id: Optional[str] = None
    ) -> str:
        """Secret used to read from the origin platform."""
        if SourcePlatform(platform) is SourcePlatform.GITHUB:
            return self.resolver.resolve(CredentialKind.GITHUB_SOURCE, session_id)
        return self.resolver.resolve(CredentialKind.ADO, session_id)

    def inventory_for(
        self, source: str, session_id: Optional[str] = None
    ) -> RepositorySource:
        """Repository source acting with the caller's origin token."""
        platform = SourcePlatform(source)
        return self.inventory_factory(platform, self.origin_token(platform, session_id))

    async def _run(
        self, operation: str, fn: Callable[[], Awaitable[OperationResult]]
    ) -> OperationResult:
        idle_ttl = self.config.session.idle_ttl_seconds
        if idle_ttl is not None:
            self.registry.reap_idle(idle_ttl)

        try:
            return await fn()
        except (GeiMigrateError, ExternalAPIError) as e:
            self.logger.warning(f'{operation} failed: {e}')
            result = e.to_result()
            kind = result.pop('kind')
            detail = result.pop('detail')
            return OperationResult.failure(kind, detail, **result)
        except ValueError as e:
            self.logger.warning(f'{operation} rejected: {e}')
            return OperationResult.failure('invalid_request', str(e))
        except Exception as e:
            self.logger.exception(f'{operation} failed unexpectedly')
            return OperationResult.failure('internal_error', str(e))

    async def check_prerequisites(
        self, session_id: Optional[str] = None
    ) -> OperationResult:
        async def run() -> OperationResult:
            report = self.resolver.check_prerequisites(session_id)
            return OperationResult.ok(ready=report.ready, **report.dict())

        return await self._run('check_prerequisites', run)

    async def migrate_repository(
        self,
        source: str,
        source_org: str,
        repo_name: str,
        target_org: str,
        target_repo_name: Optional[str] = None,
        ado_project: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> OperationResult:
        """Start migrating one repository into the target organization."""

        async def run() -> OperationResult:
            platform = SourcePlatform(source)
            final_repo_name = target_repo_name or repo_name
            org_url, repo_url = build_source_urls(
                platform, source_org, repo_name, ado_project
            )

            access_token = self.origin_token(platform, session_id)

            controller = self.controller_for(session_id)
            provider = controller.provider
            target_org_id = await provider.resolve_organization_id(target_org)

            source_id = await self.sources.ensure(
                org_url,
                lambda: provider.create_migration_source(
                    target_org_id, canonical_org_url(org_url), platform
                ),
            )

            migration_id = await controller.start(
                repo_url,
                target_org_id,
                source_id,
                final_repo_name,
                access_token,
                source_org=source_org,
                target_org=target_org,
                platform=platform,
            )

            return OperationResult.ok(
                migration_id=migration_id,
                message=(
                    f'Migration started for {repo_name} -> '
                    f'{target_org}/{final_repo_name}'
                ),
                check_status=f'Use get_migration_status with migration_id: {migration_id}',
            )

        return await self._run('migrate_repository', run)

    async def get_migration_status(
        self, migration_id: str, session_id: Optional[str] = None
    ) -> OperationResult:
        async def run() -> OperationResult:
            status = await self.controller_for(session_id).refresh_status(migration_id)
            return OperationResult.ok(**status.dict())

        return await self._run('get_migration_status', run)

    async def list_active_migrations(
        self, session_id: Optional[str] = None
    ) -> OperationResult:
        """Active migrations, refreshed when a target token is available."""

        async def run() -> OperationResult:
            try:
                controller = self.controller_for(session_id)
            except ConfigurationMissingError as e:
                self.logger.info(f'Listing stored state only: {e}')
                records = self.store.list_active()
                refreshed = False
            else:
                records = await controller.list_active(refresh=True)
                refreshed = True

            return OperationResult.ok(
                count=len(records),
                refreshed=refreshed,
                migrations=[r.to_dict() for r in records],
            )

        return await self._run('list_active_migrations', run)

    async def wait_for_migration(
        self,
        migration_id: str,
        timeout_minutes: Optional[float] = None,
        session_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult:
        """Wait for a migration to finish without ever cancelling it."""

        async def run() -> OperationResult:
            minutes = timeout_minutes
            if minutes is None:
                minutes = self.config.polling.default_timeout_minutes

            result = await self.controller_for(session_id).wait_until_terminal(
                migration_id, minutes * 60, cancel_event=cancel_event
            )

            data = result.dict()
            data['duration'] = f'{round(result.elapsed)} seconds'
            if not result.completed:
                data['message'] = (
                    f'Stopped waiting after {round(result.elapsed)} seconds. '
                    f'Migration still in progress; use abort_migration to stop it.'
                )
            return OperationResult.ok(**data)

        return await self._run('wait_for_migration', run)

    async def abort_migration(
        self, migration_id: str, session_id: Optional[str] = None
    ) -> OperationResult:
        async def run() -> OperationResult:
            confirmed = await self.controller_for(session_id).abort(migration_id)
            return OperationResult.ok(
                migration_id=migration_id,
                provider_confirmed=confirmed,
                message=f'Migration {migration_id} has been aborted',
            )

        return await self._run('abort_migration', run)

    async def get_migration_history(self, limit: int = 50) -> OperationResult:
        async def run() -> OperationResult:
            history = self.store.list_history(limit)
            return OperationResult.ok(
                count=len(history), migrations=[r.to_dict() for r in history]
            )

        return await self._run('get_migration_history', run)

    async def grant_migrator_role(
        self,
        org: str,
        actor: str,
        actor_type: str = 'USER',
        session_id: Optional[str] = None,
    ) -> OperationResult:
        async def run() -> OperationResult:
            provider = self.controller_for(session_id).provider
            granted = await provider.grant_migrator_role(org, actor, actor_type)
            return OperationResult.ok(
                granted=granted,
                message=f'Migrator role granted to {actor_type.upper()} {actor} in {org}',
            )

        return await self._run('grant_migrator_role', run)

    async def list_source_repos(
        self,
        source: str,
        org: str,
        ado_project: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> OperationResult:
        """Repositories of an origin organization (or Azure DevOps project)."""

        async def run() -> OperationResult:
            repositories = await self.inventory_for(source, session_id).list_repositories(
                org, ado_project
            )
            return OperationResult.ok(
                organization=org,
                source=SourcePlatform(source).value,
                count=len(repositories),
                repositories=[r.to_dict() for r in repositories],
            )

        return await self._run('list_source_repos', run)

    async def inventory_org(
        self, source: str, org: str, session_id: Optional[str] = None
    ) -> OperationResult:
        """Detailed inventory of an origin organization with summary figures."""

        async def run() -> OperationResult:
            inventory = await self.inventory_for(source, session_id).inventory(org)
            return OperationResult.ok(
                organization=org,
                source=inventory.platform.value,
                summary=inventory.summary(),
                projects=inventory.projects,
                repositories=[r.to_dict() for r in inventory.repositories],
            )

        return await self._run('inventory_org', run)

    async def inventory_github_org(
        self, org: str, session_id: Optional[str] = None
    ) -> OperationResult:
        return await self.inventory_org(SourcePlatform.GITHUB, org, session_id)

    async def inventory_ado_org(
        self, org: str, session_id: Optional[str] = None
    ) -> OperationResult:
        return await self.inventory_org(SourcePlatform.ADO, org, session_id)

    async def find_large_repos(
        self,
        source: str,
        org: str,
        threshold_mb: float = 1000,
        session_id: Optional[str] = None,
    ) -> OperationResult:
        """Repositories larger than ``threshold_mb``, largest first."""

        async def run() -> OperationResult:
            if threshold_mb < 0:
                raise ValueError('threshold_mb must not be negative')

            repositories = await self.inventory_for(source, session_id).list_repositories(
                org
            )
            large = find_large(repositories, threshold_mb)
            return OperationResult.ok(
                organization=org,
                threshold=f'{threshold_mb} MB',
                count=len(large),
                repositories=[r.to_dict() for r in large],
            )

        return await self._run('find_large_repos', run)

    async def find_stale_repos(
        self,
        source: str,
        org: str,
        days_inactive: float = 365,
        session_id: Optional[str] = None,
    ) -> OperationResult:
        """Repositories without a push or commit for ``days_inactive`` days.

        Azure DevOps repositories need a commit lookup each, so this runs a
        full inventory there.
        """

        async def run() -> OperationResult:
            if days_inactive < 0:
                raise ValueError('days_inactive must not be negative')

            platform = SourcePlatform(source)
            repo_source = self.inventory_for(platform, session_id)
            if platform is SourcePlatform.GITHUB:
                repositories = await repo_source.list_repositories(org)
            else:
                repositories = (await repo_source.inventory(org)).repositories

            stale = find_stale(repositories, days_inactive)
            return OperationResult.ok(
                organization=org,
                threshold=f'{days_inactive} days inactive',
                count=len(stale),
                repositories=[r.to_dict() for r in stale],
            )

        return await self._run('find_stale_repos', run)
