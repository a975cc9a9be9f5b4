"""Shared fixtures."""

import itertools
from typing import Dict, List

import pytest

from gei_migrate.api.provider import MigrationProvider, RepositorySource
from gei_migrate.exceptions import MigrationNotFoundError, OrganizationNotFoundError
from gei_migrate.models.migration import MigrationState, MigrationStatus, SourcePlatform
from gei_migrate.models.repository import OrganizationInventory, RepositoryInfo
from gei_migrate.state.store import MigrationStateStore


class FakeProvider(MigrationProvider):
    """In-memory migration provider.

    ``script`` maps a migration id to the states successive status calls
    return; the last state repeats.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.script: Dict[str, List[MigrationState]] = {}
        self.started: List[dict] = []
        self.sources_created: List[str] = []
        self.aborted: List[str] = []
        self.status_calls: List[str] = []
        self.abort_result = True
        self.status_error = None

    async def create_migration_source(self, target_org_id, origin_org_url, platform):
        self.sources_created.append(origin_org_url)
        return f'MS_{len(self.sources_created)}'

    async def start_migration(
        self, source_id, target_org_id, origin_repo_url, target_repo_name, access_token
    ):
        migration_id = f'm-{next(self._ids)}'
        self.script.setdefault(migration_id, [MigrationState.QUEUED])
        self.started.append(
            {
                'id': migration_id,
                'source_id': source_id,
                'target_org_id': target_org_id,
                'origin_repo_url': origin_repo_url,
                'target_repo_name': target_repo_name,
                'access_token': access_token,
            }
        )
        return migration_id

    async def get_migration_status(self, migration_id):
        self.status_calls.append(migration_id)
        if self.status_error is not None:
            raise self.status_error
        if migration_id not in self.script:
            raise MigrationNotFoundError(migration_id)

        states = self.script[migration_id]
        state = states.pop(0) if len(states) > 1 else states[0]
        return MigrationStatus(id=migration_id, state=state, repository_name='repo')

    async def abort_migration(self, migration_id):
        self.aborted.append(migration_id)
        return self.abort_result

    async def resolve_organization_id(self, org_name):
        return f'ORG_{org_name}'

    async def grant_migrator_role(self, org_name, actor, actor_type):
        return True


class FakeInventory(RepositorySource):
    """In-memory repository source.

    ``repositories`` maps an organization to its repositories; unknown
    organizations are not found.
    """

    def __init__(self):
        self.platform = SourcePlatform.GITHUB
        self.repositories: Dict[str, List[RepositoryInfo]] = {}
        self.projects: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []

    def _lookup(self, org):
        if org not in self.repositories:
            raise OrganizationNotFoundError(org)
        return list(self.repositories[org])

    async def list_repositories(self, org, project=None):
        self.calls.append(('list', org, project))
        repositories = self._lookup(org)
        if project:
            repositories = [r for r in repositories if r.project == project]
        return repositories

    async def inventory(self, org):
        self.calls.append(('inventory', org, None))
        return OrganizationInventory(
            organization=org,
            platform=self.platform,
            projects=self.projects.get(org, []),
            repositories=self._lookup(org),
        )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def store(tmp_path):
    return MigrationStateStore(str(tmp_path / 'state'))
