"""GitHub Enterprise Importer operations and repository listing over GraphQL."""

import time
from typing import Any, Dict, List, Optional

from loguru import logger

from ..exceptions import MigrationNotFoundError, OrganizationNotFoundError
from ..models.migration import MigrationStatus, SourcePlatform
from ..models.repository import OrganizationInventory, RepositoryInfo
from .client import GitHubClient
from .exceptions import ExternalAPIError, GraphQLError
from .provider import MigrationProvider, RepositorySource

ORGANIZATION_ID_QUERY = """
query($org: String!) {
  organization(login: $org) { id }
}
"""

CREATE_MIGRATION_SOURCE_MUTATION = """
mutation($ownerId: ID!, $name: String!, $sourceUrl: String!, $sourceType: MigrationSourceType!) {
  createMigrationSource(input: {
    ownerId: $ownerId
    name: $name
    url: $sourceUrl
    type: $sourceType
  }) {
    migrationSource { id }
  }
}
"""

START_REPOSITORY_MIGRATION_MUTATION = """
mutation($sourceId: ID!, $ownerId: ID!, $sourceRepoUrl: URI!, $repoName: String!, $accessToken: String!, $githubPat: String!) {
  startRepositoryMigration(input: {
    sourceId: $sourceId
    ownerId: $ownerId
    sourceRepositoryUrl: $sourceRepoUrl
    repositoryName: $repoName
    accessToken: $accessToken
    githubPat: $githubPat
    continueOnError: true
  }) {
    repositoryMigration { id state }
  }
}
"""

MIGRATION_STATUS_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on RepositoryMigration {
      id
      state
      repositoryName
      createdAt
      failureReason
    }
  }
}
"""

ABORT_MIGRATION_MUTATION = """
mutation($id: ID!) {
  abortRepositoryMigration(input: { migrationId: $id }) {
    success
  }
}
"""

GRANT_MIGRATOR_ROLE_MUTATION = """
mutation($orgId: ID!, $actor: String!, $actorType: ActorType!) {
  grantMigratorRole(input: {
    organizationId: $orgId
    actor: $actor
    actorType: $actorType
  }) {
    success
  }
}
"""

REPOSITORIES_QUERY = """
query($org: String!, $cursor: String) {
  organization(login: $org) {
    repositories(first: 100, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes {
        name
        nameWithOwner
        url
        isArchived
        diskUsage
        pushedAt
        description
      }
    }
  }
}
"""

REPOSITORIES_DETAILED_QUERY = """
query($org: String!, $cursor: String) {
  organization(login: $org) {
    repositories(first: 100, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes {
        name
        nameWithOwner
        url
        isArchived
        diskUsage
        pushedAt
        description
        defaultBranchRef { name }
        languages(first: 5) { nodes { name } }
        isPrivate
        isFork
      }
    }
  }
}
"""


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict) or data.get(key) is None:
            raise ExternalAPIError(
                f'Unexpected GraphQL response: missing {".".join(path)}',
                response_data=data if isinstance(data, dict) else None,
            )
        data = data[key]
    return data


class GitHubMigrationAPI(MigrationProvider):
    """Migration provider backed by the GitHub GraphQL API.

    Every call authenticates with the target-organization token the client
    was created with.
    """

    def __init__(self, client: GitHubClient):
        self.client = client
        self.logger = logger.bind(component='GitHubMigrationAPI')

    async def _execute(self, query: str, variables: Dict[str, Any]) -> Any:
        response = await self.client.execute_async(query, variables)
        return response.data

    async def resolve_organization_id(self, org_name: str) -> str:
        data = await self._execute(ORGANIZATION_ID_QUERY, {'org': org_name})
        return _dig(data, 'organization', 'id')

    async def create_migration_source(
        self, target_org_id: str, origin_org_url: str, platform: SourcePlatform
    ) -> str:
        platform = SourcePlatform(platform)
        data = await self._execute(
            CREATE_MIGRATION_SOURCE_MUTATION,
            {
                'ownerId': target_org_id,
                'name': f'migration-source-{int(time.time() * 1000)}',
                'sourceUrl': origin_org_url,
                'sourceType': platform.source_type,
            },
        )
        source_id = _dig(data, 'createMigrationSource', 'migrationSource', 'id')
        self.logger.info(f'Created migration source {source_id} for {origin_org_url}')
        return source_id

    async def start_migration(
        self,
        source_id: str,
        target_org_id: str,
        origin_repo_url: str,
        target_repo_name: str,
        access_token: str,
    ) -> str:
        data = await self._execute(
            START_REPOSITORY_MIGRATION_MUTATION,
            {
                'sourceId': source_id,
                'ownerId': target_org_id,
                'sourceRepoUrl': origin_repo_url,
                'repoName': target_repo_name,
                'accessToken': access_token,
                'githubPat': self.client.token,
            },
        )
        return _dig(data, 'startRepositoryMigration', 'repositoryMigration', 'id')

    async def get_migration_status(self, migration_id: str) -> MigrationStatus:
        try:
            data = await self._execute(MIGRATION_STATUS_QUERY, {'id': migration_id})
        except GraphQLError as e:
            if e.not_found:
                raise MigrationNotFoundError(migration_id) from e
            raise

        node = (data or {}).get('node')
        if not node:
            raise MigrationNotFoundError(migration_id)

        try:
            return MigrationStatus(
                id=node['id'],
                state=node['state'],
                repository_name=node.get('repositoryName'),
                created_at=node.get('createdAt'),
                failure_reason=node.get('failureReason'),
            )
        except (KeyError, ValueError) as e:
            raise ExternalAPIError(
                f'Unexpected migration state {node.get("state")!r} for {migration_id}',
                response_data=data,
            ) from e

    async def abort_migration(self, migration_id: str) -> bool:
        try:
            data = await self._execute(ABORT_MIGRATION_MUTATION, {'id': migration_id})
        except GraphQLError as e:
            if e.not_found:
                raise MigrationNotFoundError(migration_id) from e
            raise

        payload = (data or {}).get('abortRepositoryMigration') or {}
        return bool(payload.get('success'))

    async def grant_migrator_role(
        self, org_name: str, actor: str, actor_type: str
    ) -> bool:
        actor_type = actor_type.upper()
        if actor_type not in ('USER', 'TEAM'):
            raise ValueError(f'actor_type must be USER or TEAM, got {actor_type}')

        org_id = await self.resolve_organization_id(org_name)
        data = await self._execute(
            GRANT_MIGRATOR_ROLE_MUTATION,
            {'orgId': org_id, 'actor': actor, 'actorType': actor_type},
        )
        payload = (data or {}).get('grantMigratorRole') or {}
        return bool(payload.get('success'))


def _github_repository(node: Dict[str, Any]) -> RepositoryInfo:
    branch = node.get('defaultBranchRef') or {}
    languages = (node.get('languages') or {}).get('nodes') or []
    return RepositoryInfo(
        name=node['name'],
        platform=SourcePlatform.GITHUB,
        url=node.get('url'),
        description=node.get('description'),
        archived=bool(node.get('isArchived')),
        private=node.get('isPrivate'),
        fork=node.get('isFork'),
        # diskUsage is reported in kilobytes
        size_bytes=(node.get('diskUsage') or 0) * 1024,
        last_activity=node.get('pushedAt'),
        default_branch=branch.get('name'),
        languages=[language['name'] for language in languages],
    )


class GitHubInventoryAPI(RepositorySource):
    """Repository listing for a GitHub origin organization.

    The client is created with the origin-organization token.
    """

    def __init__(self, client: GitHubClient):
        self.client = client
        self.logger = logger.bind(component='GitHubInventoryAPI')

    async def _fetch_all(self, query: str, org: str) -> List[RepositoryInfo]:
        repositories: List[RepositoryInfo] = []
        cursor = None

        while True:
            try:
                response = await self.client.execute_async(
                    query, {'org': org, 'cursor': cursor}
                )
            except GraphQLError as e:
                if e.not_found:
                    raise OrganizationNotFoundError(org) from e
                raise

            organization = (response.data or {}).get('organization')
            if not organization:
                raise OrganizationNotFoundError(org)

            page = _dig(organization, 'repositories')
            repositories.extend(_github_repository(n) for n in page.get('nodes') or [])

            page_info = page.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                break
            cursor = page_info.get('endCursor')

        self.logger.info(f'Retrieved {len(repositories)} repositories from {org}')
        return repositories

    async def list_repositories(
        self, org: str, project: Optional[str] = None
    ) -> List[RepositoryInfo]:
        if project:
            raise ValueError('project applies to Azure DevOps organizations only')
        return await self._fetch_all(REPOSITORIES_QUERY, org)

    async def inventory(self, org: str) -> OrganizationInventory:
        repositories = await self._fetch_all(REPOSITORIES_DETAILED_QUERY, org)
        return OrganizationInventory(
            organization=org,
            platform=SourcePlatform.GITHUB,
            repositories=repositories,
        )
