"""Azure DevOps REST access for origin repository inventory."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp
from loguru import logger
from requests.structures import CaseInsensitiveDict

from ..config.config import AzureDevOpsConfig
from ..exceptions import NotFoundError, OrganizationNotFoundError
from ..models.migration import SourcePlatform
from ..models.repository import OrganizationInventory, RepositoryInfo
from .client import USER_AGENT
from .exceptions import AuthenticationError, ExternalAPIError, RateLimitError
from .provider import RepositorySource

CONTINUATION_HEADER = 'x-ms-continuationtoken'


class AzureDevOpsClient:
    """Azure DevOps REST client bound to a single personal access token."""

    def __init__(self, config: AzureDevOpsConfig, token: str):
        """Initialize Azure DevOps client.

        Args:
            config: Azure DevOps API configuration
            token: Personal access token, sent as the Basic auth password
        """
        if not token:
            raise AuthenticationError('No authentication token provided')

        self.config = config
        self._token = token

    def __repr__(self) -> str:
        return f'AzureDevOpsClient(base_url={self.config.base_url!r})'

    def _url(self, org: str, path: str) -> str:
        return f'{self.config.base_url}/{quote(org)}/{path}'

    @staticmethod
    def _handle_response(
        status_code: int, headers: Dict[str, str], text: str, scope: str
    ) -> Dict[str, Any]:
        """Decode a REST response or raise the matching error.

        Raises:
            AuthenticationError: On 401, or on the 203 sign-in page Azure
                DevOps serves for a rejected token
            OrganizationNotFoundError: On 404
            ExternalAPIError: For other HTTP errors and malformed bodies
        """
        headers = CaseInsensitiveDict(headers)

        if status_code in (203, 401):
            raise AuthenticationError(
                'Azure DevOps rejected the personal access token',
                status_code=status_code,
            )

        if status_code == 429:
            retry_after = int(headers.get('Retry-After', 60))
            raise RateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status_code,
            )

        try:
            payload = json.loads(text) if text else None
        except ValueError:
            payload = None

        if status_code == 404:
            raise OrganizationNotFoundError(scope)

        if status_code >= 400:
            message = text
            if isinstance(payload, dict):
                message = payload.get('message', text)
            raise ExternalAPIError(
                f'ADO API error: {status_code} {message}'.strip(),
                status_code=status_code,
                response_data=payload if isinstance(payload, dict) else None,
            )

        if not isinstance(payload, dict):
            raise ExternalAPIError(
                'Malformed Azure DevOps response', status_code=status_code
            )
        return payload

    async def request(
        self,
        org: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        scope: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, str]]:
        """GET ``path`` under an organization.

        Args:
            org: Organization name
            path: Path below the organization
            params: Query parameters besides ``api-version``
            scope: Name reported when the resource is not found

        Returns:
            Decoded body and response headers
        """
        query = {'api-version': self.config.api_version}
        query.update(params or {})
        scope = scope or org

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        async with aiohttp.ClientSession(
            auth=aiohttp.BasicAuth('', self._token),
            headers={'Accept': 'application/json', 'User-Agent': USER_AGENT},
            timeout=timeout,
        ) as session:
            try:
                async with session.get(self._url(org, path), params=query) as response:
                    text = await response.text()
                    headers = dict(response.headers)
                    payload = self._handle_response(
                        response.status, headers, text, scope
                    )
                    return payload, headers
            except asyncio.TimeoutError as e:
                logger.error(
                    f'Azure DevOps request timed out after {self.config.timeout}s'
                )
                raise ExternalAPIError(
                    f'Request timed out after {self.config.timeout}s'
                ) from e
            except aiohttp.ClientError as e:
                logger.error(f'Network error during Azure DevOps request: {e}')
                raise ExternalAPIError(f'Network error: {e}') from e

    async def get(
        self,
        org: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        scope: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload, _ = await self.request(org, path, params, scope)
        return payload

    async def get_all(
        self,
        org: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        scope: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Collect ``value`` items across continuation-token pages."""
        items: List[Dict[str, Any]] = []
        params = dict(params or {})

        while True:
            payload, headers = await self.request(org, path, params, scope)
            items.extend(payload.get('value') or [])

            token = CaseInsensitiveDict(headers).get(CONTINUATION_HEADER)
            if not token:
                break
            params['continuationToken'] = token

        return items


def _branch_name(ref: Optional[str]) -> Optional[str]:
    if ref and ref.startswith('refs/heads/'):
        return ref[len('refs/heads/'):]
    return ref or None


def _ado_repository(item: Dict[str, Any]) -> RepositoryInfo:
    return RepositoryInfo(
        id=item.get('id'),
        name=item['name'],
        platform=SourcePlatform.ADO,
        url=item.get('remoteUrl') or item.get('webUrl'),
        project=(item.get('project') or {}).get('name'),
        archived=bool(item.get('isDisabled')),
        size_bytes=item.get('size') or 0,
        default_branch=_branch_name(item.get('defaultBranch')),
    )


class AzureDevOpsInventoryAPI(RepositorySource):
    """Repository listing for an Azure DevOps organization."""

    def __init__(self, client: AzureDevOpsClient):
        self.client = client
        self.logger = logger.bind(component='AzureDevOpsInventoryAPI')

    async def list_projects(self, org: str) -> List[str]:
        projects = await self.client.get_all(org, '_apis/projects')
        return [p['name'] for p in projects]

    async def list_repositories(
        self, org: str, project: Optional[str] = None
    ) -> List[RepositoryInfo]:
        """Repositories of one project, or of the whole organization."""
        path = '_apis/git/repositories'
        scope = org
        if project:
            path = f'{quote(project)}/{path}'
            scope = f'{org}/{project}'
        items = await self.client.get_all(org, path, scope=scope)
        return [_ado_repository(item) for item in items]

    async def last_commit_date(
        self, org: str, repository: RepositoryInfo
    ) -> Optional[str]:
        """Committer date of the newest commit, or None when unavailable.

        A failed lookup is logged and leaves the date unknown.
        """
        path = (
            f'{quote(repository.project or "")}/_apis/git/repositories/'
            f'{repository.id}/commits'
        )
        try:
            payload = await self.client.get(org, path, {'$top': 1})
        except (ExternalAPIError, NotFoundError) as e:
            self.logger.warning(f'No commit date for {repository.name}: {e}')
            return None

        commits = payload.get('value') or []
        if not commits:
            return None
        return (commits[0].get('committer') or {}).get('date')

    async def inventory(self, org: str) -> OrganizationInventory:
        projects = await self.list_projects(org)
        per_project = await asyncio.gather(
            *(self.list_repositories(org, project) for project in projects)
        )
        repositories = [repo for repos in per_project for repo in repos]

        semaphore = asyncio.Semaphore(self.client.config.max_concurrent_requests)

        async def with_activity(repository: RepositoryInfo) -> RepositoryInfo:
            async with semaphore:
                date = await self.last_commit_date(org, repository)
            if date is None:
                return repository
            return RepositoryInfo(**{**repository.dict(), 'last_activity': date})

        detailed = await asyncio.gather(*(with_activity(r) for r in repositories))
        self.logger.info(
            f'Inventoried {len(detailed)} repositories in {len(projects)} projects of {org}'
        )
        return OrganizationInventory(
            organization=org,
            platform=SourcePlatform.ADO,
            projects=projects,
            repositories=list(detailed),
        )
