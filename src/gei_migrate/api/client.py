"""GitHub GraphQL client implementation."""

import asyncio
import hashlib
import json
import threading
from typing import Any, Dict, Optional

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel
from requests.structures import CaseInsensitiveDict

from .. import __version__
from ..config.config import GitHubAPIConfig
from .exceptions import (
    AuthenticationError,
    ExternalAPIError,
    GraphQLError,
    RateLimitError,
)
from .rate_limiter import RateLimiter

USER_AGENT = f'gei-migrate/{__version__}'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


class GitHubClient:
    """GitHub GraphQL client bound to a single token.

    Clients are cheap and created per call with the token resolved for the
    caller's session, so one client never serves two tenants. Clients built
    by :class:`GitHubClientFactory` share one rate limiter per token.
    """

    def __init__(
        self,
        config: GitHubAPIConfig,
        token: str,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initialize GitHub client.

        Args:
            config: GitHub API configuration
            token: Personal access token used for every request
            rate_limiter: Limiter shared with other clients of the same token
        """
        if not token:
            raise AuthenticationError('No authentication token provided')

        self.config = config
        self.url = config.graphql_url
        self._token = token
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit_per_second)
        self._session: Optional[requests.Session] = None

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'token {self._token}',
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }

    @property
    def session(self) -> requests.Session:
        """Blocking HTTP session, opened on first synchronous request."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(self._headers())
        return self._session

    @property
    def token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return f'GitHubClient(url={self.url!r})'

    @staticmethod
    def _handle_response(
        status_code: int,
        headers: Dict[str, str],
        payload: Any,
        text: str = '',
    ) -> APIResponse:
        """Convert a raw GraphQL HTTP response to an APIResponse.

        Args:
            status_code: HTTP status code
            headers: Response headers, looked up case-insensitively
            payload: Decoded JSON body, or None
            text: Raw body, used in error messages

        Returns:
            Standardized API response whose ``data`` is the GraphQL ``data``

        Raises:
            ExternalAPIError: For HTTP and GraphQL errors
        """
        headers = CaseInsensitiveDict(headers)

        if status_code == 429 or (
            status_code == 403 and headers.get('X-RateLimit-Remaining') == '0'
        ):
            retry_after = int(headers.get('Retry-After', 60))
            raise RateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status_code,
            )

        if status_code == 401:
            raise AuthenticationError('Authentication failed', status_code=401)

        if status_code >= 400:
            if isinstance(payload, dict):
                message = payload.get('message', f'HTTP {status_code}')
            else:
                message = f'HTTP {status_code}: {text}'
            raise ExternalAPIError(
                f'API request failed: {message}',
                status_code=status_code,
                response_data=payload if isinstance(payload, dict) else None,
            )

        if not isinstance(payload, dict):
            raise ExternalAPIError(
                'Malformed GraphQL response', status_code=status_code
            )

        if payload.get('errors'):
            raise GraphQLError(
                payload['errors'], status_code=status_code, response_data=payload
            )

        return APIResponse(
            status_code=status_code,
            data=payload.get('data'),
            headers=dict(headers),
            success=True,
        )

    def execute(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Run a GraphQL operation synchronously.

        Args:
            query: GraphQL document
            variables: Operation variables

        Returns:
            API response
        """
        try:
            response = self.session.post(
                self.url,
                json={'query': query, 'variables': variables or {}},
                timeout=self.config.timeout,
            )
        except requests.Timeout as e:
            logger.error(f'GraphQL request timed out after {self.config.timeout}s')
            raise ExternalAPIError(
                f'Request timed out after {self.config.timeout}s'
            ) from e
        except requests.RequestException as e:
            logger.error(f'Network error during GraphQL request: {e}')
            raise ExternalAPIError(f'Network error: {e}') from e

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        return self._handle_response(
            response.status_code, response.headers, payload, response.text
        )

    async def execute_async(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Run a GraphQL operation without blocking the event loop.

        Args:
            query: GraphQL document
            variables: Operation variables

        Returns:
            API response
        """
        await self.rate_limiter.acquire()

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        async with aiohttp.ClientSession(
            headers=self._headers(), timeout=timeout
        ) as session:
            try:
                async with session.post(
                    self.url, json={'query': query, 'variables': variables or {}}
                ) as response:
                    text = await response.text()
                    try:
                        payload = json.loads(text) if text else None
                    except ValueError:
                        payload = None

                    return self._handle_response(
                        response.status, response.headers, payload, text
                    )
            except asyncio.TimeoutError as e:
                logger.error(
                    f'GraphQL request timed out after {self.config.timeout}s'
                )
                raise ExternalAPIError(
                    f'Request timed out after {self.config.timeout}s'
                ) from e
            except aiohttp.ClientError as e:
                logger.error(f'Network error during GraphQL request: {e}')
                raise ExternalAPIError(f'Network error: {e}') from e

    def test_connection(self) -> bool:
        """Check that the token is accepted.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.execute('query { viewer { login } }')
            return response.success
        except ExternalAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class GitHubClientFactory:
    """Factory for creating GitHub API clients.

    The factory outlives individual requests and keeps one rate limiter per
    token, so ``rate_limit_per_second`` holds across every client it builds.
    Limiters are keyed by a digest of the token.
    """

    def __init__(self, config: GitHubAPIConfig):
        self.config = config
        self._limiters: Dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def limiter_for(self, token: str) -> RateLimiter:
        key = hashlib.sha256(token.encode('utf-8')).hexdigest()
        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = RateLimiter(self.config.rate_limit_per_second)
                self._limiters[key] = limiter
            return limiter

    def create_client(self, token: str) -> GitHubClient:
        """Create a client for the given token.

        Raises:
            AuthenticationError: If the token is empty
        """
        if not token:
            raise AuthenticationError('No authentication token provided')
        return GitHubClient(self.config, token, rate_limiter=self.limiter_for(token))
