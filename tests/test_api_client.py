"""Tests for GitHub GraphQL client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import aiohttp
import pytest
import requests

from gei_migrate.api.client import APIResponse, GitHubClient, GitHubClientFactory
from gei_migrate.api.exceptions import (
    AuthenticationError,
    ExternalAPIError,
    GraphQLError,
    RateLimitError,
)
from gei_migrate.api.rate_limiter import RateLimiter
from gei_migrate.config.config import GitHubAPIConfig


def make_response(status_code=200, payload=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload
    response.content = b'{}' if payload is not None else b''
    response.text = ''
    return response


class TestAPIResponse:
    """Test API response model."""

    def test_api_response_creation(self):
        """Test API response creation."""
        response = APIResponse(
            status_code=200,
            data={'viewer': {'login': 'octocat'}},
            headers={'Content-Type': 'application/json'},
            success=True,
        )

        assert response.status_code == 200
        assert response.data == {'viewer': {'login': 'octocat'}}
        assert response.success is True


class TestGitHubClient:
    """Test GitHub GraphQL client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = GitHubAPIConfig(timeout=15)

    def test_client_initialization(self):
        """Test client initialization."""
        client = GitHubClient(self.config, 'test-token')

        assert client.config == self.config
        assert client.url == 'https://api.github.com/graphql'
        assert client.session.headers['Authorization'] == 'token test-token'
        assert client.session.headers['User-Agent'].startswith('gei-migrate/')
        assert client.token == 'test-token'

    def test_client_initialization_no_token(self):
        """Test client initialization without a token."""
        with pytest.raises(AuthenticationError):
            GitHubClient(self.config, '')

    def test_repr_hides_token(self):
        client = GitHubClient(self.config, 'super-secret')

        assert 'super-secret' not in repr(client)

    @patch('requests.Session.post')
    def test_execute_success(self, mock_post):
        """Test successful GraphQL request."""
        mock_post.return_value = make_response(
            payload={'data': {'viewer': {'login': 'octocat'}}}
        )

        client = GitHubClient(self.config, 'test-token')
        response = client.execute('query { viewer { login } }', {'a': 1})

        assert response.success is True
        assert response.data == {'viewer': {'login': 'octocat'}}
        mock_post.assert_called_once_with(
            'https://api.github.com/graphql',
            json={'query': 'query { viewer { login } }', 'variables': {'a': 1}},
            timeout=15,
        )

    @patch('requests.Session.post')
    def test_execute_401(self, mock_post):
        """Test request with authentication error."""
        mock_post.return_value = make_response(status_code=401)

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(AuthenticationError) as exc_info:
            client.execute('query { viewer { login } }')

        assert exc_info.value.status_code == 401

    @patch('requests.Session.post')
    def test_execute_429(self, mock_post):
        """Test request with rate limit error."""
        mock_post.return_value = make_response(
            status_code=429, headers={'Retry-After': '120'}
        )

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(RateLimitError) as exc_info:
            client.execute('query { viewer { login } }')

        assert exc_info.value.retry_after == 120
        assert exc_info.value.to_result()['retry_after'] == 120

    @patch('requests.Session.post')
    def test_execute_403_rate_limited(self, mock_post):
        """Test secondary rate limiting reported as 403."""
        mock_post.return_value = make_response(
            status_code=403, headers={'X-RateLimit-Remaining': '0'}
        )

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(RateLimitError):
            client.execute('query { viewer { login } }')

    def test_rate_limit_headers_are_case_insensitive(self):
        with pytest.raises(RateLimitError) as exc_info:
            GitHubClient._handle_response(
                403, {'x-ratelimit-remaining': '0', 'retry-after': '45'}, None
            )

        assert exc_info.value.retry_after == 45

    @patch('requests.Session.post')
    def test_execute_server_error(self, mock_post):
        """Test request with a server error."""
        mock_post.return_value = make_response(
            status_code=502, payload={'message': 'Bad Gateway'}
        )

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(ExternalAPIError) as exc_info:
            client.execute('query { viewer { login } }')

        assert exc_info.value.status_code == 502
        assert 'Bad Gateway' in str(exc_info.value)

    @patch('requests.Session.post')
    def test_execute_graphql_errors(self, mock_post):
        """Test that an errors payload raises even with HTTP 200."""
        mock_post.return_value = make_response(
            payload={
                'data': None,
                'errors': [{'type': 'NOT_FOUND', 'message': 'Could not resolve'}],
            }
        )

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(GraphQLError) as exc_info:
            client.execute('query { node(id: "x") { id } }')

        assert exc_info.value.not_found is True
        assert 'Could not resolve' in str(exc_info.value)

    def test_graphql_error_not_found_requires_every_error(self):
        error = GraphQLError(
            [{'type': 'NOT_FOUND', 'message': 'a'}, {'type': 'FORBIDDEN', 'message': 'b'}]
        )

        assert error.not_found is False
        assert error.to_result()['kind'] == 'external_api_error'

    @patch('requests.Session.post')
    def test_execute_malformed_body(self, mock_post):
        mock_post.return_value = make_response(payload=None)

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(ExternalAPIError):
            client.execute('query { viewer { login } }')

    @patch('requests.Session.post')
    def test_execute_network_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('refused')

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(ExternalAPIError) as exc_info:
            client.execute('query { viewer { login } }')

        assert 'Network error' in str(exc_info.value)

    @patch('requests.Session.post')
    def test_execute_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout('read timed out')

        client = GitHubClient(self.config, 'test-token')

        with pytest.raises(ExternalAPIError) as exc_info:
            client.execute('query { viewer { login } }')

        assert str(exc_info.value) == 'Request timed out after 15s'

    @patch('requests.Session.post')
    def test_test_connection_success(self, mock_post):
        """Test successful connection test."""
        mock_post.return_value = make_response(
            payload={'data': {'viewer': {'login': 'octocat'}}}
        )

        client = GitHubClient(self.config, 'test-token')

        assert client.test_connection() is True
        mock_post.assert_called_once()

    @patch('requests.Session.post')
    def test_test_connection_failure(self, mock_post):
        """Test failed connection test."""
        mock_post.side_effect = requests.RequestException('Connection failed')

        client = GitHubClient(self.config, 'test-token')

        assert client.test_connection() is False

    def test_context_manager(self):
        """Test client as context manager."""
        with patch.object(GitHubClient, 'close') as mock_close:
            with GitHubClient(self.config, 'test-token') as client:
                assert isinstance(client, GitHubClient)
            mock_close.assert_called_once()


class TestGitHubClientFactory:
    """Test GitHub client factory."""

    def test_create_client(self):
        """Test client creation with token."""
        config = GitHubAPIConfig()

        client = GitHubClientFactory(config).create_client('tok')

        assert isinstance(client, GitHubClient)
        assert client.config == config
        assert client.token == 'tok'

    def test_clients_do_not_share_tokens(self):
        factory = GitHubClientFactory(GitHubAPIConfig())

        a = factory.create_client('tok-A')
        b = factory.create_client('tok-B')

        assert a.session.headers['Authorization'] == 'token tok-A'
        assert b.session.headers['Authorization'] == 'token tok-B'

    def test_clients_share_limiter_per_token(self):
        factory = GitHubClientFactory(GitHubAPIConfig())

        first = factory.create_client('tok-A')
        second = factory.create_client('tok-A')
        other = factory.create_client('tok-B')

        assert first.rate_limiter is second.rate_limiter
        assert first.rate_limiter is not other.rate_limiter

    def test_sync_session_opened_on_demand(self):
        client = GitHubClientFactory(GitHubAPIConfig()).create_client('tok')

        assert client._session is None
        client.close()
        assert client.session.headers['Authorization'] == 'token tok'

    def test_create_client_no_token(self):
        """Test client creation without authentication."""
        with pytest.raises(AuthenticationError):
            GitHubClientFactory(GitHubAPIConfig()).create_client(None)


def make_async_session(status=200, text='', headers=None):
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.headers = headers or {}
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__.return_value = mock_response
    mock_response.__aexit__.return_value = None

    mock_session = MagicMock()
    mock_session.post.return_value = mock_response
    mock_session.__aenter__.return_value = mock_session
    mock_session.__aexit__.return_value = None
    return mock_session


class TestAsyncMethods:
    """Test asynchronous API methods."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = GitHubAPIConfig(rate_limit_per_second=100)

    @pytest.mark.asyncio
    async def test_execute_async_success(self):
        """Test successful async GraphQL request."""
        mock_session = make_async_session(
            text='{"data": {"organization": {"id": "O_1"}}}'
        )

        with patch('aiohttp.ClientSession', return_value=mock_session) as session_cls:
            client = GitHubClient(self.config, 'test-token')
            response = await client.execute_async('query', {'login': 'orgY'})

        assert response.success is True
        assert response.data == {'organization': {'id': 'O_1'}}
        headers = session_cls.call_args.kwargs['headers']
        assert headers['Authorization'] == 'token test-token'
        mock_session.post.assert_called_once_with(
            'https://api.github.com/graphql',
            json={'query': 'query', 'variables': {'login': 'orgY'}},
        )

    @pytest.mark.asyncio
    async def test_execute_async_unauthorized(self):
        """Test async request with authentication error."""
        mock_session = make_async_session(status=401, text='Bad credentials')

        with patch('aiohttp.ClientSession', return_value=mock_session):
            client = GitHubClient(self.config, 'test-token')

            with pytest.raises(AuthenticationError):
                await client.execute_async('query')

    @pytest.mark.asyncio
    async def test_execute_async_network_error(self):
        mock_session = make_async_session()
        mock_session.post.side_effect = aiohttp.ClientConnectionError('reset')

        with patch('aiohttp.ClientSession', return_value=mock_session):
            client = GitHubClient(self.config, 'test-token')

            with pytest.raises(ExternalAPIError):
                await client.execute_async('query')

    @pytest.mark.asyncio
    async def test_execute_async_timeout(self):
        mock_session = make_async_session()
        mock_session.post.side_effect = asyncio.TimeoutError()

        with patch('aiohttp.ClientSession', return_value=mock_session):
            client = GitHubClient(GitHubAPIConfig(timeout=5), 'test-token')

            with pytest.raises(ExternalAPIError) as exc_info:
                await client.execute_async('query')

        assert exc_info.value.message == 'Request timed out after 5s'
        assert exc_info.value.to_result()['kind'] == 'external_api_error'

    @pytest.mark.asyncio
    async def test_execute_async_rate_limited_lowercase_headers(self):
        mock_session = make_async_session(
            status=403, headers={'x-ratelimit-remaining': '0', 'retry-after': '10'}
        )

        with patch('aiohttp.ClientSession', return_value=mock_session):
            client = GitHubClient(self.config, 'test-token')

            with pytest.raises(RateLimitError) as exc_info:
                await client.execute_async('query')

        assert exc_info.value.retry_after == 10


class TestRateLimiter:
    """Test request pacing."""

    def test_time_until_next_request(self):
        now = [0.0]
        limiter = RateLimiter(2.0, clock=lambda: now[0])
        limiter.tokens = 0.0

        assert limiter.time_until_next_request() == pytest.approx(0.5)

        now[0] = 1.0
        assert limiter.time_until_next_request() == 0.0

    @pytest.mark.asyncio
    async def test_acquire_consumes_tokens(self):
        limiter = RateLimiter(5.0)

        await limiter.acquire()
        await limiter.acquire()

        assert limiter.tokens <= 3.1
