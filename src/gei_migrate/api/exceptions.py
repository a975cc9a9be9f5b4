"""GitHub API exceptions."""

from typing import Any, Dict, List, Optional


class ExternalAPIError(Exception):
    """Base exception for origin or target platform API errors."""

    kind = 'external_api_error'

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize external API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data

    def to_result(self) -> Dict[str, Any]:
        """Render the error as a structured result payload."""
        return {
            'kind': self.kind,
            'detail': self.message,
            'status_code': self.status_code,
        }


class AuthenticationError(ExternalAPIError):
    """The platform rejected the supplied credentials."""

    pass


class RateLimitError(ExternalAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    def to_result(self) -> Dict[str, Any]:
        result = super().to_result()
        result['retry_after'] = self.retry_after
        return result


class GraphQLError(ExternalAPIError):
    """The GraphQL endpoint answered with an ``errors`` payload."""

    def __init__(self, errors: List[Dict[str, Any]], **kwargs):
        messages = '; '.join(e.get('message', 'unknown error') for e in errors)
        super().__init__(f'GraphQL request failed: {messages}', **kwargs)
        self.errors = errors

    @property
    def not_found(self) -> bool:
        """True when every error reports a missing object."""
        return all(e.get('type') == 'NOT_FOUND' for e in self.errors)
