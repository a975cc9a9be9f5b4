"""Session-scoped credential handling."""

from .credentials import NOT_CONFIGURED, CredentialResolver
from .sessions import SessionCredentialRegistry, credentials_from_request

__all__ = [
    'NOT_CONFIGURED',
    'CredentialResolver',
    'SessionCredentialRegistry',
    'credentials_from_request',
]
