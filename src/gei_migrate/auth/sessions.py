"""Per-connection credential registry."""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional

from loguru import logger

from ..exceptions import SessionNotFoundError
from ..models.credentials import SessionCredentials
from ..utils.logging import mask_secret

# (header, query parameter) per field; headers win.
CREDENTIAL_TRANSPORT_NAMES = {
    'github_source_pat': ('X-GH-Source-PAT', 'GH_SOURCE_PAT'),
    'github_target_pat': ('X-GH-PAT', 'GH_PAT'),
    'ado_pat': ('X-ADO-PAT', 'ADO_PAT'),
}


def credentials_from_request(
    headers: Optional[Mapping[str, str]] = None,
    query: Optional[Mapping[str, str]] = None,
) -> SessionCredentials:
    """Build session credentials from connection headers and query string.

    Header names are matched case-insensitively. A header value takes
    precedence over a query parameter carrying the same secret.

    Args:
        headers: Request headers
        query: Query parameters

    Returns:
        Session credentials (fields left unset when absent)
    """
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    query = query or {}

    values = {}
    for field, (header, param) in CREDENTIAL_TRANSPORT_NAMES.items():
        value = lowered.get(header.lower()) or query.get(param)
        values[field] = value or None

    return SessionCredentials(**values)


class _Entry:
    __slots__ = ('credentials', 'last_access')

    def __init__(self, credentials: SessionCredentials, last_access: float):
        self.credentials = credentials
        self.last_access = last_access


class SessionCredentialRegistry:
    """Shared store of credentials keyed by session id.

    One instance is created by the process owner and handed to every
    transport and request handler. Entries live exactly as long as the
    connection that opened them, unless an idle reaper is run.
    """

    def __init__(self, clock=time.monotonic):
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self.logger = logger.bind(component='SessionCredentialRegistry')

    def open(self, session_id: str, credentials: SessionCredentials) -> None:
        """Register credentials for a newly opened connection."""
        if not session_id:
            raise ValueError('session_id must not be empty')

        stored = credentials.copy()
        with self._lock:
            self._entries[session_id] = _Entry(stored, self._clock())
            total = len(self._entries)

        present = ', '.join(
            f'{field}={mask_secret(getattr(stored, field))}'
            for field in CREDENTIAL_TRANSPORT_NAMES
        )
        self.logger.info(f'Session opened: {session_id} [{present}] ({total} active)')

    def get(self, session_id: Optional[str]) -> Optional[SessionCredentials]:
        """Credentials for a session, or None when the session is unknown."""
        if not session_id:
            return None

        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            entry.last_access = self._clock()
            return entry.credentials.copy()

    def require(self, session_id: str) -> SessionCredentials:
        """Like :meth:`get` but raises for unknown sessions."""
        credentials = self.get(session_id)
        if credentials is None:
            raise SessionNotFoundError(session_id)
        return credentials

    def close(self, session_id: str) -> None:
        """Forget a session's credentials. Unknown ids are ignored."""
        with self._lock:
            removed = self._entries.pop(session_id, None)
            total = len(self._entries)

        if removed is not None:
            self.logger.info(f'Session closed: {session_id} ({total} active)')

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def reap_idle(self, max_idle_seconds: float) -> List[str]:
        """Close sessions not accessed within ``max_idle_seconds``.

        Returns:
            Session ids that were removed
        """
        cutoff = self._clock() - max_idle_seconds
        with self._lock:
            stale = [
                sid
                for sid, entry in self._entries.items()
                if entry.last_access < cutoff
            ]
            for sid in stale:
                del self._entries[sid]

        if stale:
            self.logger.warning(f'Reaped {len(stale)} idle session(s)')
        return stale

    @contextmanager
    def session(
        self, session_id: str, credentials: SessionCredentials
    ) -> Iterator[str]:
        """Scope credentials to a connection: open on enter, close on exit."""
        self.open(session_id, credentials)
        try:
            yield session_id
        finally:
            self.close(session_id)
