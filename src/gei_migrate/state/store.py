"""Durable record of active and completed migrations."""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from loguru import logger

from ..exceptions import StateConflictError
from ..models.migration import (
    MigrationRecord,
    MigrationState,
    PersistedState,
    utcnow,
)

T = TypeVar('T')

STATE_FILE_NAME = 'state.json'


class MigrationStateStore:
    """JSON-file backed store for migrations and migration sources.

    The store is meant to be the only writer of its file. Every mutation is a
    full read-modify-write cycle executed under a process-wide lock, and the
    file carries a version counter that is checked just before the atomic
    replace. A version change made by another process in the meantime raises
    :class:`StateConflictError` and the cycle is retried. The check and the
    replace are not atomic with respect to other processes, so a write landing
    between them can still be lost; run one process per state directory.
    """

    def __init__(self, state_dir: str, write_retries: int = 3):
        """Initialize state store.

        Args:
            state_dir: Directory holding the state file
            write_retries: Attempts per mutation before a conflict propagates
        """
        self.state_dir = Path(state_dir).expanduser()
        self.state_file = self.state_dir / STATE_FILE_NAME
        self.write_retries = write_retries
        self._lock = threading.Lock()
        self.logger = logger.bind(component='MigrationStateStore')

    def _ensure_state_dir(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _load(self) -> PersistedState:
        if not self.state_file.exists():
            return PersistedState()

        with open(self.state_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return PersistedState(**data)

    def _read_version(self) -> int:
        if not self.state_file.exists():
            return 0
        with open(self.state_file, 'r', encoding='utf-8') as f:
            return int(json.load(f).get('version', 0))

    def _save(self, state: PersistedState, expected_version: int) -> None:
        actual = self._read_version()
        if actual != expected_version:
            raise StateConflictError(expected_version, actual)

        state.version = expected_version + 1
        self._ensure_state_dir()

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.state_dir), prefix='.state-', suffix='.json'
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.state_file)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _mutate(self, fn: Callable[[PersistedState], T]) -> T:
        """Run ``fn`` against the loaded state and persist the result."""
        with self._lock:
            for attempt in range(1, self.write_retries + 1):
                state = self._load()
                version = state.version
                result = fn(state)
                try:
                    self._save(state, version)
                    return result
                except StateConflictError as e:
                    if attempt == self.write_retries:
                        self.logger.error(f'Giving up state write: {e}')
                        raise
                    self.logger.warning(
                        f'{e}; retrying ({attempt}/{self.write_retries})'
                    )

        raise AssertionError('unreachable')

    def _read(self) -> PersistedState:
        with self._lock:
            return self._load()

    def record_new(self, record: MigrationRecord) -> None:
        """Add a migration to the active set."""

        def apply(state: PersistedState) -> None:
            known = {m.id for m in state.active_migrations}
            known.update(m.id for m in state.migration_history)
            if record.id in known:
                raise ValueError(f'Migration already recorded: {record.id}')
            state.active_migrations.append(record.copy())

        self._mutate(apply)
        self.logger.info(f'Recorded migration {record.id} ({record.state.value})')

    def update_state(
        self, migration_id: str, new_state: MigrationState
    ) -> Optional[MigrationRecord]:
        """Write a new state for an active migration.

        A terminal state moves the record from the active set to the end of
        the history, stamping its completion time. Records already in history
        are returned unchanged.

        Returns:
            The updated record, or None when the id is unknown
        """
        new_state = MigrationState(new_state)

        def apply(state: PersistedState) -> Optional[MigrationRecord]:
            for index, record in enumerate(state.active_migrations):
                if record.id != migration_id:
                    continue

                record.state = new_state
                if new_state.is_terminal:
                    record.completed_at = utcnow()
                    del state.active_migrations[index]
                    state.migration_history.append(record)
                return record.copy()

            for record in state.migration_history:
                if record.id == migration_id:
                    return record.copy()
            return None

        updated = self._mutate(apply)
        if updated is None:
            self.logger.debug(f'State update for untracked migration {migration_id}')
        elif updated.completed_at is not None and new_state.is_terminal:
            self.logger.info(
                f'Migration {migration_id} finished with {updated.state.value}'
            )
        return updated

    def get(self, migration_id: str) -> Optional[MigrationRecord]:
        state = self._read()
        for record in state.active_migrations + state.migration_history:
            if record.id == migration_id:
                return record
        return None

    def list_active(self) -> List[MigrationRecord]:
        return self._read().active_migrations

    def list_history(self, limit: Optional[int] = None) -> List[MigrationRecord]:
        """Completed migrations, oldest first; ``limit`` keeps the newest."""
        history = self._read().migration_history
        if limit is not None:
            if limit <= 0:
                return []
            history = history[-limit:]
        return history

    def get_source_id(self, origin_org_url: str) -> Optional[str]:
        return self._read().migration_sources.get(origin_org_url)

    def put_source_id(self, origin_org_url: str, source_id: str) -> None:
        def apply(state: PersistedState) -> None:
            state.migration_sources[origin_org_url] = source_id

        self._mutate(apply)
        self.logger.info(f'Saved migration source for {origin_org_url}')
