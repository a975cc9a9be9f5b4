"""Lifecycle control for a single repository migration."""

import asyncio
from typing import List, Optional

from loguru import logger

from ..api.provider import MigrationProvider
from ..models.migration import (
    MigrationRecord,
    MigrationState,
    MigrationStatus,
    SourcePlatform,
    WaitResult,
)
from ..state.store import MigrationStateStore

DEFAULT_POLL_INTERVAL = 10.0


class MigrationLifecycleController:
    """Starts, observes and aborts migrations, mirroring state into the store."""

    def __init__(
        self,
        provider: MigrationProvider,
        store: MigrationStateStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize lifecycle controller.

        Args:
            provider: Remote migration provider
            store: Migration state store
            poll_interval: Seconds between status checks while waiting
        """
        if poll_interval <= 0:
            raise ValueError('poll_interval must be positive')

        self.provider = provider
        self.store = store
        self.poll_interval = poll_interval
        self.logger = logger.bind(component='MigrationLifecycleController')

    async def start(
        self,
        origin_repo_url: str,
        target_org_id: str,
        source_id: str,
        target_repo_name: str,
        access_token: str,
        *,
        source_org: str,
        target_org: str,
        platform: SourcePlatform,
    ) -> str:
        """Start a migration and record it as queued.

        Args:
            origin_repo_url: Repository URL on the origin platform
            target_org_id: Node id of the target organization
            source_id: Migration source id for the origin organization
            target_repo_name: Repository name in the target organization
            access_token: Origin platform token the importer reads with
            source_org: Origin organization name, for the record
            target_org: Target organization name, for the record
            platform: Origin platform

        Returns:
            Provider-assigned migration id
        """
        migration_id = await self.provider.start_migration(
            source_id, target_org_id, origin_repo_url, target_repo_name, access_token
        )

        self.store.record_new(
            MigrationRecord(
                id=migration_id,
                source_org=source_org,
                target_org=target_org,
                repo_name=target_repo_name,
                state=MigrationState.QUEUED,
                source=SourcePlatform(platform),
            )
        )
        self.logger.info(
            f'Started migration {migration_id}: {origin_repo_url} -> '
            f'{target_org}/{target_repo_name}'
        )
        return migration_id

    async def refresh_status(self, migration_id: str) -> MigrationStatus:
        """Fetch the current status and write it into the store.

        Provider errors propagate to the caller without retry.
        """
        status = await self.provider.get_migration_status(migration_id)
        self.store.update_state(migration_id, status.state)
        return status

    async def wait_until_terminal(
        self,
        migration_id: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WaitResult:
        """Poll until the migration reaches a terminal state.

        Running out of time or being cancelled through ``cancel_event`` only
        ends the wait; the remote migration keeps running and has to be
        stopped with :meth:`abort`. The status is always checked at least
        once.

        Args:
            migration_id: Migration to wait for
            timeout: Wait budget in seconds
            cancel_event: Set by the caller to stop waiting early

        Returns:
            Wait result
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        if cancel_event is None:
            cancel_event = asyncio.Event()

        status = None
        while not cancel_event.is_set():
            status = await self.refresh_status(migration_id)
            if status.state.is_terminal:
                return WaitResult(
                    migration_id=migration_id,
                    completed=True,
                    final_state=status.state,
                    elapsed=loop.time() - started,
                    status=status,
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            try:
                await asyncio.wait_for(
                    cancel_event.wait(), timeout=min(self.poll_interval, remaining)
                )
            except asyncio.TimeoutError:
                continue

        elapsed = loop.time() - started
        cancelled = cancel_event.is_set()
        if cancelled:
            self.logger.info(f'Stopped waiting for {migration_id} on request')
        else:
            self.logger.info(
                f'Timed out after {elapsed:.0f}s waiting for {migration_id}; '
                f'migration still running'
            )

        return WaitResult(
            migration_id=migration_id,
            completed=False,
            elapsed=elapsed,
            status=status,
            cancelled=cancelled,
        )

    async def abort(self, migration_id: str) -> bool:
        """Request cancellation and mark the local record aborted.

        The record is marked ``ABORTED`` even when the provider does not
        confirm that the job stopped.

        Returns:
            The provider's success flag
        """
        confirmed = await self.provider.abort_migration(migration_id)
        if not confirmed:
            self.logger.warning(
                f'Provider did not confirm abort of {migration_id}; '
                f'marking it aborted anyway'
            )
        self.store.update_state(migration_id, MigrationState.ABORTED)
        return confirmed

    async def list_active(self, refresh: bool = True) -> List[MigrationRecord]:
        """Active migrations, optionally refreshed from the provider.

        A record whose refresh fails is returned as stored. Records the
        refresh moved to history are left out.
        """
        records = self.store.list_active()
        if not refresh or not records:
            return records

        results = await asyncio.gather(
            *(self.refresh_status(r.id) for r in records), return_exceptions=True
        )

        updated = []
        for record, result in zip(records, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self.logger.warning(f'Could not refresh {record.id}: {result}')
                updated.append(record)
            elif not result.state.is_terminal:
                updated.append(record.copy(update={'state': result.state}))
        return updated

    def history(self, limit: Optional[int] = 50) -> List[MigrationRecord]:
        return self.store.list_history(limit)
