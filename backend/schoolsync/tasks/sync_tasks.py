"""
Background tasks for client-side dataset synchronization.

The orchestrator keeps a local working copy of the dataset in step with the
server: it pulls once after login (seeding an empty server from local data),
re-syncs on a fixed interval and pushes shortly after local edits. Sync
failures are logged and never propagate to the application.
"""

import asyncio
import logging
import uuid
from typing import Dict, Any, Optional

from schoolsync.core.config import settings
from schoolsync.integrations.dataset_api import (
    DatasetApiClient, DatasetApiError, DatasetConflictError, JsonFileDatasetStore
)
from schoolsync.services.sync.records import is_dataset_empty
from schoolsync.utils.conflict_resolution import ConflictResolver, ConflictResolutionStrategy

logger = logging.getLogger(__name__)


class DatasetSyncOrchestrator:
    """
    Manages the background sync loop for one signed-in session.

    Only one sync cycle runs at a time; cycles requested while another is in
    progress wait for it to finish.
    """

    def __init__(
        self,
        client: DatasetApiClient,
        store: JsonFileDatasetStore,
        resolver: Optional[ConflictResolver] = None,
        interval_seconds: float = 300.0,
        debounce_seconds: float = 1.2
    ):
        self.client = client
        self.store = store
        self.resolver = resolver or ConflictResolver()
        self.interval_seconds = interval_seconds
        self.debounce_seconds = debounce_seconds

        self._running_tasks: Dict[str, asyncio.Task] = {}
        self._shutdown_event = asyncio.Event()
        self._sync_lock = asyncio.Lock()
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._local_revision = 0
        self.last_result: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        task = self._running_tasks.get('sync_loop')
        return task is not None and not task.done()

    async def start(self) -> None:
        """Start the initial sync and the periodic loop."""
        if self.is_running:
            return

        logger.info("Starting dataset sync orchestrator")
        self._shutdown_event.clear()
        self._running_tasks['sync_loop'] = asyncio.create_task(self._sync_loop())

    async def stop(self) -> None:
        """Stop the loop and any pending pushes."""
        logger.info("Stopping dataset sync orchestrator")

        self._shutdown_event.set()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        for task_name, task in self._running_tasks.items():
            if not task.done():
                logger.debug(f"Cancelling task: {task_name}")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._running_tasks.clear()
        logger.info("Dataset sync orchestrator stopped")

    def notify_local_change(self, document: Optional[Dict[str, Any]] = None) -> None:
        """
        Record a local edit and schedule a push after the debounce delay.

        Must be called from within the running event loop.
        """
        if document is not None:
            self.store.update_document(document)
        else:
            self.store.mark_dirty()
        self._local_revision += 1

        if self._shutdown_event.is_set():
            return

        loop = asyncio.get_running_loop()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._start_debounced_push)

    def _start_debounced_push(self) -> None:
        self._debounce_handle = None
        for name in [name for name, task in self._running_tasks.items() if task.done()]:
            del self._running_tasks[name]

        task_name = f"push_{uuid.uuid4().hex[:8]}"
        self._running_tasks[task_name] = asyncio.create_task(self._run_cycle())

    async def _sync_loop(self) -> None:
        await self._run_cycle(initial=True)

        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds
                )
                break  # Shutdown event was set
            except asyncio.TimeoutError:
                pass

            await self._run_cycle()

        logger.debug("Dataset sync loop stopped")

    async def _run_cycle(self, initial: bool = False) -> None:
        try:
            if initial:
                await self.initial_sync()
            else:
                await self.sync_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Dataset sync cycle failed: {e}", exc_info=True)

    async def initial_sync(self) -> Dict[str, Any]:
        """
        Pull after login; seed the server from local data when it has none.

        A failed seed push is logged and the local data stays pending.
        """
        async with self._sync_lock:
            try:
                remote = await self.client.pull()
            except DatasetApiError as e:
                logger.warning(f"Initial dataset pull failed: {e}")
                return self._record("pull", False, error=str(e))

            version = int(remote.get("version") or 0)
            data = remote.get("data")

            if is_dataset_empty(data):
                self.store.set_server_version(version)
                local = self.store.document
                if is_dataset_empty(local):
                    return self._record("noop", True, version)
                try:
                    result = await self.client.push(local, version)
                except DatasetApiError as e:
                    logger.warning(f"Seeding server dataset failed: {e}")
                    return self._record("seed", False, version, error=str(e))
                new_version = int(result.get("version") or version)
                self.store.mark_pushed(new_version)
                logger.info(f"Seeded server dataset at version {new_version}")
                return self._record("seed", True, new_version)

            if self.store.dirty:
                return await self._push_local()

            self.store.replace_from_server(data, version)
            return self._record("pull", True, version)

    async def sync_once(self) -> Dict[str, Any]:
        """Push pending local edits, otherwise refresh from the server."""
        async with self._sync_lock:
            if self.store.dirty:
                return await self._push_local()
            return await self._pull_remote()

    async def _pull_remote(self) -> Dict[str, Any]:
        try:
            remote = await self.client.pull()
        except DatasetApiError as e:
            logger.warning(f"Dataset pull failed: {e}")
            return self._record("pull", False, error=str(e))

        version = int(remote.get("version") or 0)
        if version == self.store.server_version:
            return self._record("noop", True, version)

        self.store.replace_from_server(remote.get("data"), version)
        logger.info(f"Adopted server dataset version {version}")
        return self._record("pull", True, version)

    async def _push_local(self) -> Dict[str, Any]:
        document = self.store.document
        base_version = self.store.server_version
        revision = self._local_revision

        try:
            result = await self.client.push(document, base_version)
        except DatasetConflictError as conflict:
            return await self._handle_conflict(document, conflict, revision)
        except DatasetApiError as e:
            logger.warning(f"Dataset push failed: {e}")
            return self._record("push", False, base_version, error=str(e))

        new_version = int(result.get("version") or base_version)
        self._after_push(new_version, revision)
        return self._record("push", True, new_version)

    async def _handle_conflict(
        self,
        document: Dict[str, Any],
        conflict: DatasetConflictError,
        revision: int
    ) -> Dict[str, Any]:
        logger.warning(
            f"Push rejected: local base {self.store.server_version}, server {conflict.server_version}"
        )
        resolution = self.resolver.resolve(document, conflict.server_version, conflict.server_data)

        if resolution.retry_push:
            # One retry against the version the server reported
            try:
                result = await self.client.push(resolution.resolved_data, resolution.base_version)
            except DatasetApiError as e:
                logger.warning(f"Dataset push retry failed: {e}")
                return self._record("push", False, resolution.base_version, error=str(e))
            new_version = int(result.get("version") or resolution.base_version)
            self._after_push(new_version, revision)
            return self._record("push", True, new_version)

        if resolution.strategy == ConflictResolutionStrategy.SERVER_WINS:
            self.store.replace_from_server(resolution.resolved_data, resolution.base_version)
            logger.info(f"Discarded local changes for server version {resolution.base_version}")
            return self._record("adopt", True, resolution.base_version)

        logger.warning(f"Dataset conflict needs manual resolution: {resolution.explanation}")
        return self._record("conflict", False, resolution.base_version, error=resolution.explanation)

    def _after_push(self, new_version: int, revision: int) -> None:
        if revision == self._local_revision:
            self.store.mark_pushed(new_version)
        else:
            # Edited again while the push was in flight
            self.store.set_server_version(new_version)

    def _record(
        self,
        action: str,
        success: bool,
        version: Optional[int] = None,
        error: Optional[str] = None
    ) -> Dict[str, Any]:
        self.last_result = {
            "action": action,
            "success": success,
            "version": version,
            "error": error
        }
        return self.last_result


def create_orchestrator(token: str, store: JsonFileDatasetStore) -> DatasetSyncOrchestrator:
    """Build an orchestrator for a signed-in session from application settings."""
    if not settings.SYNC_API_BASE_URL:
        raise ValueError("SYNC_API_BASE_URL is not configured")

    client = DatasetApiClient(
        settings.SYNC_API_BASE_URL,
        token,
        timeout=settings.SYNC_CLIENT_TIMEOUT_SECONDS
    )
    return DatasetSyncOrchestrator(
        client,
        store,
        resolver=ConflictResolver(ConflictResolutionStrategy(settings.SYNC_CLIENT_CONFLICT_STRATEGY)),
        interval_seconds=settings.SYNC_CLIENT_INTERVAL_SECONDS,
        debounce_seconds=settings.SYNC_CLIENT_DEBOUNCE_SECONDS
    )
