"""
Dataset Sync Service

Pull/push protocol over a school's dataset: pull exports the live relational
state under the stored version number, push replaces the relational state and
advances the version, guarded by optimistic concurrency.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsync.core.config import settings
from .exporter import DatasetExporter
from .importer import DatasetImporter
from .version_store import DatasetVersionStore

logger = logging.getLogger(__name__)

# Pushes without a base version retry this often when a concurrent push wins
MAX_PUSH_ATTEMPTS = 3


class DatasetSyncError(Exception):
    """Base class for sync protocol failures."""


class VersionConflictError(DatasetSyncError):
    """The client's base version is stale."""

    def __init__(self, server_version: int, server_data: Any):
        super().__init__(f"Version conflict: server is at version {server_version}")
        self.server_version = server_version
        self.server_data = server_data


class DatasetStorageError(DatasetSyncError):
    """The database rejected the push; nothing was changed."""


class SyncTimeoutError(DatasetSyncError):
    """The push transaction exceeded its time budget and was rolled back."""


@dataclass(frozen=True)
class SyncConfig:
    """Explicit configuration handed to the sync service."""
    dataset_key: str = "default"
    push_timeout_seconds: Optional[float] = 30.0
    import_batch_size: int = 500

    @classmethod
    def from_settings(cls) -> "SyncConfig":
        return cls(
            dataset_key=settings.DATASET_KEY,
            push_timeout_seconds=settings.SYNC_PUSH_TIMEOUT_SECONDS,
            import_batch_size=settings.SYNC_IMPORT_BATCH_SIZE
        )


@dataclass
class DatasetSnapshot:
    key: str
    version: int
    data: Dict[str, Any]
    updated_at: Optional[datetime] = None


@dataclass
class PushResult:
    key: str
    version: int
    updated_at: Optional[datetime] = None
    row_counts: Dict[str, int] = field(default_factory=dict)


class DatasetSyncService:
    """
    Pull/push handler for one request.

    The service owns the push transaction: the import, the version bump and
    the commit happen together or not at all.
    """

    def __init__(self, db: AsyncSession, config: Optional[SyncConfig] = None):
        self.db = db
        self.config = config or SyncConfig.from_settings()
        self.version_store = DatasetVersionStore(db, self.config.dataset_key)
        self.exporter = DatasetExporter(db)
        self.importer = DatasetImporter(db, batch_size=self.config.import_batch_size)

    async def pull(self, school_id: str) -> DatasetSnapshot:
        """
        Export the school's live state under its stored version.

        A school that was never seeded reports version 0 and an empty document.
        """
        record = await self.version_store.get(school_id)
        data = await self.exporter.export(school_id)

        version = record.version if record else 0
        updated_at = record.updated_at if record else None

        logger.info(f"Pull for school {school_id}: version {version}")
        return DatasetSnapshot(
            key=self.config.dataset_key,
            version=version,
            data=data,
            updated_at=updated_at
        )

    async def push(self, school_id: str, base_version: Optional[int], data: Any) -> PushResult:
        """
        Replace the school's dataset and advance its version.

        Args:
            school_id: Tenant the push belongs to
            base_version: Version the client last saw; None skips the check
            data: Submitted document, stored verbatim

        Raises:
            VersionConflictError: ``base_version`` is not the stored version
            DatasetStorageError: The database rejected the replacement
            SyncTimeoutError: The transaction ran past the configured timeout
        """
        timeout = self.config.push_timeout_seconds
        try:
            if timeout:
                return await asyncio.wait_for(self._push(school_id, base_version, data), timeout)
            return await self._push(school_id, base_version, data)
        except asyncio.TimeoutError:
            logger.error(f"Push for school {school_id} timed out after {timeout}s, rolling back")
            await self._rollback()
            raise SyncTimeoutError(f"Push did not complete within {timeout} seconds")

    async def _push(self, school_id: str, base_version: Optional[int], data: Any) -> PushResult:
        for attempt in range(1, MAX_PUSH_ATTEMPTS + 1):
            result = await self._attempt_push(school_id, base_version, data)
            if result is not None:
                return result
            logger.info(
                f"Push for school {school_id} raced another push, retrying at the latest version (attempt {attempt})"
            )
        raise DatasetStorageError(f"Dataset kept changing during {MAX_PUSH_ATTEMPTS} push attempts")

    async def _attempt_push(
        self,
        school_id: str,
        base_version: Optional[int],
        data: Any
    ) -> Optional[PushResult]:
        """
        One read-check-write cycle.

        Returns None, with the transaction rolled back, when a push without a
        base version lost the version update to a concurrent push.
        """
        record = await self.version_store.get_for_update(school_id)
        current_version = record.version if record else None

        if record is not None and base_version is not None and base_version != current_version:
            server_data = record.data
            await self._rollback()
            logger.warning(
                f"Version conflict for school {school_id}: client base {base_version}, server {current_version}"
            )
            raise VersionConflictError(current_version, server_data)

        try:
            counts = await self.importer.import_dataset(school_id, data)
        except SQLAlchemyError as e:
            await self._rollback()
            logger.error(f"Import failed for school {school_id}: {e}", exc_info=True)
            raise DatasetStorageError("Failed to store dataset") from e

        if record is None:
            try:
                created = await self.version_store.create(school_id, data, version=1)
                new_version, updated_at = 1, created.updated_at
            except IntegrityError:
                # A concurrent first push created the record
                await self._rollback()
                if base_version is None:
                    return None
                await self._raise_latest_conflict(school_id, base_version)
        else:
            try:
                updated_at = await self.version_store.advance(school_id, current_version, data)
            except SQLAlchemyError as e:
                await self._rollback()
                logger.error(f"Version update failed for school {school_id}: {e}", exc_info=True)
                raise DatasetStorageError("Failed to store dataset") from e
            if updated_at is None:
                await self._rollback()
                if base_version is None:
                    return None
                await self._raise_latest_conflict(school_id, base_version)
            new_version = current_version + 1

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            logger.error(f"Commit failed for school {school_id}: {e}", exc_info=True)
            raise DatasetStorageError("Failed to store dataset") from e

        logger.info(
            f"Push for school {school_id}: version {new_version}, {sum(counts.values())} rows"
        )
        return PushResult(
            key=self.config.dataset_key,
            version=new_version,
            updated_at=updated_at,
            row_counts=counts
        )

    async def _raise_latest_conflict(self, school_id: str, base_version: Optional[int]) -> None:
        latest = await self.version_store.get(school_id)
        if latest is None:
            raise DatasetStorageError("Dataset record disappeared during push")
        server_version, server_data = latest.version, latest.data
        await self._rollback()
        logger.warning(
            f"Concurrent push detected for school {school_id}: client base {base_version}, server {server_version}"
        )
        raise VersionConflictError(server_version, server_data)

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")
