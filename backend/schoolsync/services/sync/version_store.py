"""
Version Store

Optimistic-concurrency bookkeeping for the per-school dataset record.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsync.models.dataset import Dataset

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a Z suffix; naive values (SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DatasetVersionStore:
    """Reads and advances the (school, key) dataset record."""

    def __init__(self, db: AsyncSession, dataset_key: str = "default"):
        self.db = db
        self.dataset_key = dataset_key

    def _query(self, school_id: str):
        return select(Dataset).where(
            Dataset.school_id == school_id,
            Dataset.key == self.dataset_key
        ).execution_options(populate_existing=True)

    async def get(self, school_id: str) -> Optional[Dataset]:
        result = await self.db.execute(self._query(school_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, school_id: str) -> Optional[Dataset]:
        """Read the record holding a row lock until the transaction ends."""
        result = await self.db.execute(
            self._query(school_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def create(self, school_id: str, data: Any, version: int = 1) -> Dataset:
        record = Dataset(
            school_id=school_id,
            key=self.dataset_key,
            version=version,
            data=data,
            updated_at=utc_now()
        )
        self.db.add(record)
        await self.db.flush()
        logger.debug(f"Created dataset record {self.dataset_key!r} for school {school_id} at version {version}")
        return record

    async def advance(self, school_id: str, expected_version: int, data: Any) -> Optional[datetime]:
        """
        Compare-and-swap the record from ``expected_version`` to the next version.

        Returns:
            The new ``updated_at`` on success, None if another writer moved the
            version first
        """
        updated_at = utc_now()
        result = await self.db.execute(
            update(Dataset)
            .where(
                Dataset.school_id == school_id,
                Dataset.key == self.dataset_key,
                Dataset.version == expected_version
            )
            .values(version=expected_version + 1, data=data, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return updated_at
