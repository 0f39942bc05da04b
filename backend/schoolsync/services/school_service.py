"""
School provisioning: creates a tenant together with its empty dataset record.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolsync.models.school import School
from schoolsync.services.sync.records import empty_dataset_document
from schoolsync.services.sync.version_store import DatasetVersionStore


logger = logging.getLogger(__name__)


class SchoolServiceError(Exception):
    """Base exception for school provisioning errors."""
    pass


class SchoolService:
    """Tenant lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_slug(self, slug: str) -> Optional[School]:
        result = await self.db.execute(select(School).where(School.slug == slug))
        return result.scalar_one_or_none()

    async def provision(self, name: str, slug: str, dataset_key: str = "default") -> School:
        """
        Create a school and its dataset record at version 1 with empty collections.

        Provisioning is idempotent by slug: an existing school is returned as-is
        and only a missing dataset record is created.
        """
        if not slug or not slug.strip():
            raise SchoolServiceError("School slug is required")

        school = await self.get_by_slug(slug)
        if school is None:
            school = School(name=name, slug=slug)
            self.db.add(school)
            await self.db.flush()
            logger.info(f"Provisioned school {school.id} ({slug})")

        store = DatasetVersionStore(self.db, dataset_key)
        if await store.get(school.id) is None:
            await store.create(school.id, empty_dataset_document(), version=1)
            logger.info(f"Created dataset {dataset_key!r} for school {school.id}")

        await self.db.commit()
        return school
