"""
Provision the default school and print a development bearer token.

Usage: python seed.py
"""

import asyncio
import logging

from schoolsync.core.config import settings
from schoolsync.core.database import AsyncSessionLocal, init_db, engine
from schoolsync.core.security import jwt_manager
from schoolsync.services.school_service import SchoolService

logger = logging.getLogger(__name__)


async def main():
    await init_db()

    async with AsyncSessionLocal() as db:
        school = await SchoolService(db).provision(
            name=settings.DEFAULT_SCHOOL_NAME,
            slug=settings.DEFAULT_SCHOOL_SLUG,
            dataset_key=settings.DATASET_KEY
        )

    token = jwt_manager.create_access_token(
        subject="admin",
        username="admin",
        role="admin",
        school_id=school.id
    )

    print(f"Seeded school \"{school.name}\" ({school.id}) with dataset \"{settings.DATASET_KEY}\".")
    print(f"Development token:\n{token}")

    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
