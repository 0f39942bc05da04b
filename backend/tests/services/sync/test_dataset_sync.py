"""Tests for the pull/push dataset sync service."""

import asyncio
import copy
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from schoolsync.core.database import Base, enable_sqlite_foreign_keys
from schoolsync.services.sync import (
    DatasetSyncService,
    SyncConfig,
    VersionConflictError,
    DatasetStorageError,
    SyncTimeoutError,
    DatasetVersionStore
)
from schoolsync.services.sync.records import COLLECTION_KEYS


SCHOOL_ID = "school-1"


@pytest.fixture
def sync_config():
    return SyncConfig(dataset_key="default", push_timeout_seconds=5.0, import_batch_size=500)


@pytest.fixture
async def make_service(session_factory, sync_config):
    """Each call opens a fresh session, like one request each."""
    sessions = []

    def _make_service(config=None):
        session = session_factory()
        sessions.append(session)
        return DatasetSyncService(session, config or sync_config)

    yield _make_service

    for session in sessions:
        await session.close()


async def close(service):
    await service.db.close()


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite so every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sync.db'}")
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


def race_with(service, competing_push):
    """Commit ``competing_push`` after ``service`` has read the version but before it writes."""
    real_import = service.importer.import_dataset
    results = []

    async def import_after_competitor(school_id, document):
        if not results:
            results.append(await competing_push())
        return await real_import(school_id, document)

    return patch.object(service.importer, "import_dataset", side_effect=import_after_competitor), results


class TestPull:

    async def test_pull_before_any_push(self, make_service):
        service = make_service()

        snapshot = await service.pull(SCHOOL_ID)
        await close(service)

        assert snapshot.version == 0
        assert snapshot.updated_at is None
        assert snapshot.key == "default"
        assert all(snapshot.data[key] == [] for key in COLLECTION_KEYS)

    async def test_pull_returns_live_export_with_stored_version(self, make_service, sample_document):
        service = make_service()
        await service.push(SCHOOL_ID, None, sample_document)
        await close(service)

        service = make_service()
        snapshot = await service.pull(SCHOOL_ID)
        await close(service)

        assert snapshot.version == 1
        assert snapshot.updated_at is not None
        assert [s["id"] for s in snapshot.data["students"]] == ["S001", "S002"]


class TestPush:

    async def test_versions_increase_by_one(self, make_service, sample_document):
        versions = []
        for _ in range(3):
            service = make_service()
            result = await service.push(SCHOOL_ID, None, sample_document)
            await close(service)
            versions.append(result.version)

        assert versions == [1, 2, 3]

    async def test_push_with_matching_base_version(self, make_service, sample_document):
        service = make_service()
        first = await service.push(SCHOOL_ID, None, sample_document)
        second = await service.push(SCHOOL_ID, first.version, sample_document)
        await close(service)

        assert second.version == 2
        assert second.key == "default"

    async def test_stale_base_version_conflicts(self, make_service, sample_document):
        second_document = copy.deepcopy(sample_document)
        second_document["students"] = second_document["students"][:1]

        service = make_service()
        await service.push(SCHOOL_ID, None, sample_document)
        await service.push(SCHOOL_ID, 1, second_document)

        with pytest.raises(VersionConflictError) as exc_info:
            await service.push(SCHOOL_ID, 1, {"students": []})
        await close(service)

        assert exc_info.value.server_version == 2
        assert exc_info.value.server_data == second_document

        service = make_service()
        snapshot = await service.pull(SCHOOL_ID)
        await close(service)
        assert snapshot.version == 2
        assert [s["id"] for s in snapshot.data["students"]] == ["S001"]

    async def test_base_version_ignored_without_record(self, make_service, sample_document):
        service = make_service()
        result = await service.push(SCHOOL_ID, 7, sample_document)
        await close(service)

        assert result.version == 1

    async def test_stored_snapshot_is_verbatim(self, session_factory, make_service):
        document = {"students": [{"id": "S1", "status": "whatever"}], "custom": {"x": 1}}
        service = make_service()
        await service.push(SCHOOL_ID, None, document)
        await close(service)

        async with session_factory() as db:
            record = await DatasetVersionStore(db).get(SCHOOL_ID)
            assert record.data == document

    async def test_non_object_data_replaces_with_empty(self, make_service, sample_document):
        service = make_service()
        await service.push(SCHOOL_ID, None, sample_document)
        result = await service.push(SCHOOL_ID, None, ["not", "a", "document"])
        snapshot = await service.pull(SCHOOL_ID)
        await close(service)

        assert result.version == 2
        assert snapshot.data["students"] == []

    async def test_storage_failure_leaves_state_unchanged(self, make_service, sample_document):
        service = make_service()
        await service.push(SCHOOL_ID, None, sample_document)

        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(service.importer, "import_dataset", side_effect=error):
            with pytest.raises(DatasetStorageError):
                await service.push(SCHOOL_ID, 1, {})
        await close(service)

        service = make_service()
        snapshot = await service.pull(SCHOOL_ID)
        await close(service)
        assert snapshot.version == 1
        assert len(snapshot.data["students"]) == 2

    async def test_timeout_rolls_back(self, make_service, sample_document):
        service = make_service()
        await service.push(SCHOOL_ID, None, sample_document)
        await close(service)

        service = make_service(SyncConfig(push_timeout_seconds=0.05))

        async def slow_import(school_id, document):
            await asyncio.sleep(1)
            return {}

        with patch.object(service.importer, "import_dataset", side_effect=slow_import):
            with pytest.raises(SyncTimeoutError):
                await service.push(SCHOOL_ID, 1, {})
        await close(service)

        service = make_service()
        snapshot = await service.pull(SCHOOL_ID)
        await close(service)
        assert snapshot.version == 1

    async def test_datasets_are_per_school(self, make_service, sample_document):
        service = make_service()
        await service.push("school-a", None, sample_document)
        await service.push("school-a", None, sample_document)
        result_b = await service.push("school-b", None, {})
        await close(service)

        assert result_b.version == 1


class TestVersionStore:

    async def test_advance_is_compare_and_swap(self, db_session):
        store = DatasetVersionStore(db_session, "default")
        await store.create(SCHOOL_ID, {}, version=3)

        assert await store.advance(SCHOOL_ID, 2, {"a": 1}) is None
        assert await store.advance(SCHOOL_ID, 3, {"a": 1}) is not None

        record = await store.get(SCHOOL_ID)
        assert record.version == 4
        assert record.data == {"a": 1}

    async def test_keys_are_separate(self, db_session):
        await DatasetVersionStore(db_session, "default").create(SCHOOL_ID, {})

        assert await DatasetVersionStore(db_session, "archive").get(SCHOOL_ID) is None


class TestConcurrentPushes:
    """Two requests pushing to the same school at the same time."""

    @pytest.fixture
    async def open_service(self, file_session_factory, sync_config):
        sessions = []

        def _open_service():
            session = file_session_factory()
            sessions.append(session)
            return DatasetSyncService(session, sync_config)

        yield _open_service

        for session in sessions:
            await session.close()

    async def test_stale_base_loses_to_concurrent_push(self, open_service, sample_document):
        await open_service().push(SCHOOL_ID, None, sample_document)
        service, competitor = open_service(), open_service()

        patcher, competing = race_with(service, lambda: competitor.push(SCHOOL_ID, 1, {"students": []}))
        with patcher:
            with pytest.raises(VersionConflictError) as exc_info:
                await service.push(SCHOOL_ID, 1, sample_document)

        assert competing[0].version == 2
        assert exc_info.value.server_version == 2
        assert exc_info.value.server_data == {"students": []}
        snapshot = await open_service().pull(SCHOOL_ID)
        assert snapshot.version == 2
        assert snapshot.data["students"] == []

    async def test_unconditional_push_retries_at_latest_version(self, open_service, sample_document):
        await open_service().push(SCHOOL_ID, None, {})
        service, competitor = open_service(), open_service()

        patcher, competing = race_with(service, lambda: competitor.push(SCHOOL_ID, None, {}))
        with patcher:
            result = await service.push(SCHOOL_ID, None, sample_document)

        assert competing[0].version == 2
        assert result.version == 3
        snapshot = await open_service().pull(SCHOOL_ID)
        assert snapshot.version == 3
        assert len(snapshot.data["students"]) == 2

    async def test_unconditional_first_pushes_both_succeed(self, open_service, sample_document):
        service, competitor = open_service(), open_service()

        patcher, competing = race_with(service, lambda: competitor.push(SCHOOL_ID, None, {}))
        with patcher:
            result = await service.push(SCHOOL_ID, None, sample_document)

        assert competing[0].version == 1
        assert result.version == 2
        assert (await open_service().pull(SCHOOL_ID)).version == 2

    async def test_stale_base_first_push_conflicts_with_concurrent_create(self, open_service):
        service, competitor = open_service(), open_service()

        patcher, competing = race_with(service, lambda: competitor.push(SCHOOL_ID, None, {"rooms": []}))
        with patcher:
            # The record did not exist yet when this push read it
            with pytest.raises(VersionConflictError) as exc_info:
                await service.push(SCHOOL_ID, 0, {})

        assert competing[0].version == 1
        assert exc_info.value.server_version == 1
        assert exc_info.value.server_data == {"rooms": []}

    async def test_gathered_unconditional_pushes_both_land(self, open_service, sample_document):
        await open_service().push(SCHOOL_ID, None, {})

        results = await asyncio.gather(
            open_service().push(SCHOOL_ID, None, sample_document),
            open_service().push(SCHOOL_ID, None, sample_document),
        )

        assert sorted(result.version for result in results) == [2, 3]
        assert (await open_service().pull(SCHOOL_ID)).version == 3

    async def test_gathered_stale_base_pushes_one_wins(self, open_service, sample_document):
        await open_service().push(SCHOOL_ID, None, {})

        outcomes = await asyncio.gather(
            open_service().push(SCHOOL_ID, 1, sample_document),
            open_service().push(SCHOOL_ID, 1, sample_document),
            return_exceptions=True
        )

        versions = [o.version for o in outcomes if not isinstance(o, Exception)]
        conflicts = [o for o in outcomes if isinstance(o, VersionConflictError)]
        assert versions == [2]
        assert len(conflicts) == 1
        assert conflicts[0].server_version == 2
        assert (await open_service().pull(SCHOOL_ID)).version == 2
