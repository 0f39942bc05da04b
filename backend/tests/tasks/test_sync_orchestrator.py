"""Tests for the client dataset sync orchestrator."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from schoolsync.integrations.dataset_api import (
    DatasetApiClient, DatasetApiError, DatasetConflictError, JsonFileDatasetStore
)
from schoolsync.services.sync.records import empty_dataset_document
from schoolsync.core.config import settings
from schoolsync.tasks import DatasetSyncOrchestrator, create_orchestrator
from schoolsync.utils import ConflictResolver, ConflictResolutionStrategy


LOCAL = {"students": [{"id": "S1"}]}
REMOTE = {"students": [{"id": "S2"}]}


@pytest.fixture
def mock_client():
    """Mock API client."""
    client = Mock(spec=DatasetApiClient)
    client.pull = AsyncMock(return_value={"key": "default", "version": 0, "data": empty_dataset_document()})
    client.push = AsyncMock(return_value={"key": "default", "version": 1, "updatedAt": None})
    return client


@pytest.fixture
def store():
    return JsonFileDatasetStore()


@pytest.fixture
def orchestrator(mock_client, store):
    return DatasetSyncOrchestrator(mock_client, store, interval_seconds=60, debounce_seconds=0.01)


class TestInitialSync:

    async def test_seeds_empty_server_with_local_data(self, orchestrator, mock_client, store):
        store.update_document(LOCAL)

        result = await orchestrator.initial_sync()

        mock_client.push.assert_awaited_once_with(LOCAL, 0)
        assert result["action"] == "seed"
        assert result["success"] is True
        assert store.server_version == 1
        assert store.dirty is False

    async def test_seed_uses_pulled_version(self, orchestrator, mock_client, store):
        mock_client.pull.return_value = {"version": 1, "data": empty_dataset_document()}
        mock_client.push.return_value = {"version": 2}
        store.replace_from_server(LOCAL, 0)

        await orchestrator.initial_sync()

        mock_client.push.assert_awaited_once_with(LOCAL, 1)
        assert store.server_version == 2

    async def test_nothing_to_seed(self, orchestrator, mock_client):
        result = await orchestrator.initial_sync()

        mock_client.push.assert_not_awaited()
        assert result["action"] == "noop"

    async def test_seed_failure_is_swallowed(self, orchestrator, mock_client, store):
        store.update_document(LOCAL)
        mock_client.push.side_effect = DatasetApiError(500, "Internal server error")

        result = await orchestrator.initial_sync()

        assert result["success"] is False
        assert store.dirty is True

    async def test_adopts_non_empty_server(self, orchestrator, mock_client, store):
        mock_client.pull.return_value = {"version": 3, "data": REMOTE}

        result = await orchestrator.initial_sync()

        assert result["action"] == "pull"
        assert store.document == REMOTE
        assert store.server_version == 3
        mock_client.push.assert_not_awaited()

    async def test_pull_failure_is_swallowed(self, orchestrator, mock_client):
        mock_client.pull.side_effect = DatasetApiError(0, "HTTP client error")

        result = await orchestrator.initial_sync()

        assert result == {"action": "pull", "success": False, "version": None, "error": "API 0: HTTP client error"}


class TestSyncOnce:

    async def test_pushes_pending_changes(self, orchestrator, mock_client, store):
        store.replace_from_server(REMOTE, 4)
        store.update_document(LOCAL)
        mock_client.push.return_value = {"version": 5}

        result = await orchestrator.sync_once()

        mock_client.push.assert_awaited_once_with(LOCAL, 4)
        assert result["action"] == "push"
        assert store.server_version == 5
        assert store.dirty is False

    async def test_pulls_when_clean(self, orchestrator, mock_client, store):
        store.replace_from_server(LOCAL, 1)
        mock_client.pull.return_value = {"version": 2, "data": REMOTE}

        await orchestrator.sync_once()

        assert store.document == REMOTE
        assert store.server_version == 2

    async def test_same_version_is_noop(self, orchestrator, mock_client, store):
        store.replace_from_server(LOCAL, 2)
        mock_client.pull.return_value = {"version": 2, "data": REMOTE}

        result = await orchestrator.sync_once()

        assert result["action"] == "noop"
        assert store.document == LOCAL

    async def test_conflict_local_wins_retries_once(self, orchestrator, mock_client, store):
        store.replace_from_server(REMOTE, 1)
        store.update_document(LOCAL)
        mock_client.push.side_effect = [DatasetConflictError(3, REMOTE), {"version": 4}]

        result = await orchestrator.sync_once()

        assert mock_client.push.await_count == 2
        assert mock_client.push.await_args_list[1].args == (LOCAL, 3)
        assert result["success"] is True
        assert store.server_version == 4
        assert store.dirty is False

    async def test_second_conflict_gives_up(self, orchestrator, mock_client, store):
        store.update_document(LOCAL)
        mock_client.push.side_effect = [DatasetConflictError(3, REMOTE), DatasetConflictError(4, REMOTE)]

        result = await orchestrator.sync_once()

        assert mock_client.push.await_count == 2
        assert result["success"] is False
        assert store.dirty is True

    async def test_conflict_server_wins(self, mock_client, store):
        orchestrator = DatasetSyncOrchestrator(
            mock_client, store, resolver=ConflictResolver(ConflictResolutionStrategy.SERVER_WINS)
        )
        store.update_document(LOCAL)
        mock_client.push.side_effect = DatasetConflictError(6, REMOTE)

        result = await orchestrator.sync_once()

        assert result["action"] == "adopt"
        assert store.document == REMOTE
        assert store.server_version == 6
        assert store.dirty is False

    async def test_conflict_manual_keeps_changes_pending(self, mock_client, store):
        orchestrator = DatasetSyncOrchestrator(
            mock_client, store, resolver=ConflictResolver(ConflictResolutionStrategy.MANUAL)
        )
        store.update_document(LOCAL)
        mock_client.push.side_effect = DatasetConflictError(6, REMOTE)

        result = await orchestrator.sync_once()

        assert result["action"] == "conflict"
        assert store.document == LOCAL
        assert store.dirty is True

    async def test_cycles_never_overlap(self, orchestrator, mock_client, store):
        store.replace_from_server(LOCAL, 1)
        active = 0
        peak = 0

        async def slow_pull():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return {"version": 1, "data": LOCAL}

        mock_client.pull.side_effect = slow_pull

        await asyncio.gather(*(orchestrator.sync_once() for _ in range(5)))

        assert peak == 1
        assert mock_client.pull.await_count == 5


class TestBackgroundLoop:

    async def test_start_runs_initial_sync_and_stop_cancels(self, orchestrator, mock_client):
        await orchestrator.start()
        await asyncio.sleep(0.05)

        assert orchestrator.is_running
        mock_client.pull.assert_awaited()

        await orchestrator.stop()

        assert not orchestrator.is_running

    async def test_periodic_cycles(self, mock_client, store):
        orchestrator = DatasetSyncOrchestrator(mock_client, store, interval_seconds=0.01)
        mock_client.pull.return_value = {"version": 2, "data": REMOTE}

        await orchestrator.start()
        await asyncio.sleep(0.1)
        await orchestrator.stop()

        assert mock_client.pull.await_count >= 2

    async def test_loop_survives_unexpected_errors(self, mock_client, store):
        orchestrator = DatasetSyncOrchestrator(mock_client, store, interval_seconds=0.01)
        mock_client.pull.side_effect = RuntimeError("unexpected")

        await orchestrator.start()
        await asyncio.sleep(0.1)

        assert orchestrator.is_running
        assert mock_client.pull.await_count >= 2
        await orchestrator.stop()

    async def test_local_change_is_pushed_after_debounce(self, orchestrator, mock_client, store):
        orchestrator.notify_local_change({"students": [{"id": "A"}]})
        orchestrator.notify_local_change(LOCAL)

        assert store.dirty is True
        await asyncio.sleep(0.1)

        mock_client.push.assert_awaited_once_with(LOCAL, 0)
        assert store.dirty is False
        await orchestrator.stop()

    async def test_no_push_after_stop(self, orchestrator, mock_client):
        orchestrator.notify_local_change(LOCAL)
        await orchestrator.stop()
        await asyncio.sleep(0.05)

        mock_client.push.assert_not_awaited()


class TestCreateOrchestrator:

    def test_requires_base_url(self, monkeypatch, store):
        monkeypatch.setattr(settings, "SYNC_API_BASE_URL", None)

        with pytest.raises(ValueError):
            create_orchestrator("token", store)

    def test_builds_from_settings(self, monkeypatch, store):
        monkeypatch.setattr(settings, "SYNC_API_BASE_URL", "http://sync.example.test/")
        monkeypatch.setattr(settings, "SYNC_CLIENT_CONFLICT_STRATEGY", "server_wins")
        monkeypatch.setattr(settings, "SYNC_CLIENT_DEBOUNCE_SECONDS", 2.5)

        orchestrator = create_orchestrator("token", store)

        assert orchestrator.client.base_url == "http://sync.example.test"
        assert orchestrator.client.token == "token"
        assert orchestrator.resolver.strategy == ConflictResolutionStrategy.SERVER_WINS
        assert orchestrator.debounce_seconds == 2.5
