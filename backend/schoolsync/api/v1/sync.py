"""
API endpoints for dataset pull/push synchronization
"""

from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
import logging

from schoolsync.core.database import get_db
from schoolsync.core.auth import AuthUser, get_current_user
from schoolsync.services.sync import (
    DatasetSyncService,
    SyncConfig,
    VersionConflictError,
    DatasetStorageError,
    SyncTimeoutError
)
from schoolsync.services.sync.version_store import isoformat_utc
from schoolsync.schemas.sync import (
    DatasetPushRequest,
    DatasetPullResponse,
    DatasetPushResponse,
    VersionConflictResponse,
    SyncHealthResponse
)

logger = logging.getLogger(__name__)
router = APIRouter()

# Seconds a client should wait before retrying a timed-out push
RETRY_AFTER_SECONDS = 5


def get_sync_config() -> SyncConfig:
    return SyncConfig.from_settings()


@router.get("/pull", response_model=DatasetPullResponse)
async def pull_dataset(
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    config: SyncConfig = Depends(get_sync_config)
):
    """Return the school's live dataset under its stored version"""

    service = DatasetSyncService(db, config)
    try:
        snapshot = await service.pull(current_user.school_id)
    except Exception as e:
        logger.error(f"Pull failed for school {current_user.school_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load dataset"
        )

    return DatasetPullResponse(
        key=snapshot.key,
        version=snapshot.version,
        data=snapshot.data,
        updated_at=isoformat_utc(snapshot.updated_at)
    )


@router.post("/push", response_model=DatasetPushResponse)
async def push_dataset(
    push_request: DatasetPushRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
    config: SyncConfig = Depends(get_sync_config)
):
    """Replace the school's dataset; 409 when baseVersion is stale"""

    service = DatasetSyncService(db, config)
    try:
        result = await service.push(
            current_user.school_id,
            push_request.base_version,
            push_request.data
        )
    except VersionConflictError as e:
        body = VersionConflictResponse(server_version=e.server_version, server_data=e.server_data)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=jsonable_encoder(body.model_dump(by_alias=True))
        )
    except SyncTimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync timed out, retry later",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)}
        )
    except DatasetStorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store dataset"
        )

    logger.info(f"User {current_user.username} pushed dataset version {result.version} for school {current_user.school_id}")

    return DatasetPushResponse(
        key=result.key,
        version=result.version,
        updated_at=isoformat_utc(result.updated_at)
    )


@router.get("/health", response_model=SyncHealthResponse)
async def sync_health_check(config: SyncConfig = Depends(get_sync_config)):
    """Health check endpoint for the sync service"""

    return SyncHealthResponse(
        status="healthy",
        dataset_key=config.dataset_key,
        timestamp=isoformat_utc(datetime.now(timezone.utc))
    )
