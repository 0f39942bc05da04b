"""
Pydantic schemas for the dataset pull/push protocol
"""

from pydantic import BaseModel, Field, validator
from typing import Dict, Any, Optional


class DatasetPushRequest(BaseModel):
    """Body of a push: the whole dataset document plus the version it was based on"""
    base_version: Optional[int] = Field(default=None, ge=0, alias="baseVersion")
    data: Any

    @validator("data", pre=True)
    def data_required(cls, v):
        if v is None:
            raise ValueError("data is required")
        return v

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "baseVersion": 3,
                "data": {
                    "students": [{"id": "S001", "nameEn": "Aung Aung", "status": "Active"}],
                    "attendance": {"2024-06-03": {"C10A": {"S001": {"status": "PRESENT", "remark": ""}}}}
                }
            }
        }


class DatasetPullResponse(BaseModel):
    """Live export under the stored version"""
    key: str
    version: int
    data: Dict[str, Any]
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    class Config:
        populate_by_name = True


class DatasetPushResponse(BaseModel):
    key: str
    version: int
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    class Config:
        populate_by_name = True


class VersionConflictResponse(BaseModel):
    """409 body; ``serverData`` is the stored snapshot, not a fresh export"""
    error: str = "Version conflict"
    server_version: int = Field(alias="serverVersion")
    server_data: Any = Field(default=None, alias="serverData")

    class Config:
        populate_by_name = True


class SyncHealthResponse(BaseModel):
    status: str
    dataset_key: str = Field(alias="datasetKey")
    timestamp: str

    class Config:
        populate_by_name = True
