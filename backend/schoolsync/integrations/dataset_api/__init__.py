from .client import DatasetApiClient, DatasetApiError, DatasetConflictError
from .local_store import JsonFileDatasetStore

__all__ = [
    "DatasetApiClient",
    "DatasetApiError",
    "DatasetConflictError",
    "JsonFileDatasetStore"
]
