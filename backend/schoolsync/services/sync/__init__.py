"""
Dataset Synchronization Engine

Reconciles the client-held dataset document with the per-school relational
store.

Components:
- Typed decoding with per-field default policies for untrusted documents
- Exporter: relational rows to the denormalized document
- Importer: wholesale transactional replace of a school's rows
- Version store: optimistic concurrency over the dataset record
- Sync service: the pull/push protocol
"""

from .records import decode_dataset, empty_dataset_document, is_dataset_empty
from .exporter import DatasetExporter
from .importer import DatasetImporter
from .version_store import DatasetVersionStore
from .dataset_sync import (
    DatasetSyncService,
    SyncConfig,
    DatasetSnapshot,
    PushResult,
    DatasetSyncError,
    VersionConflictError,
    DatasetStorageError,
    SyncTimeoutError
)

__all__ = [
    'decode_dataset',
    'empty_dataset_document',
    'is_dataset_empty',
    'DatasetExporter',
    'DatasetImporter',
    'DatasetVersionStore',
    'DatasetSyncService',
    'SyncConfig',
    'DatasetSnapshot',
    'PushResult',
    'DatasetSyncError',
    'VersionConflictError',
    'DatasetStorageError',
    'SyncTimeoutError'
]
