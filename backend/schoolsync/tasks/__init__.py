"""
Background task management for dataset sync.
"""

from .sync_tasks import DatasetSyncOrchestrator, create_orchestrator

__all__ = [
    "DatasetSyncOrchestrator",
    "create_orchestrator"
]
