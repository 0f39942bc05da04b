"""
Utility modules for the school dataset sync service.
"""

from .conflict_resolution import (
    ConflictResolver,
    ConflictResolutionStrategy,
    ConflictResolution
)

__all__ = [
    "ConflictResolver",
    "ConflictResolutionStrategy",
    "ConflictResolution"
]
