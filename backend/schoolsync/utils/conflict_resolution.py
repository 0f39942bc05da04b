"""
Conflict resolution utilities for dataset sync.

Decides what a client does when the server rejects its push because another
writer advanced the dataset version first.
"""

import logging
from typing import Dict, Any, Optional
from enum import Enum
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class ConflictResolutionStrategy(str, Enum):
    """Available conflict resolution strategies."""
    LOCAL_WINS = "local_wins"
    SERVER_WINS = "server_wins"
    MANUAL = "manual"


@dataclass
class ConflictResolution:
    """Result of a conflict resolution."""
    strategy: ConflictResolutionStrategy
    resolved_data: Optional[Dict[str, Any]]
    explanation: str
    base_version: int
    retry_push: bool = False
    requires_manual_review: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConflictResolver:
    """
    Resolves a rejected push against the server's current state.

    Whole-dataset sync has no field-level merge: one side's document wins, or
    the conflict is left for a person to settle.
    """

    def __init__(self, strategy: ConflictResolutionStrategy = ConflictResolutionStrategy.LOCAL_WINS):
        self.strategy = ConflictResolutionStrategy(strategy)

    def resolve(
        self,
        local_data: Dict[str, Any],
        server_version: int,
        server_data: Any
    ) -> ConflictResolution:
        """
        Resolve a version conflict using the configured strategy.

        Args:
            local_data: Document the client tried to push
            server_version: Version reported by the server
            server_data: Server's stored snapshot

        Returns:
            ConflictResolution describing the document to keep and whether
            to push it again
        """
        logger.info(f"Resolving version conflict at server version {server_version} using {self.strategy.value}")

        if self.strategy == ConflictResolutionStrategy.LOCAL_WINS:
            return ConflictResolution(
                strategy=self.strategy,
                resolved_data=local_data,
                explanation="Local dataset overwrites the server copy",
                base_version=server_version,
                retry_push=True
            )
        elif self.strategy == ConflictResolutionStrategy.SERVER_WINS:
            return ConflictResolution(
                strategy=self.strategy,
                resolved_data=server_data if isinstance(server_data, dict) else None,
                explanation="Server dataset replaces local changes",
                base_version=server_version
            )
        else:  # MANUAL
            return ConflictResolution(
                strategy=self.strategy,
                resolved_data=local_data,
                explanation="Conflict requires manual resolution; local changes kept pending",
                base_version=server_version,
                requires_manual_review=True,
                metadata={"server_version": server_version}
            )
