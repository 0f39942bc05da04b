"""
Client-side dataset storage.

Keeps the working copy of the dataset, the last server version the client
has seen and whether local edits are waiting to be pushed.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from schoolsync.services.sync.records import empty_dataset_document


logger = logging.getLogger(__name__)


class JsonFileDatasetStore:
    """
    Dataset working copy persisted to a JSON file.

    With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._document: Dict[str, Any] = empty_dataset_document()
        self._server_version = 0
        self._dirty = False
        self._load()

    @property
    def document(self) -> Dict[str, Any]:
        return copy.deepcopy(self._document)

    @property
    def server_version(self) -> int:
        return self._server_version

    @property
    def dirty(self) -> bool:
        return self._dirty

    def update_document(self, document: Dict[str, Any]) -> None:
        """Record a local edit; the change stays pending until pushed."""
        self._document = copy.deepcopy(document)
        self._dirty = True
        self._save()

    def mark_dirty(self) -> None:
        self._dirty = True
        self._save()

    def replace_from_server(self, document: Any, server_version: int) -> None:
        """Adopt the server's dataset, discarding pending local edits."""
        self._document = copy.deepcopy(document) if isinstance(document, dict) else empty_dataset_document()
        self._server_version = server_version
        self._dirty = False
        self._save()

    def mark_pushed(self, server_version: int) -> None:
        self._server_version = server_version
        self._dirty = False
        self._save()

    def set_server_version(self, server_version: int) -> None:
        self._server_version = server_version
        self._save()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading local dataset from {self.path}: {e}")
            return

        if not isinstance(state, dict):
            logger.error(f"Ignoring local dataset file {self.path}: not a JSON object")
            return

        if isinstance(state.get("document"), dict):
            self._document = state["document"]
        try:
            self._server_version = int(state.get("serverVersion") or 0)
        except (TypeError, ValueError):
            self._server_version = 0
        self._dirty = bool(state.get("dirty"))

    def _save(self) -> None:
        if self.path is None:
            return
        state = {
            "document": self._document,
            "serverVersion": self._server_version,
            "dirty": self._dirty
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)
