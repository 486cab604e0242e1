import json
import os
from pathlib import Path
from typing import Any, Dict

from loguru import logger


# ==============================================
# MetadataStore
# ==============================================
#
# PURPOSE:
#   Persist all engine metadata so that name mappings, table shapes,
#   schema patches and sync progress survive process restarts.
#
# WHY THIS CLASS EXISTS:
#   Safe names must be stable across runs: once "Status" became
#   "status" and "STATUS " became "status1", a restart must not swap
#   them. The registry and the patch workflow keep their state here,
#   and tests swap in the in-memory variant.
#
# WHAT IS PERSISTED (one JSON document each):
#   1. mappings      → {namespace: [FieldMapping dicts]}
#   2. tables        → {table_name: TableDefinition dict}
#   3. patches       → {"next_id": int, "items": [PendingPatch dicts]}
#   4. sync_state    → {table_name: SyncState dict}
#
DOCUMENTS = ("mappings", "tables", "patches", "sync_state")


class MetadataStore:
    """
    Interface for document persistence.

    Documents are plain JSON-compatible dicts addressed by name.
    """

    def load(self, name: str) -> Dict[str, Any]:
        raise NotImplementedError

    def save(self, name: str, document: Dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed store for tests and dry runs."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    def load(self, name: str) -> Dict[str, Any]:
        # Hand out copies so callers can't mutate stored state by accident
        return json.loads(json.dumps(self._documents.get(name, {})))

    def save(self, name: str, document: Dict[str, Any]) -> None:
        self._documents[name] = json.loads(json.dumps(document))


# CLASS: JsonMetadataStore
# ------------------------
#   Stateful, holds a reference to the storage directory.
#
#   Files created:
#   - metadata/mappings.json
#   - metadata/tables.json
#   - metadata/patches.json
#   - metadata/sync_state.json
#
#   Writes go to a temp file first and are moved into place with
#   os.replace, so a crash mid-write never leaves a truncated document.
#
class JsonMetadataStore(MetadataStore):
    """
    Handles persistence of engine metadata as JSON files on disk.
    """

    def __init__(self, storage_dir: str = "metadata/"):
        """
        Initialize the metadata store.

        Args:
            storage_dir: Directory to store metadata files
        """
        self.storage_dir = Path(storage_dir)

        # Create directory if it doesn't exist
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """
        Get the file path of a document.

        Args:
            name: Document name (one of DOCUMENTS)

        Returns:
            Path of the backing JSON file
        """
        if name not in DOCUMENTS:
            raise ValueError(f"Unknown metadata document '{name}'")
        return self.storage_dir / f"{name}.json"

    def load(self, name: str) -> Dict[str, Any]:
        """
        Load a document from disk.

        Args:
            name: Document name

        Returns:
            The stored document, or an empty dict if no file exists yet
        """
        path = self.path_for(name)
        if not path.exists():
            logger.debug(f"No {name} file found at {path}")
            return {}

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, name: str, document: Dict[str, Any]) -> None:
        """
        Save a document to disk atomically.

        Args:
            name: Document name
            document: JSON-serializable dict
        """
        path = self.path_for(name)
        tmp_path = path.with_suffix(".json.tmp")

        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

        logger.debug(f"Saved {name} to {path}")


# FILE STRUCTURE:
# ---------------
#   metadata/
#   ├── mappings.json     → {namespace: [{raw_name, safe_name, ...}]}
#   ├── tables.json       → {table: {name, columns, standard_columns, ...}}
#   ├── patches.json      → {next_id, items: [{id, table, field_name, status, ...}]}
#   └── sync_state.json   → {table: {cursor, records_synced, status, ...}}
#
# =============================================
