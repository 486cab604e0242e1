# ==============================================
# PERSISTENCE (Metadata across restarts)
# ==============================================
#
# This package holds the durable state of the engine: field name
# mappings, table definitions, schema patches and sync progress.
#
# Modules:
# --------
# - models.py           → Data classes + enums, with to_dict/from_dict
# - metadata_store.py   → JSON-file and in-memory document stores
# - schema_registry.py  → Table definitions and raw↔safe name mappings
#
# ==============================================

from .metadata_store import MetadataStore, JsonMetadataStore, InMemoryMetadataStore
from .schema_registry import SchemaRegistry

__all__ = [
    "MetadataStore",
    "JsonMetadataStore",
    "InMemoryMetadataStore",
    "SchemaRegistry",
]
