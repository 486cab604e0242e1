# ==============================================
# SchemaRegistry
# ==============================================
#
# PURPOSE:
#   Authoritative, durable record of every table's column set and of
#   every raw-name → safe-name mapping.
#
# WHY THIS CLASS EXISTS:
#   The physical database only knows safe names. To recover the
#   original field name, to keep safe names stable across restarts and
#   to know which discovered fields are already materialized, the
#   engine needs its own record. The registry is injected into every
#   component (no module-level singleton), so tests run against an
#   InMemoryMetadataStore.
#
# CLASS: SchemaRegistry
# ---------------------
#   Constructor:
#   ------------
#   - __init__(store: MetadataStore)
#       Load mappings and tables from the store.
#
#   Methods:
#   --------
#   TABLES:
#   - ensure_table(name, source_name=None) -> TableDefinition
#   - add_column(table, mapping, column_type, nullable=True) -> TableDefinition
#   - diff(existing, discovered) -> list[ColumnDefinition]
#   - get_table / has_table / list_tables / describe_table
#
#   MAPPINGS:
#   - record_mapping(namespace, raw_name, safe_name, provisional=False)
#   - claim_mapping(namespace, safe_name, raw_name) -> FieldMapping
#   - find_mapping(namespace, raw_name) -> FieldMapping | None
#   - find_by_safe_name(namespace, safe_name) -> FieldMapping | None
#   - safe_names(namespace) -> set[str]   (lower-cased)
#   - mappings(namespace) -> list[FieldMapping]
#
# INVARIANTS:
# -----------
#   - Append-only: nothing is ever removed. A provisional mapping's
#     placeholder raw name is replaced once, when a source field claims it.
#   - Within a namespace, raw_name and safe_name are each unique
#     (safe names compared case-insensitively, as MySQL does).
#   - Every column of a table has a mapping in the table's namespace.
#
# ==============================================

from typing import Dict, List, Optional, Set

from loguru import logger

from fieldsync.errors import SchemaRegistryError
from fieldsync.persistence.metadata_store import MetadataStore
from fieldsync.persistence.models import (
    ColumnDefinition,
    ColumnType,
    FieldMapping,
    TableDefinition,
    utc_now,
)


class SchemaRegistry:
    """
    Durable store of table definitions and field mappings.
    """

    def __init__(self, store: MetadataStore):
        """
        Initialize the registry and load previously persisted state.

        Args:
            store: Backing metadata store (JSON files or in-memory)
        """
        self._store = store
        self._tables: Dict[str, TableDefinition] = {}
        self._mappings: Dict[str, List[FieldMapping]] = {}
        self._load()

    # ------------------------------------------
    # Tables
    # ------------------------------------------

    def ensure_table(self, name: str, source_name: Optional[str] = None) -> TableDefinition:
        """
        Get a table definition, creating an empty one if absent.

        A new definition only carries the standard columns. Calling this
        again for the same name returns the stored definition unchanged.

        Args:
            name: Safe table name
            source_name: Upstream collection name, kept for display

        Returns:
            The (possibly new) TableDefinition
        """
        table = self._tables.get(name)
        if table is not None:
            return table

        table = TableDefinition(name=name, source_name=source_name)
        self._tables[name] = table
        self._save_tables()
        logger.info(f"Registered table '{name}' (source: {source_name or name})")
        return table

    def add_column(
        self,
        table: str,
        mapping: FieldMapping,
        column_type: ColumnType,
        nullable: bool = True
    ) -> TableDefinition:
        """
        Append one column to a table definition.

        Args:
            table: Safe table name (must already be registered)
            mapping: Resolved mapping for the column
            column_type: Logical column type
            nullable: Whether NULL is allowed

        Returns:
            The updated TableDefinition

        Raises:
            SchemaRegistryError: unknown table, foreign mapping, or the
                column is already present
        """
        definition = self._tables.get(table)
        if definition is None:
            raise SchemaRegistryError(f"Table '{table}' is not registered", {"table": table})

        if mapping.namespace != table:
            raise SchemaRegistryError(
                f"Mapping for '{mapping.raw_name}' belongs to '{mapping.namespace}', not '{table}'",
                {"table": table, "field": mapping.safe_name},
            )

        if definition.has_column(mapping.safe_name):
            raise SchemaRegistryError(
                f"Column '{mapping.safe_name}' already exists in table '{table}'",
                {"table": table, "field": mapping.safe_name},
            )

        # Columns must be reachable through the reverse map
        known = self.find_by_safe_name(table, mapping.safe_name)
        if known is None:
            self.record_mapping(table, mapping.raw_name, mapping.safe_name)
        elif known.raw_name != mapping.raw_name:
            raise SchemaRegistryError(
                f"Safe name '{mapping.safe_name}' in '{table}' already maps to '{known.raw_name}'",
                {"table": table, "field": mapping.safe_name},
            )

        definition.columns.append(ColumnDefinition(
            safe_name=mapping.safe_name,
            raw_name=mapping.raw_name,
            type=column_type,
            nullable=nullable,
        ))
        self._save_tables()
        logger.info(f"Registered column '{table}.{mapping.safe_name}' ({column_type.value})")
        return definition

    def diff(self, existing: TableDefinition, discovered: List[ColumnDefinition]) -> List[ColumnDefinition]:
        """
        Find discovered columns that are not materialized yet.

        Args:
            existing: Current table definition
            discovered: Columns derived from incoming records

        Returns:
            Discovered columns missing from `existing`, in discovered order
        """
        pending: List[ColumnDefinition] = []
        seen: Set[str] = set()
        for column in discovered:
            key = column.safe_name.lower()
            if key in seen or existing.has_column(column.safe_name):
                continue
            seen.add(key)
            pending.append(column)
        return pending

    def get_table(self, name: str) -> Optional[TableDefinition]:
        return self._tables.get(name)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def list_tables(self) -> List[TableDefinition]:
        return [self._tables[name] for name in sorted(self._tables)]

    def describe_table(self, name: str) -> Dict:
        """
        Operator view of one table: materialized columns plus mappings
        that are known but not yet columns.

        Args:
            name: Safe table name

        Returns:
            Dict with table name, standard columns, columns and pending mappings

        Raises:
            SchemaRegistryError: if the table is unknown
        """
        definition = self._tables.get(name)
        if definition is None:
            raise SchemaRegistryError(f"Table '{name}' is not registered", {"table": name})

        unmaterialized = [
            m for m in self._mappings.get(name, [])
            if not definition.has_column(m.safe_name)
        ]
        return {
            "table": definition.name,
            "source_name": definition.source_name,
            "standard_columns": definition.standard_columns.names(),
            "columns": [
                {
                    "safe_name": c.safe_name,
                    "raw_name": c.raw_name,
                    "type": c.type.value,
                    "nullable": c.nullable,
                }
                for c in definition.columns
            ],
            "unmaterialized": [
                {"safe_name": m.safe_name, "raw_name": m.raw_name}
                for m in unmaterialized
            ],
        }

    # ------------------------------------------
    # Mappings
    # ------------------------------------------

    def record_mapping(
        self,
        namespace: str,
        raw_name: str,
        safe_name: str,
        provisional: bool = False
    ) -> FieldMapping:
        """
        Persist a (namespace, raw_name, safe_name) triple.

        Re-recording an identical triple is a no-op.

        Args:
            namespace: Table namespace
            raw_name: Original field name
            safe_name: Resolved identifier
            provisional: The raw name is a placeholder, see claim_mapping()

        Returns:
            The stored FieldMapping

        Raises:
            SchemaRegistryError: if either name is already taken by a
                different mapping in the namespace
        """
        by_raw = self.find_mapping(namespace, raw_name)
        by_safe = self.find_by_safe_name(namespace, safe_name)

        if by_raw is not None and by_raw is by_safe:
            return by_raw
        if by_raw is not None:
            raise SchemaRegistryError(
                f"Raw name '{raw_name}' in '{namespace}' already maps to '{by_raw.safe_name}'",
                {"table": namespace, "field": safe_name},
            )
        if by_safe is not None:
            raise SchemaRegistryError(
                f"Safe name '{safe_name}' in '{namespace}' already maps to '{by_safe.raw_name}'",
                {"table": namespace, "field": safe_name},
            )

        mapping = FieldMapping(
            namespace=namespace,
            raw_name=raw_name,
            safe_name=safe_name,
            created_at=utc_now(),
            provisional=provisional,
        )
        self._mappings.setdefault(namespace, []).append(mapping)
        self._save_mappings()
        logger.debug(f"Mapped '{raw_name}' -> '{safe_name}' in '{namespace}'")
        return mapping

    def claim_mapping(self, namespace: str, safe_name: str, raw_name: str) -> FieldMapping:
        """
        Give a provisional mapping its real raw name.

        The column already registered under the safe name takes the raw
        name too, so reverse lookups lead to the actual source field.

        Args:
            namespace: Table namespace
            safe_name: Safe name of the provisional mapping
            raw_name: Source field that resolves to that safe name

        Returns:
            The now definitive FieldMapping

        Raises:
            SchemaRegistryError: no provisional mapping for safe_name, or
                raw_name already maps elsewhere
        """
        mapping = self.find_by_safe_name(namespace, safe_name)
        if mapping is None or not mapping.provisional:
            raise SchemaRegistryError(
                f"No provisional mapping for '{safe_name}' in '{namespace}'",
                {"table": namespace, "field": safe_name},
            )

        other = self.find_mapping(namespace, raw_name)
        if other is not None and other is not mapping:
            raise SchemaRegistryError(
                f"Raw name '{raw_name}' in '{namespace}' already maps to '{other.safe_name}'",
                {"table": namespace, "field": safe_name},
            )

        placeholder = mapping.raw_name
        mapping.raw_name = raw_name
        mapping.provisional = False
        self._save_mappings()

        definition = self._tables.get(namespace)
        column = definition.column(mapping.safe_name) if definition is not None else None
        if column is not None:
            column.raw_name = raw_name
            self._save_tables()

        logger.info(f"'{raw_name}' claimed '{mapping.safe_name}' in '{namespace}' (was '{placeholder}')")
        return mapping

    def find_mapping(self, namespace: str, raw_name: str) -> Optional[FieldMapping]:
        for mapping in self._mappings.get(namespace, []):
            if mapping.raw_name == raw_name:
                return mapping
        return None

    def find_by_safe_name(self, namespace: str, safe_name: str) -> Optional[FieldMapping]:
        lowered = safe_name.lower()
        for mapping in self._mappings.get(namespace, []):
            if mapping.safe_name.lower() == lowered:
                return mapping
        return None

    def safe_names(self, namespace: str) -> Set[str]:
        """Lower-cased safe names already taken in a namespace."""
        return {m.safe_name.lower() for m in self._mappings.get(namespace, [])}

    def mappings(self, namespace: str) -> List[FieldMapping]:
        return list(self._mappings.get(namespace, []))

    # ------------------------------------------
    # Persistence
    # ------------------------------------------

    def _load(self) -> None:
        tables = self._store.load("tables")
        self._tables = {
            name: TableDefinition.from_dict(data)
            for name, data in tables.items()
        }

        mappings = self._store.load("mappings")
        self._mappings = {
            namespace: [FieldMapping.from_dict(m) for m in items]
            for namespace, items in mappings.items()
        }

        if self._tables or self._mappings:
            logger.info(
                f"Loaded {len(self._tables)} tables and "
                f"{sum(len(v) for v in self._mappings.values())} field mappings"
            )

    def _save_tables(self) -> None:
        self._store.save("tables", {
            name: definition.to_dict()
            for name, definition in self._tables.items()
        })

    def _save_mappings(self) -> None:
        self._store.save("mappings", {
            namespace: [m.to_dict() for m in items]
            for namespace, items in self._mappings.items()
        })
