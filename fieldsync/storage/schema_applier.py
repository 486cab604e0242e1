# ==============================================
# SchemaApplier
# ==============================================
#
# PURPOSE:
#   Turns registry definitions into DDL against MySQL and keeps the
#   registry in step with what was actually created.
#
# WHY THIS CLASS EXISTS:
#   Schema evolution here is additive only: tables are created and
#   columns are added, nothing is ever dropped or re-typed. Every
#   statement must be safe to run twice, because a crash between the
#   DDL and the registry write would otherwise leave the two out of
#   step. Running the same apply again simply catches the registry up.
#
# CLASS: SchemaApplier
# --------------------
#   Constructor:
#   ------------
#   - __init__(mysql_client, registry)
#
#   Methods:
#   --------
#   - create_table(definition) -> TableDefinition
#       CREATE TABLE IF NOT EXISTS with standard + dynamic columns.
#       If the physical table already exists only the missing columns
#       are added.
#
#   - add_column(table, column) -> TableDefinition
#       Add one column if the physical table lacks it, then record it
#       in the registry if the registry lacks it.
#
#   - column_ddl(column) -> str
#   - standard_column_ddl(standard_columns) -> list[str]
#
# TYPE MAPPING:
# -------------
#   TEXT        → TEXT
#   NUMBER      → DOUBLE
#   BOOLEAN     → BOOLEAN
#   TIMESTAMP   → DATETIME(6)
#   TEXT_ARRAY  → JSON   (array of strings; MySQL has no array type)
#
# ==============================================

from typing import List

import pymysql
from loguru import logger

from fieldsync.errors import SchemaApplyError
from fieldsync.persistence.models import (
    SURROGATE_KEY,
    ColumnDefinition,
    ColumnType,
    FieldMapping,
    StandardColumns,
    TableDefinition,
)
from fieldsync.persistence.schema_registry import SchemaRegistry
from fieldsync.storage.mysql_client import MySQLClient, quote_identifier


SQL_TYPES = {
    ColumnType.TEXT: "TEXT",
    ColumnType.NUMBER: "DOUBLE",
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.TIMESTAMP: "DATETIME(6)",
    ColumnType.TEXT_ARRAY: "JSON",
}


class SchemaApplier:
    """Idempotent, additive DDL driven by registry definitions."""

    def __init__(self, mysql_client: MySQLClient, registry: SchemaRegistry):
        self.mysql_client = mysql_client
        self.registry = registry

    def create_table(self, definition: TableDefinition) -> TableDefinition:
        """
        Materialize a table definition.

        Args:
            definition: Table to create; its columns may or may not be
                in the registry yet

        Returns:
            The registry's TableDefinition after the apply

        Raises:
            SchemaApplyError: if MySQL rejects a statement
        """
        table = definition.name
        try:
            exists = self.mysql_client.table_exists(table)
        except pymysql.MySQLError as e:
            raise SchemaApplyError(f"Could not inspect table '{table}': {e}", table=table, cause=str(e)) from e

        if not exists:
            column_sql = [f"{quote_identifier(SURROGATE_KEY)} BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY"]
            column_sql.extend(self.standard_column_ddl(definition.standard_columns))
            column_sql.extend(
                f"{quote_identifier(c.safe_name)} {self.column_ddl(c)}"
                for c in definition.columns
            )
            try:
                self.mysql_client.create_table(table, column_sql)
            except pymysql.MySQLError as e:
                raise SchemaApplyError(
                    f"CREATE TABLE '{table}' failed: {e}", table=table, cause=str(e)
                ) from e
            logger.info(f"Created table '{table}' with {len(definition.columns)} dynamic columns")
            self.registry.ensure_table(table, definition.source_name)
            for column in definition.columns:
                self._register(table, column)
        else:
            logger.debug(f"Table '{table}' already exists, adding missing columns only")
            self.registry.ensure_table(table, definition.source_name)
            for column in definition.columns:
                self.add_column(table, column)

        return self.registry.ensure_table(table, definition.source_name)

    def add_column(self, table: str, column: ColumnDefinition) -> TableDefinition:
        """
        Add one column, tolerating a column that already exists.

        Args:
            table: Safe table name (registered or not)
            column: Column to add

        Returns:
            The registry's TableDefinition after the apply

        Raises:
            SchemaApplyError: if MySQL rejects the ALTER TABLE
        """
        try:
            added = self.mysql_client.add_column(table, column.safe_name, self.column_ddl(column))
        except pymysql.MySQLError as e:
            raise SchemaApplyError(
                f"ADD COLUMN '{table}.{column.safe_name}' failed: {e}",
                table=table,
                column=column.safe_name,
                cause=str(e),
            ) from e

        if added:
            logger.info(f"Added column '{table}.{column.safe_name}' ({SQL_TYPES[column.type]})")

        self.registry.ensure_table(table)
        self._register(table, column)
        return self.registry.ensure_table(table)

    def column_ddl(self, column: ColumnDefinition) -> str:
        nullability = "NULL" if column.nullable else "NOT NULL"
        return f"{SQL_TYPES[column.type]} {nullability}"

    def standard_column_ddl(self, standard_columns: StandardColumns) -> List[str]:
        return [
            f"{quote_identifier(standard_columns.external_id)} VARCHAR(191) NOT NULL UNIQUE",
            f"{quote_identifier(standard_columns.created_at)} DATETIME(6) NOT NULL",
            f"{quote_identifier(standard_columns.updated_at)} DATETIME(6) NOT NULL",
            f"{quote_identifier(standard_columns.is_deleted)} BOOLEAN NOT NULL DEFAULT FALSE",
        ]

    def _register(self, table: str, column: ColumnDefinition) -> None:
        definition = self.registry.get_table(table)
        if definition is not None and definition.has_column(column.safe_name):
            return
        mapping = FieldMapping(namespace=table, raw_name=column.raw_name, safe_name=column.safe_name)
        self.registry.add_column(table, mapping, column.type, column.nullable)
