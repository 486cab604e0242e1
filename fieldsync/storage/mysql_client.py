# ==============================================
# MySQLClient
# ==============================================
#
# PURPOSE:
#   Manages the MySQL connection and every SQL statement the engine
#   issues: table creation, column addition, introspection and the
#   per-record upsert.
#
# WHY THIS CLASS EXISTS:
#   Tables are created ON THE FLY from discovered fields and extended
#   later through approved patches. There is no predefined schema.
#   MySQL has no "ADD COLUMN IF NOT EXISTS", so idempotency is done by
#   checking INFORMATION_SCHEMA first.
#
# CLASS: MySQLClient
# ------------------
#   Stateful, holds connection to MySQL.
#
#   Constructor:
#   ------------
#   - __init__(host, port, user, password, database, connection=None)
#       Store connection params. Don't connect yet. A ready-made
#       DB-API connection can be injected (tests).
#
#   Methods:
#   --------
#   - connect() -> None
#       Establish connection. Create database if it doesn't exist.
#
#   - disconnect() -> None
#       Close connection cleanly.
#
#   - table_exists(table_name) -> bool
#
#   - get_current_columns(table_name) -> dict[str, str]
#       Query INFORMATION_SCHEMA for current column names and types.
#
#   - create_table(table_name, column_definitions) -> None
#       CREATE TABLE IF NOT EXISTS with the given column DDL fragments.
#
#   - add_column(table_name, column_name, column_definition) -> bool
#       ALTER TABLE ... ADD COLUMN unless the column already exists.
#       Returns True if a statement was issued.
#
#   - upsert_row(table_name, row, key_column, insert_only=()) -> None
#       INSERT ... ON DUPLICATE KEY UPDATE keyed by a unique column.
#       Raises MissingColumnError when MySQL reports an unknown column.
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MySQLClient(...) as db:` usage.
#
# ==============================================

import re
from typing import Any, Dict, Iterable, List, Tuple, cast

import pymysql
from loguru import logger

from fieldsync.errors import MissingColumnError

# MySQL error code for "Unknown column 'x' in 'field list'"
ER_BAD_FIELD_ERROR = 1054

UNKNOWN_COLUMN_PATTERN = re.compile(r"Unknown column '([^']+)'")


def quote_identifier(name: str) -> str:
    """Backtick-quote an identifier for MySQL."""
    return "`" + name.replace("`", "``") + "`"


class MySQLClient:
    def __init__(self, host, port, user, password, database, connection=None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.connection = connection

    def connect(self) -> None:
        # Establish connection to MySQL, create database if it doesn't exist
        if self.connection is not None:
            return
        self.connection = pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            charset="utf8mb4",
        )
        cursor = self.connection.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.database)}")
        cursor.execute(f"USE {quote_identifier(self.database)}")
        cursor.close()
        logger.info(f"Connected to MySQL {self.host}:{self.port}/{self.database}")

    def disconnect(self) -> None:
        # Close connection cleanly
        if self.connection:
            self.connection.close()
            self.connection = None

    def table_exists(self, table_name: str) -> bool:
        cursor = self._cursor()
        try:
            cursor.execute(
                "SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES "
                "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
                (self.database, table_name)
            )
            row = cursor.fetchone()
        finally:
            cursor.close()
        if row is None:
            raise RuntimeError("COUNT query returned no rows")
        return row[0] > 0

    def get_current_columns(self, table_name: str) -> dict[str, str]:
        # Query INFORMATION_SCHEMA to get current column names and types
        cursor = self._cursor()
        try:
            cursor.execute(
                "SELECT COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
                "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
                (self.database, table_name)
            )
            rows = cast(list[Tuple[Any, ...]], cursor.fetchall())
        finally:
            cursor.close()
        # Each row is a tuple: (column_name, data_type)
        return {str(name): str(dtype) for name, dtype in rows}

    def create_table(self, table_name: str, column_definitions: List[str]) -> None:
        """
        Create a table unless it already exists.

        Args:
            table_name: Safe table name
            column_definitions: DDL fragments, e.g. ["`id` BIGINT ...", ...]
        """
        columns_def = ",\n  ".join(column_definitions)
        create_query = f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} (\n  {columns_def}\n)"
        logger.debug(create_query)
        self._execute_ddl(create_query)

    def add_column(self, table_name: str, column_name: str, column_definition: str) -> bool:
        """
        Add a column unless the table already has it.

        Args:
            table_name: Safe table name
            column_name: Safe column name
            column_definition: Type and nullability, e.g. "TEXT NULL"

        Returns:
            True if ALTER TABLE was issued, False if the column existed
        """
        existing = {name.lower() for name in self.get_current_columns(table_name)}
        if column_name.lower() in existing:
            logger.debug(f"Column {table_name}.{column_name} already exists, skipping ALTER")
            return False

        alter_query = (
            f"ALTER TABLE {quote_identifier(table_name)} "
            f"ADD COLUMN {quote_identifier(column_name)} {column_definition}"
        )
        logger.debug(alter_query)
        self._execute_ddl(alter_query)
        return True

    def upsert_row(
        self,
        table_name: str,
        row: Dict[str, Any],
        key_column: str,
        insert_only: Iterable[str] = ()
    ) -> None:
        """
        Insert a row or fully overwrite the existing row with the same key.

        Args:
            table_name: Safe table name
            row: Column name → value (already coerced)
            key_column: Unique column the upsert is keyed on
            insert_only: Columns written on insert but kept on update

        Raises:
            MissingColumnError: a column in `row` does not exist
            pymysql.MySQLError: any other failure (after rollback)
        """
        keep = set(insert_only)
        columns = list(row.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        column_names = ", ".join(quote_identifier(c) for c in columns)

        # Update all columns EXCEPT the key and the insert-only ones
        update_parts = [
            f"{quote_identifier(c)} = VALUES({quote_identifier(c)})"
            for c in columns
            if c != key_column and c not in keep
        ]

        query = (
            f"INSERT INTO {quote_identifier(table_name)} ({column_names}) "
            f"VALUES ({placeholders})"
        )
        if update_parts:
            query += f" ON DUPLICATE KEY UPDATE {', '.join(update_parts)}"

        cursor = self._cursor()
        try:
            cursor.execute(query, tuple(row.values()))
            self.connection.commit()
        except pymysql.MySQLError as e:
            self.connection.rollback()
            if e.args and e.args[0] == ER_BAD_FIELD_ERROR:
                message = str(e.args[1]) if len(e.args) > 1 else str(e)
                match = UNKNOWN_COLUMN_PATTERN.search(message)
                raise MissingColumnError(
                    f"({ER_BAD_FIELD_ERROR}, \"{message}\") on table '{table_name}'",
                    table=table_name,
                    column=match.group(1).split(".")[-1] if match else None,
                ) from e
            raise
        finally:
            cursor.close()

    def _execute_ddl(self, query: str) -> None:
        # DDL auto-commits in MySQL; rollback only clears the session state
        cursor = self._cursor()
        try:
            cursor.execute(query)
            self.connection.commit()
        except pymysql.MySQLError:
            self.connection.rollback()
            raise
        finally:
            cursor.close()

    def _cursor(self):
        if self.connection is None:
            raise RuntimeError("Not connected to MySQL")
        return self.connection.cursor()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
