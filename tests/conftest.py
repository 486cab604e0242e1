# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# This file contains shared fixtures for all tests.
#
# FIXTURES:
# ---------
# - memory_store      → InMemoryMetadataStore
# - json_store        → JsonMetadataStore under tmp_path
# - registry          → SchemaRegistry on memory_store
# - resolver          → CollisionResolver on registry
# - fake_connection   → FakeConnection (pymysql stand-in, see below)
# - mysql_client      → MySQLClient wired to fake_connection
# - applier           → SchemaApplier
# - workflow          → PatchWorkflow
# - make_engine       → factory: make_engine(source, **overrides)
#
# FAKE CONNECTION:
# ----------------
# Understands exactly the SQL MySQLClient emits:
#   - INFORMATION_SCHEMA.TABLES / COLUMNS lookups
#   - CREATE TABLE IF NOT EXISTS / ALTER TABLE ... ADD COLUMN
#   - INSERT ... ON DUPLICATE KEY UPDATE keyed by externalId
# Unknown columns raise pymysql.err.OperationalError(1054, ...) the way
# a real server does.
#
# ==============================================

import re

import pymysql
import pytest

from fieldsync.normalization import CollisionResolver
from fieldsync.persistence import InMemoryMetadataStore, JsonMetadataStore, SchemaRegistry
from fieldsync.storage import MySQLClient, SchemaApplier
from fieldsync.sync import SyncUpsertEngine
from fieldsync.workflow import PatchWorkflow


TEST_DATABASE = "fieldsync_test"

CREATE_RE = re.compile(r"CREATE TABLE IF NOT EXISTS `([^`]+)` \((.*)\)", re.DOTALL)
ALTER_RE = re.compile(r"ALTER TABLE `([^`]+)` ADD COLUMN `([^`]+)` (\S+)")
INSERT_RE = re.compile(r"INSERT INTO `([^`]+)` \(([^)]*)\)")
UPDATE_COLUMN_RE = re.compile(r"`([^`]+)` = VALUES")
COLUMN_DEF_RE = re.compile(r"^\s*`([^`]+)`\s+(\S+)")


class FakeTable:
    def __init__(self, columns):
        # column name -> data type
        self.columns = dict(columns)
        self.rows = {}

    def has_column(self, name):
        return name.lower() in {c.lower() for c in self.columns}


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self._result = []

    def execute(self, query, params=None):
        conn = self.connection
        conn.executed.append((query, params))
        self._result = []

        if query.startswith("SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES"):
            self._result = [(1 if params[1] in conn.tables else 0,)]
            return

        if query.startswith("SELECT COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS"):
            table = conn.tables.get(params[1])
            self._result = list(table.columns.items()) if table else []
            return

        match = CREATE_RE.match(query)
        if match:
            if conn.fail_ddl is not None:
                raise conn.fail_ddl
            name, body = match.groups()
            if name in conn.tables:
                return
            columns = []
            for line in body.split(",\n"):
                column = COLUMN_DEF_RE.match(line)
                if column:
                    columns.append((column.group(1), column.group(2).split("(")[0].lower()))
            conn.tables[name] = FakeTable(columns)
            return

        match = ALTER_RE.match(query)
        if match:
            if conn.fail_ddl is not None:
                raise conn.fail_ddl
            name, column, sql_type = match.groups()
            table = conn.tables.get(name)
            if table is None:
                raise pymysql.err.ProgrammingError(1146, f"Table '{TEST_DATABASE}.{name}' doesn't exist")
            if table.has_column(column):
                raise pymysql.err.OperationalError(1060, f"Duplicate column name '{column}'")
            table.columns[column] = sql_type.split("(")[0].lower()
            return

        match = INSERT_RE.match(query)
        if match:
            if conn.fail_writes is not None:
                raise conn.fail_writes
            name, column_list = match.groups()
            columns = re.findall(r"`([^`]+)`", column_list)
            table = conn.tables.get(name)
            if table is None:
                raise pymysql.err.ProgrammingError(1146, f"Table '{TEST_DATABASE}.{name}' doesn't exist")
            for column in columns:
                if not table.has_column(column):
                    raise pymysql.err.OperationalError(1054, f"Unknown column '{column}' in 'field list'")
            row = dict(zip(columns, params))
            key = row["externalId"]
            if key in table.rows:
                for column in UPDATE_COLUMN_RE.findall(query.split("ON DUPLICATE KEY UPDATE", 1)[-1]):
                    table.rows[key][column] = row[column]
            else:
                table.rows[key] = row
            return

    def fetchone(self):
        return self._result[0] if self._result else None

    def fetchall(self):
        return list(self._result)

    def close(self):
        pass


class FakeConnection:
    """Just enough of a pymysql connection for MySQLClient."""

    def __init__(self):
        self.tables = {}
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.fail_ddl = None
        self.fail_writes = None

    def cursor(self, cursor_class=None):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    def statements(self, prefix):
        return [q for q, _ in self.executed if q.startswith(prefix)]


@pytest.fixture
def memory_store():
    return InMemoryMetadataStore()


@pytest.fixture
def json_store(tmp_path):
    return JsonMetadataStore(str(tmp_path / "metadata"))


@pytest.fixture
def registry(memory_store):
    return SchemaRegistry(memory_store)


@pytest.fixture
def resolver(registry):
    return CollisionResolver(registry)


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def mysql_client(fake_connection):
    return MySQLClient("localhost", 3306, "root", "root", TEST_DATABASE, connection=fake_connection)


@pytest.fixture
def applier(mysql_client, registry):
    return SchemaApplier(mysql_client, registry)


@pytest.fixture
def workflow(memory_store, registry, resolver, applier):
    return PatchWorkflow(memory_store, registry, resolver, applier)


@pytest.fixture
def make_engine(memory_store, registry, resolver, applier, mysql_client, workflow):
    def factory(source, **overrides):
        options = {"sample_size": 200, "page_size": 100}
        options.update(overrides)
        return SyncUpsertEngine(
            store=memory_store,
            registry=registry,
            resolver=resolver,
            applier=applier,
            mysql_client=mysql_client,
            workflow=workflow,
            source=source,
            **options,
        )
    return factory
