# ==============================================
# SyncUpsertEngine
# ==============================================
#
# PURPOSE:
#   Pull records from a RecordSource one table at a time and upsert
#   them into MySQL, discovering the schema on first contact and
#   proposing patches for fields that appear later.
#
# WHY THIS CLASS EXISTS:
#   The upstream schema drifts. New fields must not break the sync and
#   must not alter the schema without a human, so the engine writes
#   every column it can, skips the ones it cannot, and leaves a
#   PendingPatch behind for each skipped field. Anything else that goes
#   wrong stops the run at once with the table and record id.
#
# CLASS: SyncUpsertEngine
# -----------------------
#   Constructor:
#   ------------
#   - __init__(store, registry, resolver, applier, mysql_client,
#              workflow, source, normalizer=None, type_inferrer=None,
#              coercer=None, sample_size=200, external_id_field="_id",
#              page_size=100)
#
#   Methods:
#   --------
#   - sync_table(collection) -> SyncReport
#   - sync_tables(collections) -> list[SyncReport]   (sequential)
#   - stop() -> None
#       Checked between records and between tables.
#       KeyboardInterrupt during a run also leaves the state cancelled.
#   - get_state(table) -> SyncState
#
# FLOW (per table):
# -----------------
#   1. Load SyncState; resume from its cursor only if the last run
#      failed, was cancelled or never finished.
#   2. First contact → sample records, infer types, create table.
#   3. Page by page, record by record:
#        raw field → safe name; registry.diff() picks out the fields
#        with no column yet → skip + patch, write the rest
#   4. "Unknown column" from MySQL → patch, drop column, re-issue write.
#   5. Any other failure → state failed, UnhandledWriteError.
#
# ==============================================

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pymysql
from loguru import logger

from fieldsync.errors import (
    MissingColumnError,
    SourceError,
    UnhandledWriteError,
    ValueCoercionError,
)
from fieldsync.normalization.collision_resolver import CollisionResolver
from fieldsync.normalization.name_normalizer import NameNormalizer
from fieldsync.normalization.type_inferrer import TypeInferrer
from fieldsync.normalization.value_coercer import ValueCoercer
from fieldsync.persistence.metadata_store import MetadataStore
from fieldsync.persistence.models import (
    ColumnDefinition,
    SyncState,
    SyncStatus,
    TableDefinition,
    utc_now,
)
from fieldsync.persistence.schema_registry import SchemaRegistry
from fieldsync.storage.mysql_client import MySQLClient
from fieldsync.storage.schema_applier import SchemaApplier
from fieldsync.sync.record_source import RecordSource
from fieldsync.workflow.patch_workflow import PatchWorkflow


# A new run starts where the previous one stopped only in these states
RESUMABLE_STATUSES = (SyncStatus.RUNNING, SyncStatus.FAILED, SyncStatus.CANCELLED)


@dataclass
class SyncReport:
    """Outcome of one table's sync run."""
    table: str
    run_id: str
    records_processed: int = 0
    records_upserted: int = 0
    skipped_fields: Dict[str, int] = field(default_factory=dict)
    patches: List[int] = field(default_factory=list)
    status: SyncStatus = SyncStatus.RUNNING
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def complete(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    def skip(self, safe_name: str) -> None:
        self.skipped_fields[safe_name] = self.skipped_fields.get(safe_name, 0) + 1

    def add_patch(self, patch_id: int) -> None:
        if patch_id not in self.patches:
            self.patches.append(patch_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "run_id": self.run_id,
            "records_processed": self.records_processed,
            "records_upserted": self.records_upserted,
            "skipped_fields": dict(self.skipped_fields),
            "patches": list(self.patches),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "complete": self.complete,
        }


class SyncUpsertEngine:
    """
    One-table-at-a-time ingestion with human-gated schema growth.
    """

    def __init__(
        self,
        store: MetadataStore,
        registry: SchemaRegistry,
        resolver: CollisionResolver,
        applier: SchemaApplier,
        mysql_client: MySQLClient,
        workflow: PatchWorkflow,
        source: RecordSource,
        normalizer: Optional[NameNormalizer] = None,
        type_inferrer: Optional[TypeInferrer] = None,
        coercer: Optional[ValueCoercer] = None,
        sample_size: int = 200,
        external_id_field: str = "_id",
        page_size: int = 100
    ):
        self._store = store
        self.registry = registry
        self.resolver = resolver
        self.applier = applier
        self.mysql_client = mysql_client
        self.workflow = workflow
        self.source = source
        self.normalizer = normalizer or resolver.normalizer
        self.type_inferrer = type_inferrer or TypeInferrer(sample_size=sample_size)
        self.coercer = coercer or ValueCoercer(self.type_inferrer)
        self.sample_size = sample_size
        self.external_id_field = external_id_field
        self.page_size = page_size
        self._stop_event = threading.Event()

    # ------------------------------------------
    # Public API
    # ------------------------------------------

    def sync_table(self, collection: str) -> SyncReport:
        """
        Sync one source collection into its table.

        Args:
            collection: Source collection name

        Returns:
            SyncReport (status completed, incomplete or cancelled)

        Raises:
            UnhandledWriteError: a write failed for a reason other than
                a missing column; the state is marked failed
            SourceError: the source could not be read
        """
        self._stop_event.clear()
        return self._sync_table(collection)

    def sync_tables(self, collections: Iterable[str]) -> List[SyncReport]:
        """Sync collections strictly one after another."""
        self._stop_event.clear()
        reports = []
        for collection in collections:
            if self._stop_event.is_set():
                logger.info(f"Stop requested, not starting '{collection}'")
                break
            reports.append(self._sync_table(collection))
        return reports

    def stop(self) -> None:
        """Ask the running sync to stop at the next record boundary."""
        self._stop_event.set()

    def get_state(self, table: str) -> SyncState:
        states = self._store.load("sync_state")
        data = states.get(table)
        if data is None:
            data = states.get(self.normalizer.normalize_table_name(table))
        return SyncState.from_dict(data) if data else SyncState(table=table)

    # ------------------------------------------
    # Per table
    # ------------------------------------------

    def _sync_table(self, collection: str) -> SyncReport:
        table = self.normalizer.normalize_table_name(collection)
        run_id = uuid.uuid4().hex
        report = SyncReport(table=table, run_id=run_id)

        state = self.get_state(table)
        if state.status not in RESUMABLE_STATUSES:
            state.cursor = 0
            state.records_synced = 0
        elif state.cursor:
            logger.info(f"Resuming '{table}' at cursor {state.cursor} (last run {state.status.value})")

        state.source_name = collection
        state.run_id = run_id
        state.status = SyncStatus.RUNNING
        state.last_error = None
        self._save_state(state)

        logger.info(f"Sync run {run_id} started for '{collection}' → table '{table}'")

        try:
            if not self.registry.has_table(table):
                self._discover(collection, table)

            cursor = state.cursor
            while True:
                if self._stop_event.is_set():
                    return self._finish(state, report, SyncStatus.CANCELLED)

                page = self.source.fetch_page(collection, cursor, self.page_size)
                for record in page.records:
                    if self._stop_event.is_set():
                        return self._finish(state, report, SyncStatus.CANCELLED)
                    self._process_record(table, record, report, state)
                    report.records_processed += 1

                # Cursor only moves once the whole page is written
                cursor = page.next_cursor
                state.cursor = cursor
                state.records_synced += len(page.records)
                self._save_state(state)

                if not page.records or not page.has_more:
                    break

        except (UnhandledWriteError, SourceError) as e:
            state.status = SyncStatus.FAILED
            state.last_error = str(e)
            self._save_state(state)
            report.status = SyncStatus.FAILED
            report.finished_at = utc_now()
            logger.error(f"Sync run {run_id} for '{table}' failed: {e}")
            raise
        except KeyboardInterrupt:
            # Interrupted mid-page: the stored cursor still points at the
            # page start, so the next run resumes there
            self._finish(state, report, SyncStatus.CANCELLED)
            raise

        status = SyncStatus.INCOMPLETE if (report.skipped_fields or report.patches) else SyncStatus.COMPLETED
        return self._finish(state, report, status)

    def _discover(self, collection: str, table: str) -> TableDefinition:
        """
        Sample the collection, infer column types and create the table.
        """
        samples: List[Dict[str, Any]] = []
        cursor = 0
        while len(samples) < self.sample_size:
            limit = min(self.page_size, self.sample_size - len(samples))
            page = self.source.fetch_page(collection, cursor, limit)
            samples.extend(page.records)
            cursor = page.next_cursor
            if not page.records or not page.has_more:
                break

        inferred = self.type_inferrer.infer_fields(samples, exclude=[self.external_id_field])

        columns = []
        for raw_name, result in inferred.items():
            safe_name = self.resolver.resolve_raw(table, raw_name)
            columns.append(ColumnDefinition(
                safe_name=safe_name,
                raw_name=raw_name,
                type=result.column_type,
                nullable=result.nullable,
            ))

        logger.info(f"Discovered {len(columns)} fields in '{collection}' from {len(samples)} sample records")
        definition = TableDefinition(name=table, source_name=collection, columns=columns)
        return self.applier.create_table(definition)

    # ------------------------------------------
    # Per record
    # ------------------------------------------

    def _process_record(self, table: str, record: Dict[str, Any], report: SyncReport, state: SyncState) -> None:
        definition = self.registry.ensure_table(table)
        standard = definition.standard_columns

        external_id = record.get(self.external_id_field)
        if external_id is None:
            raise UnhandledWriteError(
                table, None, ValueError(f"record has no '{self.external_id_field}' field")
            )
        external_id = str(external_id)

        values: Dict[str, Any] = {}
        discovered: List[ColumnDefinition] = []
        for raw_name, value in record.items():
            if raw_name == self.external_id_field:
                continue
            safe_name = self.resolver.resolve_raw(table, raw_name)
            values[safe_name.lower()] = value
            discovered.append(ColumnDefinition(
                safe_name=safe_name,
                raw_name=raw_name,
                type=self.type_inferrer.classify(value),
            ))

        for column in self.registry.diff(definition, discovered):
            report.skip(column.safe_name)
            patch = self.workflow.request_column(
                table,
                column.raw_name,
                column.safe_name,
                suggested_type=column.type,
                sync_run_id=report.run_id,
            )
            report.add_patch(patch.id)
            logger.warning(
                f"'{table}' record {external_id}: field '{column.raw_name}' has no column "
                f"'{column.safe_name}' yet, skipped (patch {patch.id})"
            )

        row: Dict[str, Any] = {standard.external_id: external_id}
        try:
            for column in definition.columns:
                row[column.safe_name] = self.coercer.coerce(
                    values.get(column.safe_name.lower()), column.type, column.safe_name
                )
        except ValueCoercionError as e:
            raise UnhandledWriteError(table, external_id, e) from e

        now = utc_now().replace(tzinfo=None)
        row[standard.is_deleted] = False
        row[standard.updated_at] = now
        row[standard.created_at] = now

        self._write(table, row, record, report, standard.names())
        report.records_upserted += 1
        state.last_record_id = external_id

    def _write(
        self,
        table: str,
        row: Dict[str, Any],
        record: Dict[str, Any],
        report: SyncReport,
        protected: List[str]
    ) -> None:
        standard = self.registry.ensure_table(table).standard_columns
        external_id = row[standard.external_id]
        while True:
            try:
                self.mysql_client.upsert_row(
                    table,
                    row,
                    key_column=standard.external_id,
                    insert_only=[standard.created_at],
                )
                return
            except MissingColumnError as e:
                column = self._row_key(row, e.column)
                if column is None or column in protected:
                    raise UnhandledWriteError(table, external_id, e) from e

                patch = self.workflow.create_from_error(
                    table, e.message, record=record, sync_run_id=report.run_id
                )
                if patch is not None:
                    report.add_patch(patch.id)
                report.skip(column)
                logger.warning(
                    f"'{table}' record {external_id}: MySQL has no column '{column}', "
                    f"re-issuing write without it"
                )
                del row[column]
            except pymysql.MySQLError as e:
                raise UnhandledWriteError(table, external_id, e) from e

    # ------------------------------------------
    # Helpers
    # ------------------------------------------

    @staticmethod
    def _row_key(row: Dict[str, Any], column: Optional[str]) -> Optional[str]:
        if column is None:
            return None
        lowered = column.lower()
        for key in row:
            if key.lower() == lowered:
                return key
        return None

    def _finish(self, state: SyncState, report: SyncReport, status: SyncStatus) -> SyncReport:
        state.status = status
        self._save_state(state)
        report.status = status
        report.finished_at = utc_now()
        logger.info(
            f"Sync run {report.run_id} for '{report.table}' {status.value}: "
            f"{report.records_upserted}/{report.records_processed} records upserted, "
            f"{len(report.skipped_fields)} skipped fields, {len(report.patches)} patches"
        )
        return report

    def _save_state(self, state: SyncState) -> None:
        state.updated_at = utc_now()
        states = self._store.load("sync_state")
        states[state.table] = state.to_dict()
        self._store.save("sync_state", states)
