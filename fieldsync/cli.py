# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Operator interface: review and decide schema patches, inspect the
#   registry, run syncs and look at sync state.
#
# COMMANDS:
# ---------
# 1. Patches:
#    python -m fieldsync.cli patches list [--all] [--table T]
#    python -m fieldsync.cli patches approve ID --by NAME [--type TYPE]
#    python -m fieldsync.cli patches reject ID --by NAME [--reason TEXT]
#    python -m fieldsync.cli patches create TABLE RAW_NAME [--type TYPE] [--reason TEXT] [--by NAME]
#
# 2. Schema:
#    python -m fieldsync.cli schema list
#    python -m fieldsync.cli schema show TABLE
#
# 3. Sync:
#    python -m fieldsync.cli sync TABLE [TABLE ...] [--from-file PATH]
#    python -m fieldsync.cli state TABLE
#
# EXIT CODES:
# -----------
#   0 → success
#   1 → operator error (unknown patch, illegal transition, ...) or a
#       sync run that failed
#
# IMPLEMENTATION:
# ---------------
# - argparse for parsing
# - build_app() wires every component from get_config()
# - MySQL is only connected for commands that run DDL or writes
#
# ==============================================

import argparse
import json
import sys
from dataclasses import dataclass
from typing import List, Optional

import pymysql
from loguru import logger

from fieldsync.config import AppConfig, get_config
from fieldsync.errors import FieldSyncError
from fieldsync.log import configure_logging
from fieldsync.normalization import CollisionResolver, NameNormalizer, TypeInferrer, ValueCoercer
from fieldsync.persistence import JsonMetadataStore, MetadataStore, SchemaRegistry
from fieldsync.persistence.models import ColumnType, PatchStatus, PendingPatch
from fieldsync.storage import MySQLClient, SchemaApplier
from fieldsync.sync import HttpRecordSource, RecordSource, StaticRecordSource, SyncUpsertEngine
from fieldsync.workflow import PatchWorkflow


@dataclass
class App:
    """Every wired component the commands need."""
    config: AppConfig
    store: MetadataStore
    registry: SchemaRegistry
    resolver: CollisionResolver
    type_inferrer: TypeInferrer
    mysql_client: MySQLClient
    applier: SchemaApplier
    workflow: PatchWorkflow

    def engine(self, source: RecordSource) -> SyncUpsertEngine:
        return SyncUpsertEngine(
            store=self.store,
            registry=self.registry,
            resolver=self.resolver,
            applier=self.applier,
            mysql_client=self.mysql_client,
            workflow=self.workflow,
            source=source,
            type_inferrer=self.type_inferrer,
            coercer=ValueCoercer(self.type_inferrer),
            sample_size=self.config.sync.sample_size,
            external_id_field=self.config.sync.external_id_field,
            page_size=self.config.source.page_size,
        )


def build_app(config: AppConfig, store: Optional[MetadataStore] = None, mysql_client: Optional[MySQLClient] = None) -> App:
    store = store or JsonMetadataStore(config.metadata_dir)
    registry = SchemaRegistry(store)
    resolver = CollisionResolver(
        registry,
        normalizer=NameNormalizer(max_table_name_length=config.sync.identifier_max_length),
        max_length=config.sync.identifier_max_length,
        suffix_headroom=config.sync.collision_suffix_headroom,
    )
    type_inferrer = TypeInferrer(sample_size=config.sync.sample_size)
    mysql_client = mysql_client or MySQLClient(
        host=config.mysql.host,
        port=config.mysql.port,
        user=config.mysql.user,
        password=config.mysql.password,
        database=config.mysql.database,
    )
    applier = SchemaApplier(mysql_client, registry)
    workflow = PatchWorkflow(store, registry, resolver, applier, type_inferrer)
    return App(
        config=config,
        store=store,
        registry=registry,
        resolver=resolver,
        type_inferrer=type_inferrer,
        mysql_client=mysql_client,
        applier=applier,
        workflow=workflow,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldsync",
        description="Sync upstream records into MySQL with human-approved schema changes.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # patches
    patches = commands.add_parser("patches", help="Review and decide schema patches")
    patch_commands = patches.add_subparsers(dest="patch_command", required=True)

    p_list = patch_commands.add_parser("list", help="List pending patches")
    p_list.add_argument("--all", action="store_true", help="Include decided patches")
    p_list.add_argument("--table", help="Only patches for this table")

    p_approve = patch_commands.add_parser("approve", help="Approve a patch and add its column")
    p_approve.add_argument("id", type=int)
    p_approve.add_argument("--by", required=True, help="Approver name")
    p_approve.add_argument("--type", dest="column_type", help="Override the suggested column type")

    p_reject = patch_commands.add_parser("reject", help="Reject a pending patch")
    p_reject.add_argument("id", type=int)
    p_reject.add_argument("--by", required=True, help="Approver name")
    p_reject.add_argument("--reason", help="Why the column is not wanted")

    p_create = patch_commands.add_parser("create", help="Request a column by hand")
    p_create.add_argument("table")
    p_create.add_argument("raw_name", help="Field name as it appears in the source")
    p_create.add_argument("--type", dest="column_type", default="TEXT")
    p_create.add_argument("--reason", default="")
    p_create.add_argument("--by", default="operator")

    # schema
    schema = commands.add_parser("schema", help="Inspect the schema registry")
    schema_commands = schema.add_subparsers(dest="schema_command", required=True)
    schema_commands.add_parser("list", help="List registered tables")
    s_show = schema_commands.add_parser("show", help="Show one table's columns and mappings")
    s_show.add_argument("table")

    # sync
    sync = commands.add_parser("sync", help="Sync one or more collections")
    sync.add_argument("tables", nargs="+", help="Source collection names")
    sync.add_argument("--from-file", help="Read records from a JSON file instead of the Data API")

    # state
    state = commands.add_parser("state", help="Show sync state of a table")
    state.add_argument("table")

    return parser


# ------------------------------------------
# Commands
# ------------------------------------------

def _print_patch(patch: PendingPatch) -> None:
    print(
        f"  #{patch.id:<4} [{patch.status.value:<8}] {patch.table}.{patch.field_name} "
        f"({patch.suggested_type.value}) raw='{patch.raw_name}'"
    )
    if patch.reason:
        print(f"        reason: {patch.reason}")
    if patch.status == PatchStatus.APPLIED or patch.status == PatchStatus.FAILED:
        print(f"        result: {patch.execution_result}")
    if patch.status == PatchStatus.REJECTED:
        print(f"        rejected by {patch.rejected_by}")


def cmd_patches(app: App, args) -> int:
    workflow = app.workflow

    if args.patch_command == "list":
        patches = workflow.list_all(args.table) if args.all else workflow.list_pending(args.table)
        if not patches:
            print("No patches." if args.all else "No pending patches.")
            return 0
        print(f"{len(patches)} patch(es):")
        for patch in patches:
            _print_patch(patch)
        return 0

    if args.patch_command == "approve":
        column_type = ColumnType.parse(args.column_type) if args.column_type else None
        app.mysql_client.connect()
        try:
            patch = workflow.approve(args.id, args.by, column_type)
        finally:
            app.mysql_client.disconnect()
        _print_patch(patch)
        if patch.status == PatchStatus.FAILED:
            print(f"✗ Patch #{patch.id} failed")
            return 1
        print(f"✓ Patch #{patch.id} applied")
        return 0

    if args.patch_command == "reject":
        patch = workflow.reject(args.id, args.by, args.reason)
        _print_patch(patch)
        print(f"✓ Patch #{patch.id} rejected")
        return 0

    if args.patch_command == "create":
        patch = workflow.create_manual(
            args.table,
            args.raw_name,
            suggested_type=ColumnType.parse(args.column_type),
            reason=args.reason,
            requested_by=args.by,
        )
        _print_patch(patch)
        return 0

    return 1


def cmd_schema(app: App, args) -> int:
    if args.schema_command == "list":
        tables = app.registry.list_tables()
        if not tables:
            print("No tables registered.")
            return 0
        for table in tables:
            print(f"  {table.name:<32} {len(table.columns):>4} columns  (source: {table.source_name or table.name})")
        return 0

    if args.schema_command == "show":
        print(json.dumps(app.registry.describe_table(args.table), indent=2))
        return 0

    return 1


def cmd_sync(app: App, args) -> int:
    if args.from_file:
        source: RecordSource = StaticRecordSource.from_file(
            args.from_file, args.tables[0] if len(args.tables) == 1 else None
        )
    else:
        source = HttpRecordSource(
            base_url=app.config.source.base_url,
            api_token=app.config.source.api_token,
            timeout_seconds=app.config.source.timeout_seconds,
        )

    engine = app.engine(source)
    app.mysql_client.connect()
    try:
        reports = engine.sync_tables(args.tables)
    except KeyboardInterrupt:
        print("\nStopped (Ctrl+C detected); the table is marked cancelled and the next sync resumes it")
        return 1
    finally:
        app.mysql_client.disconnect()

    for report in reports:
        mark = "✓" if report.complete else "!"
        print(
            f"{mark} {report.table}: {report.status.value}, "
            f"{report.records_upserted}/{report.records_processed} records upserted"
        )
        for safe_name, count in report.skipped_fields.items():
            print(f"    skipped '{safe_name}' in {count} record(s)")
        if report.patches:
            print(f"    pending patches: {', '.join(f'#{p}' for p in report.patches)}")
    return 0


def cmd_state(app: App, args) -> int:
    engine = app.engine(StaticRecordSource())
    state = engine.get_state(args.table)
    print(json.dumps(state.to_dict(), indent=2))
    return 0


COMMANDS = {
    "patches": cmd_patches,
    "schema": cmd_schema,
    "sync": cmd_sync,
    "state": cmd_state,
}


def main(argv: Optional[List[str]] = None, app: Optional[App] = None) -> int:
    args = build_parser().parse_args(argv)

    if app is None:
        config = get_config()
        configure_logging(config.log_level)
        app = build_app(config)

    try:
        return COMMANDS[args.command](app, args)
    except (FieldSyncError, pymysql.MySQLError, ValueError) as e:
        logger.debug(f"Command '{args.command}' failed: {e!r}")
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
