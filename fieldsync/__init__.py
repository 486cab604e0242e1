# ==============================================
# fieldsync
# ==============================================
#
# Sync records from a schemaless upstream API into MySQL, growing the
# schema only through human-approved patches.
#
# Package Structure:
#
# fieldsync/
# ├── normalization/    # Raw names → safe names, type inference, coercion
# ├── persistence/      # Models, metadata store, schema registry
# ├── storage/          # MySQL client and idempotent DDL
# ├── workflow/         # Pending schema patches
# ├── sync/             # Record sources and the upsert engine
# ├── config.py         # Configuration management
# ├── errors.py         # Exception hierarchy
# ├── log.py            # loguru setup
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
