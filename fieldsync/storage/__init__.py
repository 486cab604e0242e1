# ==============================================
# STORAGE (MySQL)
# ==============================================
#
# This package handles all database operations:
# connecting, creating tables and columns on the fly, and upserting rows.
#
# Modules:
# --------
# - mysql_client.py    → MySQL connection, introspection and upsert
# - schema_applier.py  → Registry definitions → idempotent DDL
#
# ==============================================

from .mysql_client import MySQLClient
from .schema_applier import SchemaApplier, SQL_TYPES

__all__ = [
    "MySQLClient",
    "SchemaApplier",
    "SQL_TYPES"
]
