# ==============================================
# SYNC (Source → MySQL)
# ==============================================
#
# Modules:
# --------
# - record_source.py   → Paginated record sources (HTTP Data API, static)
# - upsert_engine.py   → Per-table sync with schema discovery and patches
#
# ==============================================

from .record_source import HttpRecordSource, RecordPage, RecordSource, StaticRecordSource
from .upsert_engine import SyncReport, SyncUpsertEngine

__all__ = [
    "HttpRecordSource",
    "RecordPage",
    "RecordSource",
    "StaticRecordSource",
    "SyncReport",
    "SyncUpsertEngine"
]
