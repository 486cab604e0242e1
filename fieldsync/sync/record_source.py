# ==============================================
# Record Sources
# ==============================================
#
# PURPOSE:
#   Fetch source records page by page with an offset cursor.
#
# CLASSES:
# --------
# - RecordPage (dataclass)
#     records: list[dict]   raw records, source order
#     cursor: int           offset of the first record in this page
#     remaining: int        records left after this page
#     next_cursor / has_more properties
#
# - RecordSource
#     fetch_page(collection, cursor, limit) -> RecordPage
#
# - HttpRecordSource(RecordSource)
#     Data API over HTTP:
#       GET {base_url}/api/1.1/obj/{collection}?cursor=N&limit=M
#       Authorization: Bearer <token>
#     Response:
#       {"response": {"results": [...], "cursor": N, "remaining": R}}
#
# - StaticRecordSource(RecordSource)
#     Serves records from memory or from a JSON file shaped as
#     {"collection": [records...]} (or a bare list for one collection).
#
# ==============================================

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from fieldsync.errors import SourceError


@dataclass
class RecordPage:
    records: List[Dict[str, Any]] = field(default_factory=list)
    cursor: int = 0
    remaining: int = 0

    @property
    def next_cursor(self) -> int:
        return self.cursor + len(self.records)

    @property
    def has_more(self) -> bool:
        return self.remaining > 0


class RecordSource:
    """Interface for paginated record sources."""

    def fetch_page(self, collection: str, cursor: int = 0, limit: int = 100) -> RecordPage:
        raise NotImplementedError


class HttpRecordSource(RecordSource):
    """
    Reads a collection from the upstream Data API with requests.

    Failures (connection errors, non-2xx responses, malformed bodies)
    raise SourceError. There is no retry; the sync cursor only moves
    forward after a page is written, so re-running resumes cleanly.
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        if api_token:
            self.session.headers.update({"Authorization": f"Bearer {api_token}"})

    def fetch_page(self, collection: str, cursor: int = 0, limit: int = 100) -> RecordPage:
        url = f"{self.base_url}/api/1.1/obj/{collection}"
        params = {"cursor": cursor, "limit": limit}

        try:
            response = self.session.get(url, params=params, timeout=self.timeout_seconds)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise SourceError(
                f"Failed to fetch '{collection}' at cursor {cursor}: {e}",
                {"collection": collection, "cursor": cursor},
            ) from e
        except ValueError as e:
            raise SourceError(
                f"Response for '{collection}' is not JSON: {e}",
                {"collection": collection, "cursor": cursor},
            ) from e

        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict) or not isinstance(body.get("results"), list):
            raise SourceError(
                f"Unexpected response shape for '{collection}'",
                {"collection": collection, "cursor": cursor},
            )

        page = RecordPage(
            records=body["results"],
            cursor=int(body.get("cursor", cursor)),
            remaining=int(body.get("remaining", 0)),
        )
        logger.debug(
            f"Fetched {len(page.records)} records from '{collection}' "
            f"(cursor {page.cursor}, {page.remaining} remaining)"
        )
        return page


class StaticRecordSource(RecordSource):
    """In-memory collections; used for offline runs and tests."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.collections = collections or {}

    @classmethod
    def from_file(cls, path: str, collection: Optional[str] = None) -> "StaticRecordSource":
        """
        Load records from a JSON file.

        Args:
            path: File holding {"collection": [...]} or a bare list
            collection: Collection name for a bare list

        Raises:
            SourceError: unreadable file or unsupported shape
        """
        try:
            with open(Path(path), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SourceError(f"Cannot read records from {path}: {e}", {"path": path}) from e

        if isinstance(data, list):
            if collection is None:
                raise SourceError(f"{path} holds a bare list; a collection name is required", {"path": path})
            return cls({collection: data})

        if isinstance(data, dict) and all(isinstance(v, list) for v in data.values()):
            return cls(data)

        raise SourceError(f"{path} must hold a list or an object of lists", {"path": path})

    def add(self, collection: str, records: List[Dict[str, Any]]) -> None:
        self.collections.setdefault(collection, []).extend(records)

    def fetch_page(self, collection: str, cursor: int = 0, limit: int = 100) -> RecordPage:
        records = self.collections.get(collection, [])
        page = records[cursor:cursor + limit]
        return RecordPage(
            records=page,
            cursor=cursor,
            remaining=max(len(records) - cursor - len(page), 0),
        )
