# ==============================================
# Tests for record sources
# ==============================================

import json

import pytest
import requests

from fieldsync.errors import SourceError
from fieldsync.sync import HttpRecordSource, StaticRecordSource


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, response):
        self.headers = {}
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class TestHttpRecordSource:
    def test_fetch_page(self):
        session = _FakeSession(_FakeResponse({
            "response": {"results": [{"_id": "1"}, {"_id": "2"}], "cursor": 10, "remaining": 5}
        }))
        source = HttpRecordSource("https://app.example.com/", "secret", 12.0, session=session)

        page = source.fetch_page("perf", cursor=10, limit=2)

        assert [r["_id"] for r in page.records] == ["1", "2"]
        assert page.next_cursor == 12
        assert page.has_more
        assert session.headers["Authorization"] == "Bearer secret"
        assert session.calls == [
            ("https://app.example.com/api/1.1/obj/perf", {"cursor": 10, "limit": 2}, 12.0)
        ]

    def test_http_error(self):
        source = HttpRecordSource("https://x", session=_FakeSession(_FakeResponse({}, 500)))
        with pytest.raises(SourceError):
            source.fetch_page("perf")

    def test_connection_error(self):
        session = _FakeSession(requests.ConnectionError("refused"))
        with pytest.raises(SourceError):
            HttpRecordSource("https://x", session=session).fetch_page("perf")

    def test_bad_body(self):
        session = _FakeSession(_FakeResponse({"results": []}))
        with pytest.raises(SourceError):
            HttpRecordSource("https://x", session=session).fetch_page("perf")

    def test_no_token_no_header(self):
        session = _FakeSession(_FakeResponse({"response": {"results": []}}))
        page = HttpRecordSource("https://x", session=session).fetch_page("perf")
        assert "Authorization" not in session.headers
        assert not page.has_more


class TestStaticRecordSource:
    def test_pages(self):
        source = StaticRecordSource({"perf": [{"_id": str(i)} for i in range(5)]})
        first = source.fetch_page("perf", 0, 2)
        last = source.fetch_page("perf", 4, 2)
        assert (first.remaining, first.next_cursor) == (3, 2)
        assert (len(last.records), last.has_more) == (1, False)

    def test_from_file(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text(json.dumps({"perf": [{"_id": "1"}]}))
        assert StaticRecordSource.from_file(str(path)).fetch_page("perf").records == [{"_id": "1"}]

    def test_from_file_bare_list_needs_collection(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text(json.dumps([{"_id": "1"}]))
        with pytest.raises(SourceError):
            StaticRecordSource.from_file(str(path))
        assert StaticRecordSource.from_file(str(path), "perf").collections == {"perf": [{"_id": "1"}]}

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceError):
            StaticRecordSource.from_file(str(tmp_path / "nope.json"))
