# ==============================================
# Tests for the CLI
# ==============================================

import json

import pytest

from fieldsync.cli import build_app, main
from fieldsync.config import AppConfig
from fieldsync.persistence.models import ColumnDefinition, ColumnType, TableDefinition
from fieldsync.storage import MySQLClient
from fieldsync.sync import StaticRecordSource


@pytest.fixture
def run(memory_store, fake_connection, mysql_client):
    def runner(*argv):
        # approve/sync disconnect when done, so every call gets a fresh client
        client = MySQLClient("localhost", 3306, "root", "root", mysql_client.database, connection=fake_connection)
        app = build_app(AppConfig(), store=memory_store, mysql_client=client)
        return main(list(argv), app=app)
    return runner


@pytest.fixture
def perf_table(applier):
    applier.create_table(TableDefinition(
        name="perf",
        source_name="perf",
        columns=[ColumnDefinition("agentName", "Agent Name", ColumnType.TEXT)],
    ))


class TestPatchCommands:
    def test_create_then_list(self, run, capsys):
        assert run("patches", "create", "perf", "Tier Bonus %", "--type", "number", "--by", "ana") == 0
        assert run("patches", "list") == 0
        out = capsys.readouterr().out
        assert "#1" in out
        assert "perf.tierBonus (NUMBER) raw='Tier Bonus %'" in out

    def test_approve(self, run, perf_table, fake_connection, capsys):
        run("patches", "create", "perf", "Tier Bonus %")
        assert run("patches", "approve", "1", "--by", "ana", "--type", "NUMBER") == 0
        assert "✓ Patch #1 applied" in capsys.readouterr().out
        assert "tierBonus" in fake_connection.tables["perf"].columns

    def test_reject_then_history(self, run, capsys):
        run("patches", "create", "perf", "Junk")
        assert run("patches", "reject", "1", "--by", "ana", "--reason", "noise") == 0
        assert run("patches", "list") == 0
        assert "No pending patches." in capsys.readouterr().out
        assert run("patches", "list", "--all") == 0
        assert "rejected by ana" in capsys.readouterr().out

    def test_operator_errors_exit_1(self, run, capsys):
        assert run("patches", "approve", "7", "--by", "ana") == 1
        assert "Patch 7 not found" in capsys.readouterr().err
        run("patches", "create", "perf", "X")
        assert run("patches", "approve", "1", "--by", "ana", "--type", "blob") == 1
        assert "Unknown column type 'blob'" in capsys.readouterr().err


class TestSchemaAndSync:
    def test_sync_from_file_then_inspect(self, run, tmp_path, fake_connection, capsys):
        path = tmp_path / "perf.json"
        path.write_text(json.dumps({"perf": [{"_id": "1", "Agent Name": "Ana", "Sales": 3}]}))

        assert run("sync", "perf", "--from-file", str(path)) == 0
        assert "✓ perf: completed, 1/1 records upserted" in capsys.readouterr().out
        assert fake_connection.tables["perf"].rows["1"]["sales"] == 3

        assert run("schema", "list") == 0
        assert "perf" in capsys.readouterr().out

        assert run("schema", "show", "perf") == 0
        view = json.loads(capsys.readouterr().out)
        assert [c["raw_name"] for c in view["columns"]] == ["Agent Name", "Sales"]

        assert run("state", "perf") == 0
        state = json.loads(capsys.readouterr().out)
        assert state["status"] == "completed"
        assert state["cursor"] == 1

    def test_failed_sync_exits_1(self, run, tmp_path, capsys):
        path = tmp_path / "perf.json"
        path.write_text(json.dumps({"perf": [{"Agent Name": "no id"}]}))
        assert run("sync", "perf", "--from-file", str(path)) == 1
        assert "Write failed for table 'perf'" in capsys.readouterr().err

    def test_unknown_table(self, run, capsys):
        assert run("schema", "show", "nope") == 1
        assert "not registered" in capsys.readouterr().err

    def test_ctrl_c_leaves_table_cancelled(self, run, tmp_path, monkeypatch, capsys):
        path = tmp_path / "perf.json"
        path.write_text(json.dumps({"perf": [{"_id": "1", "Agent Name": "Ana"}]}))

        def interrupted(self, collection, cursor=0, limit=100):
            raise KeyboardInterrupt

        monkeypatch.setattr(StaticRecordSource, "fetch_page", interrupted)
        assert run("sync", "perf", "--from-file", str(path)) == 1
        assert "Stopped (Ctrl+C detected)" in capsys.readouterr().out

        assert run("state", "perf") == 0
        assert json.loads(capsys.readouterr().out)["status"] == "cancelled"
