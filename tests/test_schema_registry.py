# ==============================================
# Tests for SchemaRegistry and MetadataStore
# ==============================================

import pytest

from fieldsync.errors import SchemaRegistryError
from fieldsync.persistence import JsonMetadataStore, SchemaRegistry
from fieldsync.persistence.models import ColumnDefinition, ColumnType, FieldMapping


def mapping(table, raw, safe):
    return FieldMapping(namespace=table, raw_name=raw, safe_name=safe)


class TestTables:
    def test_ensure_table_is_idempotent(self, registry):
        first = registry.ensure_table("perf", "Agent Perf")
        second = registry.ensure_table("perf")
        assert first is second
        assert second.source_name == "Agent Perf"
        assert second.columns == []
        assert second.standard_columns.names() == ["externalId", "createdAt", "updatedAt", "isDeleted"]

    def test_add_column_records_mapping(self, registry):
        registry.ensure_table("perf")
        registry.add_column("perf", mapping("perf", "Tier Bonus", "tierBonus"), ColumnType.NUMBER)
        assert registry.get_table("perf").column_names() == ["tierBonus"]
        assert registry.find_mapping("perf", "Tier Bonus").safe_name == "tierBonus"

    def test_add_column_twice_fails(self, registry):
        registry.ensure_table("perf")
        registry.add_column("perf", mapping("perf", "a", "a"), ColumnType.TEXT)
        with pytest.raises(SchemaRegistryError):
            registry.add_column("perf", mapping("perf", "a", "A"), ColumnType.TEXT)

    def test_add_column_to_unknown_table_fails(self, registry):
        with pytest.raises(SchemaRegistryError):
            registry.add_column("nope", mapping("nope", "a", "a"), ColumnType.TEXT)

    def test_add_column_with_foreign_mapping_fails(self, registry):
        registry.ensure_table("perf")
        with pytest.raises(SchemaRegistryError):
            registry.add_column("perf", mapping("deals", "a", "a"), ColumnType.TEXT)

    def test_diff_returns_unmaterialized_in_order(self, registry):
        table = registry.ensure_table("perf")
        registry.add_column("perf", mapping("perf", "a", "a"), ColumnType.TEXT)
        discovered = [
            ColumnDefinition("c", "c", ColumnType.TEXT),
            ColumnDefinition("a", "a", ColumnType.TEXT),
            ColumnDefinition("b", "b", ColumnType.NUMBER),
            ColumnDefinition("C", "C", ColumnType.TEXT),
        ]
        assert [c.safe_name for c in registry.diff(table, discovered)] == ["c", "b"]

    def test_list_tables_sorted(self, registry):
        registry.ensure_table("zeta")
        registry.ensure_table("alpha")
        assert [t.name for t in registry.list_tables()] == ["alpha", "zeta"]

    def test_describe_table(self, registry):
        registry.ensure_table("perf")
        registry.add_column("perf", mapping("perf", "Tier Bonus", "tierBonus"), ColumnType.NUMBER)
        registry.record_mapping("perf", "New Field", "newField")
        view = registry.describe_table("perf")
        assert view["columns"][0] == {
            "safe_name": "tierBonus", "raw_name": "Tier Bonus", "type": "NUMBER", "nullable": True,
        }
        assert view["unmaterialized"] == [{"safe_name": "newField", "raw_name": "New Field"}]

    def test_describe_unknown_table(self, registry):
        with pytest.raises(SchemaRegistryError):
            registry.describe_table("nope")


class TestMappings:
    def test_record_same_triple_is_noop(self, registry):
        first = registry.record_mapping("perf", "Status", "status")
        assert registry.record_mapping("perf", "Status", "status") is first
        assert len(registry.mappings("perf")) == 1

    def test_safe_name_taken_case_insensitively(self, registry):
        registry.record_mapping("perf", "Status", "status")
        with pytest.raises(SchemaRegistryError):
            registry.record_mapping("perf", "STATUS", "Status")

    def test_raw_name_cannot_be_remapped(self, registry):
        registry.record_mapping("perf", "Status", "status")
        with pytest.raises(SchemaRegistryError):
            registry.record_mapping("perf", "Status", "status1")

    def test_provisional_mapping_is_claimed_once(self, registry):
        registry.ensure_table("perf")
        registry.record_mapping("perf", "tierBonus", "tierBonus", provisional=True)
        registry.add_column("perf", mapping("perf", "tierBonus", "tierBonus"), ColumnType.NUMBER)

        claimed = registry.claim_mapping("perf", "tierBonus", "Tier Bonus %")
        assert (claimed.raw_name, claimed.provisional) == ("Tier Bonus %", False)
        assert registry.find_mapping("perf", "Tier Bonus %") is claimed
        assert registry.get_table("perf").column("tierBonus").raw_name == "Tier Bonus %"
        with pytest.raises(SchemaRegistryError):
            registry.claim_mapping("perf", "tierBonus", "Other")

    def test_provisional_flag_survives_reload(self, json_store):
        SchemaRegistry(json_store).record_mapping("perf", "x", "x", provisional=True)
        assert SchemaRegistry(json_store).find_by_safe_name("perf", "x").provisional


class TestPersistence:
    def test_reload_from_json_files(self, json_store):
        registry = SchemaRegistry(json_store)
        registry.ensure_table("perf", "perf")
        registry.add_column("perf", mapping("perf", "Tags", "tags"), ColumnType.TEXT_ARRAY)

        reloaded = SchemaRegistry(json_store)
        table = reloaded.get_table("perf")
        assert table.column("tags").type == ColumnType.TEXT_ARRAY
        assert reloaded.find_by_safe_name("perf", "TAGS").raw_name == "Tags"

    def test_json_store_lifecycle(self, tmp_path):
        store = JsonMetadataStore(str(tmp_path))
        assert store.load("patches") == {}
        assert not store.path_for("patches").exists()
        store.save("patches", {"next_id": 2, "items": []})
        assert store.path_for("patches").exists()
        assert store.load("patches")["next_id"] == 2
        assert not list(tmp_path.glob("*.tmp"))

    def test_unknown_document(self, json_store):
        with pytest.raises(ValueError):
            json_store.load("other")

    def test_memory_store_hands_out_copies(self, memory_store):
        memory_store.save("tables", {"a": {"x": 1}})
        memory_store.load("tables")["a"]["x"] = 2
        assert memory_store.load("tables") == {"a": {"x": 1}}
