# ==============================================
# Tests for CollisionResolver
# ==============================================

import pytest

from fieldsync.errors import CollisionExhaustedError
from fieldsync.normalization import CollisionResolver, NameNormalizer
from fieldsync.persistence import JsonMetadataStore, SchemaRegistry


class TestResolve:
    def test_digit_prefixed_name_round_trips(self, resolver):
        safe = resolver.resolve_raw("perf", "2nd Payment %")
        assert safe == "f2ndPayment"
        assert resolver.reverse("perf", safe) == "2nd Payment %"

    def test_reserved_id_gets_field_suffix(self, resolver):
        assert resolver.resolve_raw("perf", "_id") == "idField"

    @pytest.mark.parametrize("raw, expected", [
        ("order", "orderField"),
        ("Select", "selectField"),
        ("created At", "createdAtField"),
        ("metadata", "metadataField"),
    ])
    def test_reserved_words(self, resolver, raw, expected):
        assert resolver.resolve_raw("perf", raw) == expected

    def test_colliding_names_get_numeric_suffix(self, resolver):
        first = resolver.resolve_raw("perf", "Status")
        second = resolver.resolve_raw("perf", "STATUS ")
        assert (first, second) == ("status", "status1")
        assert resolver.reverse("perf", "status") == "Status"
        assert resolver.reverse("perf", "status1") == "STATUS "

    def test_collision_check_ignores_case(self, resolver):
        resolver.resolve("perf", "a", "tierBonus")
        assert resolver.resolve("perf", "b", "TierBonus") == "TierBonus1"

    def test_namespaces_are_independent(self, resolver):
        assert resolver.resolve_raw("perf", "Status") == "status"
        assert resolver.resolve_raw("deals", "STATUS") == "status"

    def test_existing_mapping_wins(self, resolver):
        first = resolver.resolve_raw("perf", "Status")
        resolver.resolve_raw("perf", "STATUS")
        assert resolver.resolve_raw("perf", "Status") == first

    def test_long_names_leave_room_for_suffix(self, resolver):
        raw = "word " * 30
        first = resolver.resolve_raw("perf", raw)
        second = resolver.resolve_raw("perf", raw + "!")
        assert len(first) == 60
        assert second == first + "1"
        assert len(second) <= 64

    def test_exhausted_suffixes_raise(self, registry):
        resolver = CollisionResolver(registry, max_suffix=2, suffix_headroom=1)
        for raw in ("x", "x ", "x  "):
            resolver.resolve("t", raw, "x")
        with pytest.raises(CollisionExhaustedError):
            resolver.resolve("t", "x   ", "x")

    def test_headroom_must_fit_suffix(self, registry):
        with pytest.raises(ValueError):
            CollisionResolver(registry, suffix_headroom=2, max_suffix=9999)

    def test_provisional_name_goes_to_first_matching_field(self, resolver, registry):
        registry.record_mapping("perf", "tierBonus", "tierBonus", provisional=True)
        assert resolver.reverse("perf", "tierBonus") is None
        assert resolver.resolve_raw("perf", "Tier Bonus %") == "tierBonus"
        assert resolver.reverse("perf", "tierBonus") == "Tier Bonus %"
        assert resolver.resolve_raw("perf", "tier bonus") == "tierBonus1"

    def test_reverse_of_unknown_name(self, resolver):
        assert resolver.reverse("perf", "nothing") is None

    def test_round_trip_for_many_names(self, resolver):
        names = ["Name", "name", "NAME", "na me", "2nd", "_id", "", "   ", "order", "Café", "%"]
        for raw in names:
            safe = resolver.resolve_raw("t", raw)
            assert resolver.reverse("t", safe) == raw
        safe_names = [m.safe_name.lower() for m in resolver.registry.mappings("t")]
        assert len(safe_names) == len(set(safe_names))


class TestDeterminismAcrossRestarts:
    def test_same_mappings_after_reload(self, tmp_path):
        names = ["Status", "STATUS ", "_id", "2nd Payment %", "order"]

        first_run = CollisionResolver(SchemaRegistry(JsonMetadataStore(str(tmp_path))))
        before = [first_run.resolve_raw("perf", raw) for raw in names]

        # New process: fresh objects over the same files, different order
        second_run = CollisionResolver(SchemaRegistry(JsonMetadataStore(str(tmp_path))))
        after = [second_run.resolve_raw("perf", raw) for raw in reversed(names)]

        assert list(reversed(after)) == before
        assert second_run.reverse("perf", "status1") == "STATUS "

    def test_normalizer_is_configurable(self, registry):
        resolver = CollisionResolver(registry, normalizer=NameNormalizer())
        assert resolver.resolve_raw("t", "Hello World") == "helloWorld"
