# ==============================================
# Tests for NameNormalizer
# ==============================================

import re

import pytest

from fieldsync.normalization import NameNormalizer


IDENTIFIER = re.compile(r"^[a-zA-Z][a-zA-Z0-9]*$")
FALLBACK = re.compile(r"^field_[0-9a-f]{12}$")


@pytest.fixture
def normalizer():
    return NameNormalizer()


class TestNormalize:
    @pytest.mark.parametrize("raw, expected", [
        ("Achieved Tier Bonus %", "achievedTierBonus"),
        ("2nd Payment %", "f2ndPayment"),
        ("IC FRONT", "icFront"),
        ("Status", "status"),
        ("STATUS ", "status"),
        ("_id", "id"),
        ("Café Owner", "cafeOwner"),
        ("  lots   of   space  ", "lotsOfSpace"),
        ("already_snake_case", "alreadysnakecase"),
        ("userName", "username"),
    ])
    def test_known_names(self, normalizer, raw, expected):
        assert normalizer.normalize(raw) == expected

    def test_leading_digit_gets_prefix(self, normalizer):
        assert normalizer.normalize("3 months") == "f3Months"

    @pytest.mark.parametrize("raw", ["", "   ", "%%%", "日本語", None, 42])
    def test_degenerate_input_falls_back_to_hash(self, normalizer, raw):
        assert FALLBACK.match(normalizer.normalize(raw))

    def test_fallback_is_deterministic(self, normalizer):
        assert normalizer.normalize("%%%") == NameNormalizer().normalize("%%%")
        assert normalizer.normalize("%%%") != normalizer.normalize("###")

    @pytest.mark.parametrize("raw", [
        "Price (USD)", "a-b-c", "Über Größe", "x\ty\nz", "007 Agent", "ÅÄÖ", "tab\there",
    ])
    def test_output_is_always_an_identifier(self, normalizer, raw):
        name = normalizer.normalize(raw)
        assert name
        assert IDENTIFIER.match(name) or FALLBACK.match(name)


class TestNormalizeTableName:
    def test_snake_case(self, normalizer):
        assert normalizer.normalize_table_name("Agent Monthly Perf") == "agent_monthly_perf"

    def test_leading_digit(self, normalizer):
        assert normalizer.normalize_table_name("2024 deals") == "t_2024_deals"

    def test_truncated_to_limit(self):
        assert len(NameNormalizer(max_table_name_length=10).normalize_table_name("a" * 40)) == 10

    def test_empty_falls_back(self, normalizer):
        assert normalizer.normalize_table_name("!!!").startswith("table_")
