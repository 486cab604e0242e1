# ==============================================
# NameNormalizer
# ==============================================
#
# PURPOSE:
#   Convert arbitrary human-authored field names into syntactically
#   valid lower-camel-case identifiers for the relational store.
#
# WHY THIS CLASS EXISTS:
#   The upstream source lets people name fields anything:
#     - "2nd Payment %", "Achieved Tier Bonus %"
#     - "Café Owner", "IC FRONT", "_id", "   "
#   None of those are usable column names. This class produces a
#   candidate name; CollisionResolver then makes it unique.
#
# CLASS: NameNormalizer
# ---------------------
#   Stateless utility class. Takes a raw field name, returns a candidate.
#
#   Methods:
#   --------
#   - normalize(raw_name) -> str
#       Raw field name → candidate identifier. Never fails, never empty.
#
#   - normalize_table_name(name: str) -> str
#       Collection name → lower snake_case table identifier.
#
#   Internal helpers:
#   -----------------
#   - _strip_diacritics(name: str) -> str
#   - _to_lower_camel(name: str) -> str
#   - _fallback(raw_name) -> str
#
# RULES (strict order, each step only matters if the previous one
# left a problem):
# ------
#   1. Not a string / empty / whitespace-only → fallback
#   2. Strip diacritics, drop remaining non-ASCII (Café → Cafe)
#   3. Remove everything that is not a letter, digit or whitespace
#   4. Collapse whitespace and trim
#   5. Nothing left → fallback
#   6. lowerCamelCase (Achieved Tier Bonus → achievedTierBonus)
#   7. Leading digit → prefix "f" (2ndPayment → f2ndPayment)
#   8. Fallback → "field_" + 12 hex chars of sha256(raw name)
#
# ==============================================

import hashlib
import re
import unicodedata
from typing import Any


class NameNormalizer:
    """
    Converts raw field names to candidate identifiers.
    Output always matches ^[a-zA-Z][a-zA-Z0-9]*$ except the
    fallback branch, which matches ^field_[0-9a-f]{12}$.
    """

    FALLBACK_PREFIX = "field_"
    TABLE_FALLBACK_PREFIX = "table_"
    DIGIT_PREFIX = "f"
    TABLE_DIGIT_PREFIX = "t_"

    # 6 bytes of digest → 12 hex chars
    FALLBACK_HASH_CHARS = 12

    _DISALLOWED = re.compile(r"[^A-Za-z0-9\s]")
    _WHITESPACE = re.compile(r"\s+")
    _TABLE_DISALLOWED = re.compile(r"[^a-z0-9_]")
    _UNDERSCORES = re.compile(r"_+")

    def __init__(self, max_table_name_length: int = 64):
        """
        Args:
            max_table_name_length: Storage engine identifier limit for tables
        """
        self.max_table_name_length = max_table_name_length

    def normalize(self, raw_name: Any) -> str:
        """
        Convert a raw field name to a candidate identifier.

        Args:
            raw_name: Field name as received from the source (may be anything)

        Returns:
            Non-empty candidate identifier (e.g. "f2ndPayment")
        """
        if not isinstance(raw_name, str) or not raw_name.strip():
            return self._fallback(raw_name)

        name = self._strip_diacritics(raw_name)
        name = self._DISALLOWED.sub("", name)
        name = self._WHITESPACE.sub(" ", name).strip()

        if not name:
            return self._fallback(raw_name)

        name = self._to_lower_camel(name)

        if name[0].isdigit():
            name = self.DIGIT_PREFIX + name

        return name

    def normalize_table_name(self, name: Any) -> str:
        """
        Convert a collection name to a lower snake_case table name.

        Args:
            name: Upstream collection name (e.g. "Agent Monthly Perf")

        Returns:
            Table identifier (e.g. "agent_monthly_perf")
        """
        if not isinstance(name, str) or not name.strip():
            return self.TABLE_FALLBACK_PREFIX + self._digest(name)

        table = self._strip_diacritics(name).strip().lower()
        table = self._TABLE_DISALLOWED.sub("_", table)
        table = self._UNDERSCORES.sub("_", table).strip("_")

        if not table:
            return self.TABLE_FALLBACK_PREFIX + self._digest(name)

        if table[0].isdigit():
            table = self.TABLE_DIGIT_PREFIX + table

        return table[:self.max_table_name_length]

    def _strip_diacritics(self, name: str) -> str:
        """
        Decompose accented letters and drop everything outside ASCII.

        Args:
            name: Input name

        Returns:
            ASCII-only version of the name ("Çafé" -> "Cafe")
        """
        decomposed = unicodedata.normalize("NFKD", name)
        without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
        return without_marks.encode("ascii", "ignore").decode("ascii")

    def _to_lower_camel(self, name: str) -> str:
        """
        Join space-separated tokens as lowerCamelCase.

        Args:
            name: Tokens separated by single spaces

        Returns:
            First token lowercased, the rest capitalized
        """
        tokens = name.split(" ")
        head = tokens[0].lower()
        tail = "".join(token[:1].upper() + token[1:].lower() for token in tokens[1:])
        return head + tail

    def _fallback(self, raw_name: Any) -> str:
        return self.FALLBACK_PREFIX + self._digest(raw_name)

    def _digest(self, raw_name: Any) -> str:
        # Same raw input always yields the same fallback name
        text = raw_name if isinstance(raw_name, str) else repr(raw_name)
        digest = hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()
        return digest[:self.FALLBACK_HASH_CHARS]
