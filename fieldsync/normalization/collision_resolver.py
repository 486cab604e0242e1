# ==============================================
# CollisionResolver
# ==============================================
#
# PURPOSE:
#   Turn a candidate identifier into a safe name that is unique within
#   its table namespace, and map safe names back to raw names.
#
# WHY THIS CLASS EXISTS:
#   Normalization is lossy. "Status" and "STATUS " both become
#   "status"; "_id" becomes "id", which is the surrogate key. The
#   resolver fixes reserved words, enforces the identifier length
#   limit and walks a numeric suffix until the name is free. The
#   first resolution of a raw name is persisted in the SchemaRegistry
#   and wins forever after; the algorithm only runs for unseen names.
#
# CLASS: CollisionResolver
# ------------------------
#   Constructor:
#   ------------
#   - __init__(registry, normalizer=None, max_length=64,
#              suffix_headroom=4, max_suffix=9999)
#
#   Methods:
#   --------
#   - resolve(namespace, raw_name, candidate_name) -> str
#   - resolve_raw(namespace, raw_name) -> str
#       resolve() with the NameNormalizer's candidate.
#   - reverse(namespace, safe_name) -> str | None
#   - mappings(namespace) -> list[FieldMapping]
#   - is_reserved(name) -> bool
#
# POLICY (in order):
# ------
#   1. Already mapped raw name → stored safe name
#   2. Reserved word (case-insensitive) → append "Field"   (id → idField)
#   3. Longer than max_length - headroom → truncate
#   4. Provisional mapping on the name → claim it
#   5. name, name1, name2, ... until free (case-insensitive)
#   6. Persist the triple
#
# ==============================================

from typing import List, Optional

from loguru import logger

from fieldsync.errors import CollisionExhaustedError
from fieldsync.normalization.name_normalizer import NameNormalizer
from fieldsync.persistence.models import STANDARD_COLUMNS, SURROGATE_KEY, FieldMapping
from fieldsync.persistence.schema_registry import SchemaRegistry


# MySQL reserved words plus a few that break common SQL dialects
SQL_RESERVED_WORDS = frozenset({
    "accessible", "add", "all", "alter", "analyze", "and", "as", "asc",
    "asensitive", "before", "between", "bigint", "binary", "blob", "both",
    "by", "call", "cascade", "case", "change", "char", "character", "check",
    "collate", "column", "condition", "constraint", "continue", "convert",
    "create", "cross", "cube", "current", "cursor", "database", "databases",
    "date", "day", "dec", "decimal", "declare", "default", "delayed",
    "delete", "desc", "describe", "distinct", "div", "double", "drop",
    "dual", "each", "else", "elseif", "enclosed", "end", "escaped",
    "except", "exists", "exit", "explain", "false", "fetch", "float", "for",
    "force", "foreign", "from", "full", "fulltext", "function", "generated",
    "get", "grant", "group", "groups", "having", "high", "if", "ignore",
    "in", "index", "infile", "inner", "inout", "insensitive", "insert",
    "int", "integer", "intersect", "interval", "into", "is", "iterate",
    "join", "json", "key", "keys", "kill", "lateral", "leading", "leave",
    "left", "like", "limit", "linear", "lines", "load", "localtime",
    "lock", "long", "loop", "match", "merge", "mod", "modifies", "natural",
    "not", "null", "numeric", "of", "on", "optimize", "option",
    "optionally", "or", "order", "out", "outer", "outfile", "over",
    "partition", "precision", "primary", "procedure", "purge", "range",
    "rank", "read", "reads", "real", "recursive", "references", "regexp",
    "release", "rename", "repeat", "replace", "require", "resignal",
    "restrict", "return", "returning", "revoke", "right", "rlike", "row",
    "rows", "schema", "schemas", "select", "sensitive", "separator", "set",
    "show", "signal", "smallint", "spatial", "specific", "sql",
    "sqlexception", "sqlstate", "sqlwarning", "ssl", "starting", "stored",
    "straight", "system", "table", "terminated", "text", "then", "time",
    "timestamp", "to", "trailing", "trigger", "true", "undo", "union",
    "unique", "unlock", "unsigned", "update", "usage", "use", "user",
    "using", "value", "values", "varchar", "varying", "virtual", "when",
    "where", "while", "window", "with", "write", "xor", "year", "zerofill",
})

# Names that clash with ORM / driver attributes on mapped row objects
ORM_RESERVED_WORDS = frozenset({
    "metadata", "query", "registry", "session", "class", "self", "type",
    "constructor", "prototype", "object", "none",
})

ENGINE_RESERVED_WORDS = frozenset(
    [SURROGATE_KEY] + [name.lower() for name in STANDARD_COLUMNS.names()]
)

RESERVED_WORDS = SQL_RESERVED_WORDS | ORM_RESERVED_WORDS | ENGINE_RESERVED_WORDS


class CollisionResolver:
    """
    Assigns unique safe names within a namespace and remembers them.
    """

    RESERVED_SUFFIX = "Field"

    def __init__(
        self,
        registry: SchemaRegistry,
        normalizer: Optional[NameNormalizer] = None,
        max_length: int = 64,
        suffix_headroom: int = 4,
        max_suffix: int = 9999
    ):
        """
        Args:
            registry: Source of truth for existing mappings
            normalizer: Used by resolve_raw(); defaults to NameNormalizer()
            max_length: Storage engine identifier limit
            suffix_headroom: Characters kept free for a numeric suffix
            max_suffix: Largest numeric suffix tried before giving up
        """
        if suffix_headroom < len(str(max_suffix)):
            raise ValueError("suffix_headroom must fit the largest numeric suffix")
        self.registry = registry
        self.normalizer = normalizer or NameNormalizer(max_table_name_length=max_length)
        self.max_length = max_length
        self.suffix_headroom = suffix_headroom
        self.max_suffix = max_suffix

    def resolve(self, namespace: str, raw_name: str, candidate_name: str) -> str:
        """
        Resolve a raw name to a safe name unique within the namespace.

        Args:
            namespace: Table name
            raw_name: Original field name
            candidate_name: Output of NameNormalizer.normalize(raw_name)

        Returns:
            The persisted safe name for raw_name

        Raises:
            CollisionExhaustedError: every suffix up to max_suffix is taken
        """
        existing = self.registry.find_mapping(namespace, raw_name)
        if existing is not None:
            if existing.provisional:
                self.registry.claim_mapping(namespace, existing.safe_name, raw_name)
            return existing.safe_name

        base = candidate_name
        if self.is_reserved(base):
            base = base + self.RESERVED_SUFFIX

        limit = self.max_length - self.suffix_headroom
        if len(base) > limit:
            base = base[:limit]

        # A column added before its source field was known goes to the
        # first raw name that lands on it
        held = self.registry.find_by_safe_name(namespace, base)
        if held is not None and held.provisional:
            self.registry.claim_mapping(namespace, held.safe_name, raw_name)
            return held.safe_name

        taken = self.registry.safe_names(namespace)
        safe_name = self._first_free(base, taken, namespace, raw_name)

        if safe_name != candidate_name:
            logger.debug(f"Resolved '{raw_name}' in '{namespace}': '{candidate_name}' -> '{safe_name}'")

        self.registry.record_mapping(namespace, raw_name, safe_name)
        return safe_name

    def resolve_raw(self, namespace: str, raw_name: str) -> str:
        """Normalize and resolve in one step."""
        return self.resolve(namespace, raw_name, self.normalizer.normalize(raw_name))

    def reverse(self, namespace: str, safe_name: str) -> Optional[str]:
        """
        Recover the original raw name of a safe name.

        Args:
            namespace: Table name
            safe_name: Identifier as stored in the database

        Returns:
            The exact original raw name, or None if never resolved
            (a provisional placeholder counts as never resolved)
        """
        mapping = self.registry.find_by_safe_name(namespace, safe_name)
        if mapping is None or mapping.provisional:
            return None
        return mapping.raw_name

    def mappings(self, namespace: str) -> List[FieldMapping]:
        return self.registry.mappings(namespace)

    def is_reserved(self, name: str) -> bool:
        return name.lower() in RESERVED_WORDS

    def _first_free(self, base: str, taken: set, namespace: str, raw_name: str) -> str:
        if base.lower() not in taken:
            return base

        for suffix in range(1, self.max_suffix + 1):
            candidate = f"{base}{suffix}"
            if candidate.lower() not in taken:
                return candidate

        raise CollisionExhaustedError(
            f"No free safe name for '{raw_name}' in '{namespace}' "
            f"(tried '{base}' through '{base}{self.max_suffix}')",
            {"table": namespace, "field": raw_name},
        )
