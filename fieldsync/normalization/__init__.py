# ==============================================
# NORMALIZATION
# ==============================================
#
# This package turns raw source field names and values into
# something the relational store accepts.
#
# Modules:
# --------
# - name_normalizer.py    → Raw field name → candidate identifier
# - collision_resolver.py → Candidate → unique safe name (+ reverse map)
# - type_inferrer.py      → Sample values → ColumnType
# - value_coercer.py      → Raw value → value for a typed column
#
# ==============================================

from .name_normalizer import NameNormalizer
from .collision_resolver import CollisionResolver, RESERVED_WORDS
from .type_inferrer import TypeInferrer, InferenceResult
from .value_coercer import ValueCoercer

__all__ = [
    "NameNormalizer",
    "CollisionResolver",
    "RESERVED_WORDS",
    "TypeInferrer",
    "InferenceResult",
    "ValueCoercer",
]
