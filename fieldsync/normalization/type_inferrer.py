import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from fieldsync.persistence.models import ColumnType


ISO_TIMESTAMP_PATTERN = re.compile(
    r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})?$'
)


@dataclass
class InferenceResult:
    column_type: ColumnType
    sample_count: int = 0
    non_null_count: int = 0
    conflicting_count: int = 0

    @property
    def low_confidence(self) -> bool:
        return self.non_null_count == 0

    @property
    def nullable(self) -> bool:
        # Dynamic fields can always be absent from a record
        return True


class TypeInferrer:
    """
    Decides a column type from the first non-null sample.

    Later samples are never used to change the decision; they are only
    counted so an inconsistent field shows up in the logs.
    """

    DEFAULT_SAMPLE_SIZE = 200

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.sample_size = sample_size

    def infer(self, samples: Iterable[Any]) -> ColumnType:
        return self.inspect(samples).column_type

    def inspect(self, samples: Iterable[Any], field_name: str = "") -> InferenceResult:
        bounded = list(samples)[:self.sample_size]
        result = InferenceResult(column_type=ColumnType.TEXT, sample_count=len(bounded))

        decided: Optional[ColumnType] = None
        for value in bounded:
            if value is None:
                continue
            result.non_null_count += 1
            shape = self.classify(value)
            if decided is None:
                decided = shape
                if isinstance(value, dict):
                    logger.warning(
                        f"Field '{field_name}' holds an object; storing it as TEXT (JSON serialized)"
                    )
            elif shape != decided:
                result.conflicting_count += 1

        if decided is None:
            logger.warning(
                f"Field '{field_name}' has no non-null sample in {len(bounded)} values; "
                f"defaulting to nullable TEXT (low confidence)"
            )
            return result

        if result.conflicting_count:
            logger.debug(
                f"Field '{field_name}': {result.conflicting_count} samples disagree with "
                f"first-sample type {decided.value}; keeping {decided.value}"
            )

        result.column_type = decided
        return result

    def infer_fields(self, records: Iterable[Dict[str, Any]], exclude: Iterable[str] = ()) -> Dict[str, InferenceResult]:
        """
        Infer a type for every field seen across records.

        Returns a dict keyed by raw field name in first-seen order.
        """
        skipped = set(exclude)
        samples: Dict[str, List[Any]] = {}
        for record in records:
            for name, value in record.items():
                if name in skipped:
                    continue
                bucket = samples.setdefault(name, [])
                if len(bucket) < self.sample_size:
                    bucket.append(value)

        return {name: self.inspect(values, name) for name, values in samples.items()}

    @classmethod
    def classify(cls, value: Any) -> ColumnType:
        # Lists are always TEXT_ARRAY, whatever the elements are
        if isinstance(value, (list, tuple)):
            return ColumnType.TEXT_ARRAY

        # bool before numbers: bool is a subclass of int
        if isinstance(value, bool):
            return ColumnType.BOOLEAN

        if isinstance(value, (int, float)):
            return ColumnType.NUMBER

        if isinstance(value, str) and cls.is_iso_timestamp(value):
            return ColumnType.TIMESTAMP

        return ColumnType.TEXT

    @classmethod
    def is_iso_timestamp(cls, value: str) -> bool:
        return cls.parse_iso_timestamp(value) is not None

    @classmethod
    def parse_iso_timestamp(cls, value: str) -> Optional[datetime]:
        if not ISO_TIMESTAMP_PATTERN.match(value):
            return None
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
