import json
from datetime import datetime, timezone
from typing import Any, Optional

from fieldsync.errors import ValueCoercionError
from fieldsync.normalization.type_inferrer import TypeInferrer
from fieldsync.persistence.models import ColumnType


class ValueCoercer:
    """
    Converts raw source values into what a typed column stores.

    The column type was fixed by the first sample; later values are
    coerced into it, never used to re-type the column.
    """

    BOOL_TRUE_VARIANTS = {"true", "yes"}
    BOOL_FALSE_VARIANTS = {"false", "no"}

    def __init__(self, type_inferrer: Optional[TypeInferrer] = None):
        self.type_inferrer = type_inferrer or TypeInferrer()

    def coerce(self, value: Any, column_type: ColumnType, field_name: str = "") -> Any:
        if value is None:
            return None

        if column_type == ColumnType.TEXT_ARRAY:
            return json.dumps(self._to_text_list(value), ensure_ascii=False)

        if column_type == ColumnType.TEXT:
            return self._to_text(value)

        if column_type == ColumnType.NUMBER:
            return self._to_number(value, field_name)

        if column_type == ColumnType.BOOLEAN:
            return self._to_bool(value, field_name)

        if column_type == ColumnType.TIMESTAMP:
            return self._to_timestamp(value, field_name)

        raise ValueCoercionError(f"Unsupported column type {column_type!r}", {"field": field_name})

    def _to_text_list(self, value: Any) -> list:
        if isinstance(value, (list, tuple)):
            return [self._to_text(item) for item in value if item is not None]
        # Scalar arriving in an array column becomes a one-element array
        return [self._to_text(value)]

    def _to_text(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return json.dumps(value, ensure_ascii=False, default=str)

    def _to_number(self, value: Any, field_name: str) -> float | int:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                pass
        raise ValueCoercionError(
            f"Value {value!r} of field '{field_name}' is not a number",
            {"field": field_name, "value": repr(value)},
        )

    def _to_bool(self, value: Any, field_name: str) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in self.BOOL_TRUE_VARIANTS:
                return True
            if lowered in self.BOOL_FALSE_VARIANTS:
                return False
        raise ValueCoercionError(
            f"Value {value!r} of field '{field_name}' is not a boolean",
            {"field": field_name, "value": repr(value)},
        )

    def _to_timestamp(self, value: Any, field_name: str) -> datetime:
        parsed = None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            parsed = self.type_inferrer.parse_iso_timestamp(value.strip())

        if parsed is None:
            raise ValueCoercionError(
                f"Value {value!r} of field '{field_name}' is not an ISO-8601 timestamp",
                {"field": field_name, "value": repr(value)},
            )

        # DATETIME columns hold naive UTC
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
