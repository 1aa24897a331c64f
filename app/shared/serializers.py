"""Row <-> camelCase JSON conversion shared by the API and the backup format"""

import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import Date, DateTime

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def row_to_dict(obj, exclude: Iterable[str] = ()) -> Optional[dict]:
    """Serialize the column attributes of a model instance with camelCase keys"""
    if obj is None:
        return None
    excluded = set(exclude)
    return {
        to_camel(column.key): _json_value(getattr(obj, column.key))
        for column in obj.__table__.columns
        if column.key not in excluded
    }


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO strings (with or without Z / offset) to naive UTC datetimes"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def dict_to_columns(model, data: dict) -> dict:
    """
    Map a camelCase (or snake_case) dict onto the model's columns, parsing
    date/time values. Unknown keys are dropped.
    """
    columns = {column.key: column for column in model.__table__.columns}
    values = {}
    for key, value in data.items():
        attr = key if key in columns else to_snake(key)
        column = columns.get(attr)
        if column is None:
            continue
        if isinstance(column.type, (DateTime, Date)) and value is not None:
            value = parse_datetime(value)
        values[attr] = value
    return values
