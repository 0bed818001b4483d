"""JSON serialization utilities."""

from __future__ import annotations

import base64
import dataclasses
import datetime
import decimal
import json
from typing import Any


def json_default(obj: object) -> object:
    """JSON serializer for objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(obj).decode("utf-8")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    return str(obj)


def dumps_line(payload: Any) -> str:
    """Serialize ``payload`` as a single self-contained JSON line."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=json_default)


def safe_json_loads(line: str) -> Any | None:
    """Parse a JSON document, returning None when it is malformed."""
    try:
        return json.loads(line)
    except (json.JSONDecodeError, TypeError):
        return None
