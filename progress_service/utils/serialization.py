import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

def app_json_serializer(obj: Any) -> Any:
    """JSON fallback shared by the outbox, the notification store and the API."""
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Type {type(obj)} not serializable")

def to_json_str(data: Any) -> str:
    return json.dumps(data, default=app_json_serializer, ensure_ascii=False)

def to_json_bytes(data: Any) -> bytes:
    return to_json_str(data).encode("utf-8")

def recursive_normalize(obj: Any) -> Any:
    """Converts nested values to JSON primitives (dict/list/str/float)."""
    if isinstance(obj, dict):
        return {k: recursive_normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [recursive_normalize(v) for v in obj]
    if isinstance(obj, (Decimal, date, datetime, UUID, Enum)):
        return app_json_serializer(obj)
    return obj
