"""
Serialization Utilities

Turns result objects (dataclasses, enums, datetimes) into plain
JSON-compatible structures for API responses and stored payloads.
"""

import json
import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import is_dataclass, fields


def serialize(obj: Any, exclude_none: bool = False) -> Any:
    """
    Convert ``obj`` into JSON-compatible Python data.

    Args:
        obj: The object to serialize
        exclude_none: Drop ``None`` values from mappings

    Returns:
        Plain dicts, lists and scalars
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple, set)):
        return [serialize(item, exclude_none) for item in obj]

    if isinstance(obj, dict):
        return {
            str(key): serialize(value, exclude_none)
            for key, value in obj.items()
            if not (exclude_none and value is None)
        }

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict(), exclude_none)

    if is_dataclass(obj):
        return serialize({f.name: getattr(obj, f.name) for f in fields(obj)}, exclude_none)

    return str(obj)


def to_json(obj: Any, pretty: bool = False) -> str:
    """Serialize an object to a JSON string."""
    return json.dumps(serialize(obj), indent=2 if pretty else None, ensure_ascii=False)


class SerializableMixin:
    """
    Mixin providing ``to_dict`` for result objects.

    Subclasses list the attributes to expose in ``__serializable_fields__``.
    """

    __serializable_fields__: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary."""
        return {
            name: serialize(getattr(self, name))
            for name in self.__serializable_fields__
            if hasattr(self, name)
        }

    def to_json(self, pretty: bool = False) -> str:
        return to_json(self.to_dict(), pretty)


def loads_or_default(raw: Optional[str], default: Any = None) -> Any:
    """Decode a stored JSON text column, returning ``default`` for empty or invalid text."""
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default
