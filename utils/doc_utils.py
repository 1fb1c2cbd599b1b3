"""
utils/doc_utils.py

Purpose: Mongo document helpers

- String UUID primary keys
- Converting stored documents to API dicts (_id -> id, datetimes -> ISO)
- Stripping fields clients must not write
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

# Fields a client payload may never set directly
PROTECTED_FIELDS = ("_id", "id", "created_at", "updated_at")


def new_id() -> str:
    return str(uuid.uuid4())


def _convert(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat() + "Z" if value.tzinfo is None else value.isoformat()
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]], exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """
    Returns a JSON-ready copy of a stored document.

    `_id` becomes `id`; keys in `exclude` are dropped.
    """
    if doc is None:
        return None
    skip = set(exclude)
    out = {}
    for key, value in doc.items():
        if key in skip:
            continue
        if key == "_id":
            out["id"] = value
            continue
        out[key] = _convert(value)
    return out


def serialize_docs(docs: Iterable[Dict[str, Any]], exclude: Iterable[str] = ()) -> list:
    return [serialize_doc(doc, exclude) for doc in docs]


def strip_protected(data: Dict[str, Any], extra: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Copy of `data` without protected keys (and any in `extra`).
    """
    blocked = set(PROTECTED_FIELDS) | set(extra)
    return {k: v for k, v in (data or {}).items() if k not in blocked}
