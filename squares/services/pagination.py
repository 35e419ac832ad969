"""Opaque continuation cursors for paginated listings."""
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional

import config
from squares.errors import ValidationError
from squares.services.store import Page


def encode_cursor(key: dict[str, str]) -> str:
    return base64.b64encode(json.dumps(key, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> Optional[dict[str, str]]:
    """Decode a cursor from a previous response. Missing/empty means start from the beginning."""
    if not cursor:
        return None
    try:
        key = json.loads(base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError("Invalid cursor", {"cursor": "Cursor is malformed"}) from e
    if not isinstance(key, dict) or not all(isinstance(v, str) for v in key.values()):
        raise ValidationError("Invalid cursor", {"cursor": "Cursor is malformed"})
    return key


def parse_limit(value: Any) -> int:
    if value is None or value == "":
        return config.DEFAULT_PAGE_SIZE
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid limit", {"limit": "Limit must be a whole number"})
    if limit < 1:
        raise ValidationError("Invalid limit", {"limit": "Limit must be at least 1"})
    return min(limit, config.MAX_PAGE_SIZE)


def paginated(page: Page, items: Optional[list[Any]] = None) -> dict[str, Any]:
    """Listing payload: {items, nextCursor, count}; nextCursor only when more items follow."""
    items = page.items if items is None else items
    payload: dict[str, Any] = {"items": items, "count": len(items)}
    if page.last_key is not None:
        payload["nextCursor"] = encode_cursor(page.last_key)
    return payload
