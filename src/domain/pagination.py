"""
Opaque keyset cursors for newest-first listings.

A cursor carries the (created_at, id) of the last row a client has seen.
It is URL-safe base64 so it can be passed back verbatim as a query
parameter.
"""

import base64
import binascii
from datetime import datetime
from uuid import UUID

from .exceptions import ValidationError
from .models import Cursor

MAX_PAGE_SIZE = 50


def clamp_limit(limit: int, maximum: int = MAX_PAGE_SIZE) -> int:
    return max(1, min(limit, maximum))


def encode_cursor(created_at: datetime, row_id: UUID) -> str:
    raw = f"{created_at.isoformat()}|{row_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(value: str | None) -> Cursor | None:
    """
    Parse a cursor produced by encode_cursor.

    Raises:
        ValidationError: The value is not a cursor this service issued
    """
    if value is None:
        return None
    try:
        raw = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4)).decode()
        created_at, row_id = raw.split("|")
        cursor = Cursor(created_at=datetime.fromisoformat(created_at), id=UUID(row_id))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError("invalid cursor") from None
    if cursor.created_at.tzinfo is None:
        raise ValidationError("invalid cursor")
    return cursor
