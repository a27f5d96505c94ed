"""Offset paging over Protean DAO queries.

List endpoints hand out opaque cursors; underneath they are offsets into a
stable ordering. Sweeps use ``collect_all`` to snapshot every matching
record before mutating any of them.
"""

import base64
import binascii

from protean.exceptions import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
_SCAN_BATCH = 100


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(f"offset:{offset}".encode()).decode()


def decode_cursor(cursor: str | None) -> int:
    if not cursor:
        return 0
    try:
        prefix, _, value = base64.urlsafe_b64decode(cursor.encode()).decode().partition(":")
        offset = int(value)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError({"cursor": ["Invalid cursor"]}) from None
    if prefix != "offset" or offset < 0:
        raise ValidationError({"cursor": ["Invalid cursor"]})
    return offset


def clamp_page_size(limit: int | None) -> int:
    if not limit:
        return DEFAULT_PAGE_SIZE
    if limit < 1:
        raise ValidationError({"limit": ["Limit must be at least 1"]})
    return min(limit, MAX_PAGE_SIZE)


def collect_all(query, order_by="created_at") -> list:
    """Every record matching ``query``, fetched in fixed-size batches."""
    records = []
    offset = 0
    while True:
        batch = query.order_by(order_by).offset(offset).limit(_SCAN_BATCH).all()
        records.extend(batch.items)
        offset += len(batch.items)
        if not batch.items or offset >= batch.total:
            return records
