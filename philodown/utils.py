"""Utility helpers for timestamps and file naming."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the API into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


_last_suffix_ms = 0


def write_suffix(enabled: bool) -> str:
    """Return ``_<epoch ms>`` for versioned writes, or an empty string.

    Suffixes strictly increase so two writes in the same millisecond still
    land in different files.
    """
    global _last_suffix_ms
    if not enabled:
        return ""
    _last_suffix_ms = max(int(time.time() * 1000), _last_suffix_ms + 1)
    return f"_{_last_suffix_ms}"


def url_extension(url: str) -> str:
    """Extension of the last path segment of ``url``, including the dot."""
    return PurePosixPath(urlparse(url).path).suffix
