"""Data models used throughout the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .utils import format_timestamp, parse_timestamp

TIMESTAMP_FIELDS = ("created_at", "updated_at", "first_seen_at")


@dataclass
class ImageRecord:
    """Metadata describing one hosted image.

    ``raw`` keeps every field received from the service so that tags,
    descriptions and anything else are written back out verbatim.
    """

    id: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    first_seen_at: Optional[datetime]
    processed: bool
    format: Optional[str]
    representations: Dict[str, Optional[str]]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImageRecord":
        if "id" not in data:
            raise ValueError("Image record has no id")
        return cls(
            id=int(data["id"]),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            first_seen_at=parse_timestamp(data.get("first_seen_at")),
            processed=bool(data.get("processed", False)),
            format=data.get("format"),
            representations=dict(data.get("representations") or {}),
            raw=dict(data),
        )

    @property
    def full_url(self) -> Optional[str]:
        """URL of the full representation, or ``None`` while it is missing."""
        return self.representations.get("full") or None

    @property
    def downloadable(self) -> bool:
        return self.processed and self.full_url is not None

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data["id"] = self.id
        fields = {
            "processed": self.processed,
            "format": self.format,
            "representations": dict(self.representations),
        }
        for name, value in fields.items():
            if name in data:
                data[name] = value
        for name in TIMESTAMP_FIELDS:
            value = getattr(self, name)
            if name not in data:
                continue
            # Keep the service's own rendering unless the value changed.
            if parse_timestamp(data[name]) != value:
                data[name] = format_timestamp(value)
        return data


@dataclass
class CommentRecord:
    """Comment posted on an image; stored exactly as received."""

    id: int
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CommentRecord":
        if "id" not in data:
            raise ValueError("Comment record has no id")
        return cls(id=int(data["id"]), raw=dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)
