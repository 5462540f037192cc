"""Metadata persistence with remote fallback."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import requests

from .config import IngestConfig, USER_AGENT
from .models import CommentRecord, ImageRecord
from .utils import write_suffix

logger = logging.getLogger("philodown")

REQUEST_TIMEOUT = 15


class MetadataStore:
    """Writes image and comment records as JSON files named by id."""

    def __init__(
        self,
        config: IngestConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.paths = config.output_paths
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def metadata_path(self, image_id: int, suffix: str = "") -> Path:
        return self.paths.image_metadata / f"{image_id}{suffix}.json"

    def save(self, record: ImageRecord) -> Path:
        """Write ``record``; versioned writes never overwrite an earlier file."""
        destination = self.metadata_path(
            record.id, write_suffix(self.config.append_timestamp)
        )
        destination.write_text(json.dumps(record.to_dict()), encoding="utf-8")
        logger.debug("Saved metadata for image %s to %s", record.id, destination)
        return destination

    def save_comment(self, comment: CommentRecord) -> Path:
        destination = self.paths.comment_metadata / f"{comment.id}.json"
        destination.write_text(json.dumps(comment.to_dict()), encoding="utf-8")
        logger.debug("Saved comment %s", comment.id)
        return destination

    async def load(
        self, image_id: int, fetch_if_missing: bool = True
    ) -> Optional[ImageRecord]:
        """Read the stored record for ``image_id``.

        A missing file falls back to :meth:`fetch_remote` when
        ``fetch_if_missing`` is set; other I/O errors propagate.
        """
        try:
            text = self.metadata_path(image_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            if not fetch_if_missing:
                return None
            logger.debug("No stored metadata for %s, fetching", image_id)
            return await self.fetch_remote(image_id)
        return ImageRecord.from_dict(json.loads(text))

    async def fetch_remote(self, image_id: int) -> Optional[ImageRecord]:
        """Fetch the canonical record from the API; ``None`` on failure."""
        return await asyncio.to_thread(self._fetch_remote, image_id)

    def _fetch_remote(self, image_id: int) -> Optional[ImageRecord]:
        url = f"{self.config.base_url}/api/v1/json/images/{image_id}"
        try:
            resp = self.session.get(
                url, params={"key": self.config.api_key}, timeout=REQUEST_TIMEOUT
            )
            resp.raise_for_status()
            return ImageRecord.from_dict(resp.json()["image"])
        except requests.RequestException as exc:
            logger.warning("Failed to fetch metadata for %s: %s", image_id, exc)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Malformed metadata for %s: %s", image_id, exc)
        return None
