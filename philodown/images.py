"""Image downloading with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Set, Tuple

import requests
from filetype import guess

from .config import IngestConfig, USER_AGENT
from .models import ImageRecord
from .store import MetadataStore
from .utils import url_extension, write_suffix

logger = logging.getLogger("philodown")

REQUEST_TIMEOUT = 60
CHUNK_SIZE = 64 * 1024
MARKUP_PREFIXES = (b"<!doctype html", b"<html")


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        return kind.extension.lower()
    return None


def looks_like_markup(head: bytes) -> bool:
    """Whether the first bytes of a body are an HTML page, not an image.

    Bodies with a recognised image signature are never treated as markup.
    """
    if detect_image_format(head):
        return False
    text = head.lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    return text.startswith(MARKUP_PREFIXES)


@dataclass
class DownloadAttempt:
    """State carried between attempts of one download."""

    image_id: int
    record: Optional[ImageRecord] = None
    attempt: int = 1


class ImageFetcher:
    """Downloads full representations, retrying transient failures.

    Every failure (missing representation, transport error, empty body,
    HTML error page) is retried after the same fixed delay until
    ``max_download_attempts`` is reached, then abandoned with a log line.
    """

    def __init__(
        self,
        config: IngestConfig,
        store: MetadataStore,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.paths = config.output_paths
        self.max_attempts = config.max_download_attempts
        self.retry_delay = config.download_attempt_retry_time
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self._sleep = sleep
        self._pending: Set[asyncio.Task] = set()

    def image_path(self, image_id: int, extension: str, suffix: str = "") -> Path:
        return self.paths.images / f"{image_id}{suffix}{extension}"

    def has_image(self, record: ImageRecord) -> bool:
        """Whether the unversioned image file for ``record`` already exists."""
        return self.image_path(record.id, f".{record.format}").exists()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(
        self,
        image_id: Optional[int] = None,
        record: Optional[ImageRecord] = None,
    ) -> asyncio.Task:
        """Start a download chain in the background and track it."""
        task = asyncio.create_task(self.download(image_id, record))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Image download crashed", exc_info=task.exception())

    async def shutdown(self) -> None:
        """Cancel every pending download chain, including ones waiting to retry."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Cancelled %d pending image downloads", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def download(
        self,
        image_id: Optional[int] = None,
        record: Optional[ImageRecord] = None,
    ) -> Optional[Path]:
        """Run the retry loop for one image; returns the written path or ``None``."""
        if record is None and image_id is None:
            raise ValueError("Either an image id or a record is required")
        state = DownloadAttempt(
            image_id=record.id if record is not None else image_id,
            record=record,
        )
        while True:
            destination, reason = await self._attempt(state)
            if destination is not None:
                return destination
            logger.error("Could not get image %s. (%s)", state.image_id, reason)
            if state.attempt >= self.max_attempts:
                logger.error(
                    "Giving up on image %s after %d attempts",
                    state.image_id,
                    state.attempt,
                )
                return None
            await self._sleep(self.retry_delay)
            state.attempt += 1
            logger.warning(
                "Retrying image download for %s; attempt %d/%d",
                state.image_id,
                state.attempt,
                self.max_attempts,
            )

    async def _attempt(self, state: DownloadAttempt) -> Tuple[Optional[Path], str]:
        if state.record is None:
            state.record = await self.store.fetch_remote(state.image_id)
            if state.record is None:
                return None, "Metadata unavailable"

        if not state.record.downloadable:
            # Processing or the full representation may still be pending; refetch next time.
            reason = "No full representation" if state.record.processed else "Image not processed"
            state.record = None
            return None, reason
        url = state.record.full_url

        destination = self.image_path(
            state.image_id,
            url_extension(url),
            write_suffix(self.config.append_timestamp),
        )
        reason = await asyncio.to_thread(self._stream_to_file, url, destination)
        if reason:
            return None, reason
        logger.info("Saved image %s to %s", state.image_id, destination)
        return destination, ""

    def _stream_to_file(self, url: str, destination: Path) -> Optional[str]:
        """Stream ``url`` into ``destination``; returns a failure reason or ``None``.

        The body goes to a uniquely named sibling ``.part`` file that replaces
        ``destination`` only once complete, so a failed attempt never touches an
        existing image.
        """
        partial = destination.with_name(f"{destination.name}.{uuid.uuid4().hex}.part")
        try:
            with self.session.get(url, stream=True, timeout=REQUEST_TIMEOUT) as resp:
                resp.raise_for_status()
                chunks = resp.iter_content(chunk_size=CHUNK_SIZE)
                head = next(chunks, b"")
                if not head:
                    return "Image is empty"
                if looks_like_markup(head):
                    return "Image is HTML"
                with partial.open("wb") as handle:
                    handle.write(head)
                    for chunk in chunks:
                        handle.write(chunk)
        except requests.RequestException as exc:
            partial.unlink(missing_ok=True)
            return f"Image is error: {exc}"
        partial.replace(destination)
        return None
