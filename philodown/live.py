"""Event handlers that turn feed events into metadata files and images."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import aiohttp

from .config import IngestConfig
from .events import (
    CommentCreated,
    EventRouter,
    ImageCreated,
    ImageDescriptionUpdated,
    ImageProcessed,
    ImageTagsUpdated,
    ImageUpdated,
)
from .feed import FeedConnection
from .images import ImageFetcher
from .models import ImageRecord
from .recency import RecencyFilter, reference_time
from .store import MetadataStore

logger = logging.getLogger("philodown")


class LiveIngester:
    """Handlers for every feed event, gated by the two recency filters."""

    def __init__(
        self,
        store: MetadataStore,
        fetcher: ImageFetcher,
        metadata_filter: RecencyFilter,
        image_filter: RecencyFilter,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.metadata_filter = metadata_filter
        self.image_filter = image_filter
        self.router = EventRouter(
            {
                CommentCreated: self.on_comment_created,
                ImageCreated: self.on_image_created,
                ImageUpdated: self.on_image_updated,
                ImageTagsUpdated: self.on_tags_updated,
                ImageDescriptionUpdated: self.on_description_updated,
                ImageProcessed: self.on_image_processed,
            }
        )

    @classmethod
    def from_config(
        cls, config: IngestConfig, reference: Optional[datetime] = None
    ) -> "LiveIngester":
        if reference is None:
            reference = reference_time(config.grace_period_mins)
        store = MetadataStore(config)
        return cls(
            store=store,
            fetcher=ImageFetcher(config, store),
            metadata_filter=RecencyFilter(reference, config.only_new_metadata),
            image_filter=RecencyFilter(reference, config.only_new_images),
        )

    async def on_comment_created(self, event: CommentCreated) -> None:
        self.store.save_comment(event.comment)

    async def on_image_created(self, event: ImageCreated) -> None:
        self._save_metadata(event.image)

    async def on_image_updated(self, event: ImageUpdated) -> None:
        image = event.image
        self._save_metadata(image)
        if not image.processed or self.fetcher.has_image(image):
            return
        if self.image_filter.passes(image.created_at):
            self.fetcher.submit(record=image)

    async def on_tags_updated(self, event: ImageTagsUpdated) -> None:
        # Tags arrive again with image:update.
        pass

    async def on_description_updated(self, event: ImageDescriptionUpdated) -> None:
        # Descriptions arrive again with image:update.
        pass

    async def on_image_processed(self, event: ImageProcessed) -> None:
        # Representations are only filled in on the API record.
        image = await self.store.fetch_remote(event.image_id)
        if image is None:
            logger.warning("Skipping processed image %s without metadata", event.image_id)
            return
        self._save_metadata(image)
        if self.image_filter.passes(image.created_at):
            self.fetcher.submit(record=image)

    def _save_metadata(self, image: ImageRecord) -> None:
        if self.metadata_filter.passes(image.created_at):
            self.store.save(image)


async def run_live(
    config: IngestConfig,
    reference: Optional[datetime] = None,
    ingester: Optional[LiveIngester] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> None:
    """Ingest the feed until cancelled, then cancel pending downloads."""
    config.output_paths.ensure()
    if ingester is None:
        ingester = LiveIngester.from_config(config, reference)
    connection = FeedConnection(config, ingester.router, session=session)
    logger.info("Connecting to %s", config.origin)
    try:
        await connection.run_forever()
    finally:
        await connection.close()
        await ingester.fetcher.shutdown()
