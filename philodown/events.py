"""Feed frame decoding and event routing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Type, Union

from .errors import FrameDecodeError
from .models import CommentRecord, ImageRecord

logger = logging.getLogger("philodown")


@dataclass
class CommentCreated:
    comment: CommentRecord


@dataclass
class ImageCreated:
    image: ImageRecord


@dataclass
class ImageUpdated:
    image: ImageRecord


@dataclass
class ImageTagsUpdated:
    payload: Dict[str, Any]


@dataclass
class ImageDescriptionUpdated:
    payload: Dict[str, Any]


@dataclass
class ImageProcessed:
    image_id: int


@dataclass
class UnknownEvent:
    name: str
    payload: Any


FeedEvent = Union[
    CommentCreated,
    ImageCreated,
    ImageUpdated,
    ImageTagsUpdated,
    ImageDescriptionUpdated,
    ImageProcessed,
    UnknownEvent,
]

_DECODERS: Dict[str, Callable[[Mapping[str, Any]], FeedEvent]] = {
    "comment:create": lambda p: CommentCreated(CommentRecord.from_dict(p["comment"])),
    "image:create": lambda p: ImageCreated(ImageRecord.from_dict(p["image"])),
    "image:update": lambda p: ImageUpdated(ImageRecord.from_dict(p["image"])),
    "image:tag_update": lambda p: ImageTagsUpdated(dict(p)),
    "image:description_update": lambda p: ImageDescriptionUpdated(dict(p)),
    "image:process": lambda p: ImageProcessed(int(p["image_id"])),
}

KNOWN_EVENTS = (
    CommentCreated,
    ImageCreated,
    ImageUpdated,
    ImageTagsUpdated,
    ImageDescriptionUpdated,
    ImageProcessed,
)


def decode_event(name: str, payload: Any) -> FeedEvent:
    """Turn an event name and payload into its typed event."""
    decoder = _DECODERS.get(name)
    if decoder is None:
        return UnknownEvent(name=name, payload=payload)
    if not isinstance(payload, Mapping):
        raise FrameDecodeError(f"Payload of {name} is not an object")
    try:
        return decoder(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise FrameDecodeError(f"Malformed {name} payload: {exc!r}") from exc


def decode_frame(data: str) -> FeedEvent:
    """Decode a ``[join_ref, ref, topic, event, payload]`` frame."""
    try:
        frame = json.loads(data)
    except json.JSONDecodeError as exc:
        raise FrameDecodeError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(frame, list) or len(frame) != 5:
        raise FrameDecodeError(f"Unexpected frame shape: {data[:200]}")
    _join_ref, _ref, _topic, name, payload = frame
    return decode_event(str(name), payload)


Handler = Callable[[Any], Awaitable[None]]


class EventRouter:
    """Routes each decoded event to the single handler for its type.

    Every known event type must have a handler; unknown events are ignored.
    """

    def __init__(self, handlers: Mapping[Type[Any], Handler]) -> None:
        missing = [cls.__name__ for cls in KNOWN_EVENTS if cls not in handlers]
        if missing:
            raise ValueError(f"No handler for events: {', '.join(missing)}")
        self._handlers = dict(handlers)

    async def dispatch(self, event: FeedEvent) -> None:
        if isinstance(event, UnknownEvent):
            logger.debug("Ignoring unknown event %s", event.name)
            return
        logger.debug("%s", type(event).__name__)
        await self._handlers[type(event)](event)
