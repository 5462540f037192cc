"""Shared fixtures and fakes.

Nothing here touches the network: requests sessions and the websocket
session are replaced with in-memory fakes.
"""

from __future__ import annotations

import json
from collections import namedtuple
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest

from philodown.config import IngestConfig

Message = namedtuple("Message", "type data extra")
PNG_HEAD = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
REFERENCE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeResponse:
    """Stand-in for ``requests.Response`` used as a context manager."""

    def __init__(self, chunks=(), json_data: Any = None, error: Exception | None = None):
        self.chunks = list(chunks)
        self.json_data = json_data
        self.error = error

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error

    def iter_content(self, chunk_size: int = 1):
        return iter(self.chunks)

    def json(self) -> Any:
        return self.json_data


class FakeSession:
    """Returns queued responses (or raises queued exceptions) from ``get``."""

    def __init__(self, responses=()):
        self.responses: List[Any] = list(responses)
        self.calls: List[tuple] = []
        self.headers: Dict[str, str] = {}

    def get(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    """Async sleep replacement that records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def image_payload(image_id: int = 123, **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": image_id,
        "created_at": "2024-05-01T12:30:00Z",
        "updated_at": "2024-05-01T12:31:00Z",
        "first_seen_at": "2024-05-01T12:30:00Z",
        "processed": True,
        "format": "png",
        "tags": ["safe", "pony"],
        "description": "A pony",
        "representations": {
            "thumb": f"https://cdn.example/img/{image_id}/thumb.png",
            "full": f"https://cdn.example/img/view/{image_id}.png",
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def config(tmp_path: Path) -> IngestConfig:
    cfg = IngestConfig(
        origin="booru.example",
        api_key="secret",
        output_root=tmp_path / "out",
        max_download_attempts=3,
        download_attempt_retry_time=7.0,
        heartbeat_interval=30.0,
    )
    cfg.output_paths.ensure()
    return cfg


class FakeWebSocket:
    """Websocket stand-in: yields queued messages, runs ``on_drain``, then closes."""

    def __init__(self, messages=(), close_code=1006, on_drain=None):
        self.messages = list(messages)
        self.close_code = close_code
        self.on_drain = on_drain
        self.sent = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False

    async def send_str(self, data):
        self.sent.append(json.loads(data))

    def exception(self):
        return None

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.on_drain is not None:
            await self.on_drain()


class FakeClientSession:
    """Hands out queued websockets (or raises queued exceptions) from ``ws_connect``."""

    def __init__(self, sockets):
        self.sockets = list(sockets)
        self.calls = []

    def ws_connect(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if not self.sockets:
            raise AssertionError("unexpected reconnect")
        item = self.sockets.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
