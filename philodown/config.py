"""Configuration objects and constants for the ingester."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError

USER_AGENT = "PhiloDown/v0.1.0"
FEED_TOPIC = "firehose"
HEARTBEAT_INTERVAL = 30.0

# config.json key -> IngestConfig field
_CONFIG_KEYS = {
    "origin": "origin",
    "apiKey": "api_key",
    "https": "https",
    "gracePeriodMins": "grace_period_mins",
    "onlyNewMetadata": "only_new_metadata",
    "onlyNewImages": "only_new_images",
    "appendTimestamp": "append_timestamp",
    "maxDownloadAttempts": "max_download_attempts",
}
_REQUIRED_KEYS = ("origin", "apiKey")


@dataclass
class OutputPaths:
    """Directories that receive metadata files and downloaded images."""

    image_metadata: Path
    comment_metadata: Path
    images: Path

    @classmethod
    def from_root(cls, root: Path) -> "OutputPaths":
        return cls(
            image_metadata=root / "metadata" / "images",
            comment_metadata=root / "metadata" / "comments",
            images=root / "images",
        )

    def ensure(self) -> None:
        for directory in (self.image_metadata, self.comment_metadata, self.images):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass
class IngestConfig:
    """Top-level settings that control the feed connection and downloads."""

    origin: str
    api_key: str
    output_root: Path = Path("output")
    https: bool = True
    grace_period_mins: float = 5.0
    only_new_metadata: bool = False
    only_new_images: bool = True
    append_timestamp: bool = False
    max_download_attempts: int = 5
    download_attempt_retry_time: float = 30.0
    heartbeat_interval: float = HEARTBEAT_INTERVAL

    @property
    def scheme(self) -> str:
        return "https" if self.https else "http"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.origin}"

    @property
    def feed_url(self) -> str:
        ws_scheme = "wss" if self.https else "ws"
        return f"{ws_scheme}://{self.origin}/socket/websocket?vsn=2.0.0&key={self.api_key}"

    @property
    def output_paths(self) -> OutputPaths:
        return OutputPaths.from_root(self.output_root)


def load_config(path: Path, output_root: Optional[Path] = None) -> IngestConfig:
    """Read a ``config.json`` file into an :class:`IngestConfig`.

    Keys use the camelCase names of the JSON file. ``downloadAttemptRetryTime``
    is given in milliseconds there and converted to seconds.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file does not exist: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    missing = [key for key in _REQUIRED_KEYS if not raw.get(key)]
    if missing:
        raise ConfigError(f"Config file {path} is missing: {', '.join(missing)}")

    kwargs = {field: raw[key] for key, field in _CONFIG_KEYS.items() if key in raw}
    if "downloadAttemptRetryTime" in raw:
        kwargs["download_attempt_retry_time"] = float(raw["downloadAttemptRetryTime"]) / 1000
    if output_root is not None:
        kwargs["output_root"] = output_root
    elif "outputRoot" in raw:
        kwargs["output_root"] = Path(raw["outputRoot"])
    return IngestConfig(**kwargs)
