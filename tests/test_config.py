"""Configuration loading and the command-line entry point."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from philodown import cli
from philodown.config import IngestConfig, OutputPaths, load_config
from philodown.errors import ConfigError


def write_config(tmp_path, **values):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(values), encoding="utf-8")
    return path


def test_load_config_maps_json_keys(tmp_path):
    path = write_config(
        tmp_path,
        origin="booru.example",
        apiKey="k",
        https=False,
        gracePeriodMins=10,
        onlyNewMetadata=True,
        onlyNewImages=False,
        appendTimestamp=True,
        maxDownloadAttempts=4,
        downloadAttemptRetryTime=1500,
    )

    config = load_config(path)

    assert config.origin == "booru.example"
    assert config.api_key == "k"
    assert config.grace_period_mins == 10
    assert config.only_new_metadata and not config.only_new_images
    assert config.append_timestamp
    assert config.max_download_attempts == 4
    assert config.download_attempt_retry_time == 1.5
    assert config.base_url == "http://booru.example"
    assert config.feed_url == "ws://booru.example/socket/websocket?vsn=2.0.0&key=k"


def test_output_root_argument_wins(tmp_path):
    path = write_config(tmp_path, origin="o", apiKey="k", outputRoot="elsewhere")

    assert load_config(path).output_root == Path("elsewhere")
    assert load_config(path, output_root=tmp_path).output_root == tmp_path


def test_missing_required_keys(tmp_path):
    path = write_config(tmp_path, origin="booru.example")

    with pytest.raises(ConfigError, match="apiKey"):
        load_config(path)


def test_missing_file_and_bad_json(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(bad)


def test_output_paths_are_created(tmp_path):
    paths = OutputPaths.from_root(tmp_path)
    paths.ensure()

    assert paths.image_metadata == tmp_path / "metadata" / "images"
    assert paths.comment_metadata.is_dir()
    assert paths.images.is_dir()


def test_cli_exits_on_bad_config(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path / "absent.json")])

    assert excinfo.value.code == 2


def test_cli_runs_live_ingester(tmp_path, monkeypatch):
    path = write_config(tmp_path, origin="booru.example", apiKey="k")
    run_live = AsyncMock()
    monkeypatch.setattr(cli, "run_live", run_live)

    cli.main(["--config", str(path), "--output", str(tmp_path / "out")])

    (config,), _ = run_live.await_args
    assert isinstance(config, IngestConfig)
    assert config.output_root == (tmp_path / "out").resolve()


def test_example_config_loads():
    example = Path(__file__).resolve().parents[1] / "config.example.json"

    config = load_config(example)

    assert config.api_key
    assert config.download_attempt_retry_time == 30.0
