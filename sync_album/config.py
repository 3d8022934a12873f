"""Configuration – JSON config file with environment overrides."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import time as dtime
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_INTERVAL = timedelta(hours=24)

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
_TRUE = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """The configuration is missing or unusable."""


def parse_interval(value: str | None) -> timedelta:
    """Parse a duration such as ``12h``, ``90m`` or ``1h30m``.

    Missing, malformed or zero durations fall back to 24 hours.
    """
    text = (value or "").strip().lower()
    if not text:
        return DEFAULT_INTERVAL
    pos = 0
    seconds = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text) or seconds <= 0:
        logger.warning("Invalid sync interval %r, using %s", value, DEFAULT_INTERVAL)
        return DEFAULT_INTERVAL
    return timedelta(seconds=seconds)


def parse_start_time(value: str | None) -> dtime | None:
    """Parse an ``HH:MM`` daily start time; None when unset or invalid."""
    text = (value or "").strip()
    if not text:
        return None
    match = re.fullmatch(r"(\d{1,2}):(\d{2})", text)
    if not match or int(match.group(1)) > 23 or int(match.group(2)) > 59:
        logger.warning("Ignoring invalid sync start time %r (expected HH:MM)", value)
        return None
    return dtime(int(match.group(1)), int(match.group(2)))


def _as_bool(value) -> bool:
    """JSON booleans as-is; strings such as "false" or "0" by their text."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    return bool(value)


def _as_count(raw: dict, key: str) -> int:
    value = raw.get(key)
    if value is None or value == "":
        return 1
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return _as_bool(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return default


@dataclass
class AlbumConfig:
    """One shared album to mirror."""

    url: str
    immich_album_id: str = ""  # use this album instead of resolving by name
    album_name: str = ""  # overrides the scraped album title
    sync_interval: str = ""

    @property
    def interval(self) -> timedelta:
        return parse_interval(self.sync_interval)

    @classmethod
    def from_dict(cls, raw: dict) -> AlbumConfig:
        url = (raw.get("url") or "").strip()
        if not url:
            raise ConfigError("every googlePhotos entry needs a url")
        return cls(
            url=url,
            immich_album_id=raw.get("immichAlbumId") or "",
            album_name=raw.get("albumName") or "",
            sync_interval=raw.get("syncInterval") or "",
        )


@dataclass
class Config:
    api_key: str
    api_url: str
    debug: bool = False
    workers: int = 1
    album_workers: int = 1
    strict_metadata: bool = False
    skip_videos: bool = False
    strip_motion_photos: bool = False
    sync_start_time: str = ""
    albums: list[AlbumConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.workers = max(1, self.workers or 1)
        self.album_workers = max(1, self.album_workers or 1)

    @property
    def start_time(self) -> dtime | None:
        return parse_start_time(self.sync_start_time)

    @classmethod
    def from_dict(cls, raw: dict) -> Config:
        return cls(
            api_key=raw.get("apiKey") or "",
            api_url=raw.get("apiURL") or "",
            debug=_as_bool(raw.get("debug", False)),
            workers=_as_count(raw, "workers"),
            album_workers=_as_count(raw, "albumWorkers"),
            strict_metadata=_as_bool(raw.get("strictMetadata", False)),
            skip_videos=_as_bool(raw.get("skipVideos", False)),
            strip_motion_photos=_as_bool(raw.get("stripMotionPhotos", False)),
            sync_start_time=raw.get("syncStartTime") or "",
            albums=[AlbumConfig.from_dict(a) for a in raw.get("googlePhotos") or []],
        )


def _apply_env(cfg: Config) -> Config:
    cfg.api_key = os.getenv("IMMICH_API_KEY") or cfg.api_key
    cfg.api_url = os.getenv("IMMICH_API_URL") or cfg.api_url
    cfg.debug = _env_bool("SYNC_DEBUG", cfg.debug)
    cfg.workers = max(1, _env_int("SYNC_WORKERS", cfg.workers))
    cfg.album_workers = max(1, _env_int("SYNC_ALBUM_WORKERS", cfg.album_workers))
    cfg.strict_metadata = _env_bool("SYNC_STRICT_METADATA", cfg.strict_metadata)
    cfg.skip_videos = _env_bool("SYNC_SKIP_VIDEOS", cfg.skip_videos)
    cfg.sync_start_time = os.getenv("SYNC_START_TIME") or cfg.sync_start_time
    return cfg


def load_config(path: str | os.PathLike | None = None) -> Config:
    """Read the JSON config at *path* and apply environment overrides.

    Without a config file the API key and URL must come from the environment.
    """
    config_path = Path(path or os.getenv("SYNC_CONFIG", DEFAULT_CONFIG_FILE))
    if config_path.exists():
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{config_path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a JSON object")
        cfg = Config.from_dict(raw)
    else:
        logger.warning("Config file %s not found, using environment only", config_path)
        cfg = Config(api_key="", api_url="")

    cfg = _apply_env(cfg)
    if not cfg.api_key or not cfg.api_url:
        raise ConfigError("IMMICH_API_KEY and IMMICH_API_URL (or apiKey/apiURL) must be set.")
    return cfg
