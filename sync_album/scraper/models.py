"""Data models for scraped shared albums."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_RPC_PATH = "/_/PhotosUi/"


@dataclass
class Photo:
    """One media entry (image or video) of a shared album."""

    id: str
    url: str  # base URL, no size/format suffix
    width: int = 0
    height: int = 0
    taken_at: datetime | None = None  # None when no plausible capture time was found
    description: str = ""
    is_video: bool = False  # only known after the media has been probed


@dataclass
class Album:
    """A scraped album; identified by its resolved (post-redirect) URL."""

    url: str
    title: str
    photos: list[Photo] = field(default_factory=list)


@dataclass
class SessionTokens:
    """Page-embedded globals needed to call the batch RPC endpoint."""

    at: str = ""  # CSRF token, usually absent on public shared albums
    sid: str = ""
    bl: str = ""
    path: str = DEFAULT_RPC_PATH


@dataclass
class MediaDownload:
    """Fully buffered original media bytes plus what we learned about them."""

    data: bytes
    content_type: str
    extension: str
    is_video: bool

    @property
    def size(self) -> int:
        return len(self.data)
