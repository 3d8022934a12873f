"""Media resolver – probes an item's base URL and fetches its original bytes."""

from __future__ import annotations

import logging

from sync_album.clients.transport import HttpTransport
from sync_album.scraper.errors import MediaDownloadError
from sync_album.scraper.models import MediaDownload

logger = logging.getLogger(__name__)

# URL suffixes understood by the media CDN
ORIGINAL_SUFFIX = "=d"  # full quality, no transform (keeps motion-photo data)
VIDEO_SUFFIX = "=dv"  # direct video delivery
STILL_SUFFIX = "=w{width}-h{height}"  # re-encoded still, motion component stripped
MAX_STILL_EDGE = 16383  # bound used when the item's pixel size is unknown

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/heif": ".heic",
    "image/avif": ".avif",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
}


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def extension_from_content_type(content_type: str | None) -> str:
    """Map a Content-Type to a file extension (".mp4" / ".jpg" when unknown)."""
    media_type = _media_type(content_type)
    if media_type in _EXTENSIONS:
        return _EXTENSIONS[media_type]
    return ".mp4" if media_type.startswith("video/") else ".jpg"


def is_video_type(content_type: str | None) -> bool:
    return _media_type(content_type).startswith("video/")


def still_suffix(width: int = 0, height: int = 0) -> str:
    return STILL_SUFFIX.format(
        width=width if width > 0 else MAX_STILL_EDGE,
        height=height if height > 0 else MAX_STILL_EDGE,
    )


class MediaResolver:
    """Downloads original-quality media for scraped album items."""

    def __init__(self, transport: HttpTransport):
        self._transport = transport

    def probe(self, base_url: str) -> bool:
        """HEAD the full-quality URL; True when the source serves a video."""
        resp = self._transport.head(base_url + ORIGINAL_SUFFIX)
        resp.close()
        return is_video_type(resp.headers.get("Content-Type"))

    def download(
        self, base_url: str, still_size: tuple[int, int] | None = None
    ) -> MediaDownload:
        """Fetch the item's bytes, fully buffered.

        Videos use the direct-video suffix. Images use the untransformed
        original so motion photos arrive intact, unless *still_size* is given,
        in which case a plain still bounded by ``(width, height)`` is fetched.
        """
        is_video = self.probe(base_url)
        if is_video:
            suffix = VIDEO_SUFFIX
        elif still_size is not None:
            suffix = still_suffix(*still_size)
        else:
            suffix = ORIGINAL_SUFFIX

        kind = "video" if is_video else "image"
        resp = self._transport.get(base_url + suffix)
        try:
            if resp.status_code != 200:
                raise MediaDownloadError(f"failed to download {kind}: HTTP {resp.status_code}")
            # Buffer completely: chunked responses carry no reliable length and
            # the upload needs an exact size up front.
            data = resp.content
            content_type = resp.headers.get("Content-Type", "")
        finally:
            resp.close()

        logger.debug("Downloaded %s (%d bytes, %s)", kind, len(data), content_type or "unknown type")
        return MediaDownload(
            data=data,
            content_type=content_type,
            extension=extension_from_content_type(content_type),
            is_video=is_video,
        )
