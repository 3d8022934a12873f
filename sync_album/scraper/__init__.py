"""Shared-album scraper: page parser, batch-RPC pagination and media download."""

from .errors import MediaDownloadError, PageParseError, PaginationError, ScrapeError
from .media import MediaResolver
from .models import Album, MediaDownload, Photo, SessionTokens
from .pagination import AlbumScraper

__all__ = [
    "Album",
    "AlbumScraper",
    "MediaDownload",
    "MediaDownloadError",
    "MediaResolver",
    "PageParseError",
    "PaginationError",
    "Photo",
    "ScrapeError",
    "SessionTokens",
]
