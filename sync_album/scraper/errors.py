"""Exceptions raised while scraping a shared album."""


class ScrapeError(RuntimeError):
    """The album page could not be fetched or understood."""


class PageParseError(ScrapeError):
    """The embedded data block is missing, unbalanced or not valid JSON."""


class PaginationError(ScrapeError):
    """A follow-up page could not be fetched or its RPC envelope was not recognised."""


class MediaDownloadError(RuntimeError):
    """Original media bytes could not be retrieved."""
