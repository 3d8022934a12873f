"""Pagination client – walks the batch-RPC protocol behind shared-album pages.

The first page only carries a few hundred items. Larger albums are continued
through the ``batchexecute`` endpoint using a continuation token found in the
page data, the album's media key and auth key, and a handful of session
globals embedded in the page. None of this is documented, so every step
degrades to "keep what we already have" instead of failing the sync.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import parse_qs, quote, urlencode, urlsplit

import requests

from sync_album.clients.transport import HttpTransport
from sync_album.scraper.errors import PaginationError, ScrapeError
from sync_album.scraper.models import Album, Photo, SessionTokens
from sync_album.scraper.parser import parse_album_page, parse_photo_items

logger = logging.getLogger(__name__)

RPC_ID = "snAcKc"
RPC_HOST = "https://photos.google.com"
RPC_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"
RESPONSE_MARKER = "wrb.fr"
MAX_PAGES = 500
MIN_TOKEN_LENGTH = 10  # heuristic: continuation tokens are long opaque strings

_TOKEN_PATTERNS = {
    "at": re.compile(r'"SNlM0e":"([^"]+)"'),
    "sid": re.compile(r'"FdrFJe":"([^"]+)"'),
    "bl": re.compile(r'"cfb2h":"([^"]+)"'),
    "path": re.compile(r'"eptZe":"([^"]+)"'),
}


# ── token harvesting ─────────────────────────────────────────────────


def extract_continuation_token(data: list) -> str:
    """Return the continuation token of the first page, or "" if there is none.

    The token normally sits at index 2. Failing that, the first long string
    after the item list is assumed to be it; this is a best-effort guess that
    at worst costs one failed page request.
    """
    if len(data) > 2 and isinstance(data[2], str) and data[2]:
        return data[2]
    for value in data[2:]:
        if isinstance(value, str) and len(value) > MIN_TOKEN_LENGTH:
            return value
    return ""


def extract_session_tokens(html: str) -> SessionTokens:
    tokens = SessionTokens()
    for name, pattern in _TOKEN_PATTERNS.items():
        match = pattern.search(html)
        if match:
            setattr(tokens, name, match.group(1))
    return tokens


def extract_album_path(url: str) -> tuple[str, str]:
    """Return ``(source_path, media_key)`` for a resolved shared-album URL."""
    parts = urlsplit(url)
    source_path = parts.path + (f"?{parts.query}" if parts.query else "")
    segments = parts.path.rstrip("/").split("/")
    media_key = ""
    for i, segment in enumerate(segments):
        if segment == "share" and i + 1 < len(segments):
            media_key = segments[i + 1]
            break
    return source_path, media_key


def extract_auth_key(url: str) -> str:
    values = parse_qs(urlsplit(url).query).get("key")
    return values[0] if values else ""


def _album_metadata(data: list) -> list:
    if len(data) > 3 and isinstance(data[3], list):
        return data[3]
    return []


def resolve_album_keys(url: str, data: list) -> tuple[str, str, str]:
    """Return ``(source_path, media_key, auth_key)``, falling back to the page metadata."""
    source_path, media_key = extract_album_path(url)
    auth_key = extract_auth_key(url)
    meta = _album_metadata(data)
    if not media_key and meta and isinstance(meta[0], str):
        media_key = meta[0]
    if not auth_key and len(meta) > 19 and isinstance(meta[19], str):
        auth_key = meta[19]
    return source_path, media_key, auth_key


# ── batch RPC ────────────────────────────────────────────────────────


def build_batch_request(
    media_key: str,
    page_token: str,
    auth_key: str,
    source_path: str,
    tokens: SessionTokens,
) -> tuple[str, str]:
    """Return the ``(url, form_body)`` of one page request."""
    inner = json.dumps([media_key, page_token, None, auth_key], separators=(",", ":"))
    outer = json.dumps([[[RPC_ID, inner, None, "generic"]]], separators=(",", ":"))
    form = {"f.req": outer}
    # The CSRF token is normally missing for anonymous access; that is fine.
    if tokens.at:
        form["at"] = tokens.at

    url = (
        f"{RPC_HOST}{tokens.path}data/batchexecute"
        f"?rpcids={RPC_ID}"
        f"&source-path={quote(source_path, safe='')}"
        f"&f.sid={quote(tokens.sid, safe='')}"
        f"&bl={quote(tokens.bl, safe='')}"
        "&pageId=none&rt=c"
    )
    return url, urlencode(form)


def _decode_envelope(line: str) -> Any:
    """Return the double-decoded payload of one response line, or None."""
    try:
        envelope = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(envelope, list) or not envelope:
        return None
    response = envelope[0]
    if not isinstance(response, list) or len(response) < 3:
        return None
    if response[1] != RPC_ID:
        return None
    payload_text = response[2]
    if not isinstance(payload_text, str) or not payload_text:
        return None
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, list) else None


def parse_batch_response(body: str) -> tuple[list[Photo], str]:
    """Extract ``(photos, next_token)`` from a multi-line batchexecute response."""
    for line in body.splitlines():
        line = line.strip()
        if RESPONSE_MARKER not in line:
            continue
        payload = _decode_envelope(line)
        if payload is None:
            continue
        photos = parse_photo_items(payload[1]) if len(payload) > 1 else []
        next_token = payload[2] if len(payload) > 2 and isinstance(payload[2], str) else ""
        return photos, next_token

    raise PaginationError("no valid response envelope found in batchexecute response")


def deduplicate_photos(photos: list[Photo]) -> list[Photo]:
    """Drop repeats by id, keeping first occurrence order."""
    seen: set[str] = set()
    unique = []
    for photo in photos:
        if photo.id and photo.id not in seen:
            seen.add(photo.id)
            unique.append(photo)
    return unique


# ── scraper ──────────────────────────────────────────────────────────


class AlbumScraper:
    """Scrapes a public shared album into an Album, following pagination."""

    def __init__(self, transport: HttpTransport, max_pages: int = MAX_PAGES):
        self._transport = transport
        self._max_pages = max_pages

    def scrape(self, album_url: str) -> Album:
        resp = self._transport.get(album_url)
        try:
            if resp.status_code != 200:
                raise ScrapeError(f"failed to fetch album: HTTP {resp.status_code}")
            # Short links redirect; the final URL carries the media and auth keys.
            final_url = resp.url or album_url
            html = resp.text
        finally:
            resp.close()

        page = parse_album_page(html)
        photos = list(page.photos)
        logger.debug("First page of %s: %d item(s)", final_url, len(photos))

        token = extract_continuation_token(page.data)
        if token:
            photos.extend(self._fetch_remaining(final_url, html, page.data, token, len(photos)))

        return Album(url=final_url, title=page.title, photos=deduplicate_photos(photos))

    def fetch_page(
        self,
        media_key: str,
        auth_key: str,
        page_token: str,
        source_path: str,
        tokens: SessionTokens,
    ) -> tuple[list[Photo], str]:
        url, body = build_batch_request(media_key, page_token, auth_key, source_path, tokens)
        try:
            resp = self._transport.post(url, RPC_CONTENT_TYPE, body)
        except requests.RequestException as exc:
            raise PaginationError(f"batchexecute request failed: {exc}") from exc
        try:
            if resp.status_code != 200:
                raise PaginationError(f"batchexecute returned HTTP {resp.status_code}")
            text = resp.text
        finally:
            resp.close()
        return parse_batch_response(text)

    def _fetch_remaining(
        self, url: str, html: str, data: list, token: str, have: int
    ) -> list[Photo]:
        source_path, media_key, auth_key = resolve_album_keys(url, data)
        if not media_key:
            logger.warning("Could not determine album media key for %s, pagination skipped", url)
            return []

        tokens = extract_session_tokens(html)
        logger.info("Album has more pages, fetching remaining items (have %d so far)", have)

        fetched: list[Photo] = []
        page = 0
        while token:
            if page >= self._max_pages:
                logger.warning(
                    "Pagination stopped after %d pages for %s, keeping %d item(s)",
                    self._max_pages, url, have + len(fetched),
                )
                break
            page += 1
            logger.debug("Fetching page %d (items so far: %d)", page + 1, have + len(fetched))
            try:
                photos, token = self.fetch_page(media_key, auth_key, token, source_path, tokens)
            except PaginationError as exc:
                logger.warning("Pagination stopped at page %d: %s", page + 1, exc)
                break
            if not photos:
                break
            fetched.extend(photos)
        return fetched
