"""Page parser – pulls the album title and first page of items out of shared-album HTML.

The album page ships its data as a JavaScript call whose ``data:`` argument is
a (large, nested) JSON array. We do not run a JS parser: we find the anchor,
then bound the array with a bracket-balancing scan that understands string
literals and backslash escapes, and hand exactly that slice to ``json``.

Everything after decoding is schema-less: each access is bounds- and
type-checked and a malformed item is dropped rather than failing the page.
"""

from __future__ import annotations

import html as html_lib
import json
import logging
import math
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sync_album.scraper.errors import PageParseError
from sync_album.scraper.models import Photo

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Google Photos Album"

_TITLE_RE = re.compile(r'<meta\s+property="og:title"\s+content="([^"]*)"\s*/?>')
_DATE_SUFFIX_RE = re.compile(r"\s*·.*$", re.S)
_DATA_ANCHOR_RE = re.compile(r"key:\s*'ds:1'.*?data:", re.S)
_INT_STRING_RE = re.compile(r"-?\d+")

# Capture-time sanity window
TIMESTAMP_FLOOR_MS = 946_684_800_000  # 2000-01-01T00:00:00Z
CLOCK_SKEW = timedelta(days=1)


@dataclass
class ParsedPage:
    title: str
    photos: list[Photo] = field(default_factory=list)
    data: list = field(default_factory=list)  # raw top-level array, kept for token lookup


# ── title ────────────────────────────────────────────────────────────


def _strip_trailing_decoration(text: str) -> str:
    """Drop trailing emoji / pictographs (and their variation selectors)."""
    end = len(text)
    while end > 0:
        ch = text[end - 1]
        if ch.isspace() or ch == "\ufe0f" or unicodedata.category(ch) in ("So", "Sk", "Cf"):
            end -= 1
            continue
        break
    return text[:end]


def extract_title(html: str) -> str:
    """Return the cleaned ``og:title`` of the page, or DEFAULT_TITLE."""
    match = _TITLE_RE.search(html)
    if not match or not match.group(1).strip():
        return DEFAULT_TITLE
    title = html_lib.unescape(match.group(1))
    title = _DATE_SUFFIX_RE.sub("", title)
    title = _strip_trailing_decoration(title.strip()).strip()
    return title or DEFAULT_TITLE


# ── embedded JSON ────────────────────────────────────────────────────


def find_json_array(text: str, start: int = 0) -> tuple[int, int]:
    """Return ``(begin, end)`` bounding the first balanced JSON array at or after *start*.

    ``text[begin:end]`` starts with ``[`` and ends with the matching ``]``.
    Brackets inside string literals are ignored; ``\\"`` does not end a string.
    """
    begin = text.find("[", start)
    if begin == -1:
        raise PageParseError("could not find start of JSON array")

    depth = 0
    in_string = False
    escaped = False
    for pos in range(begin, len(text)):
        ch = text[pos]
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return begin, pos + 1

    raise PageParseError("could not find end of JSON array (unbalanced brackets)")


def extract_embedded_data(html: str) -> list:
    """Locate and decode the album data block embedded in the page."""
    anchor = _DATA_ANCHOR_RE.search(html)
    if anchor is None:
        raise PageParseError("could not find album data (ds:1) in page")

    begin, end = find_json_array(html, anchor.end())
    try:
        data = json.loads(html[begin:end])
    except json.JSONDecodeError as exc:
        raise PageParseError(f"failed to parse album JSON: {exc}") from exc
    if not isinstance(data, list):
        raise PageParseError("album data is not a JSON array")
    return data


def item_list(data: list) -> list:
    """Items live at index 1 of the top-level array; older pages used index 0."""
    if len(data) > 1 and isinstance(data[1], list):
        return data[1]
    if data and isinstance(data[0], list):
        return data[0]
    return []


# ── timestamps ───────────────────────────────────────────────────────


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and _INT_STRING_RE.fullmatch(value.strip()):
        return int(value.strip())
    return None


def normalize_timestamp(value: int) -> int:
    """Bring an epoch value in s, ms or µs to milliseconds."""
    if value > 10**15:
        return value // 1000  # microseconds
    if 0 < value < 10**10:
        return value * 1000  # seconds
    return value


def classify_timestamp(candidate_ms: int, now: datetime) -> bool:
    """True if a normalised millisecond timestamp is a plausible capture time.

    Valid means strictly after 2000-01-01 and no later than ``now`` plus one
    day of clock skew.
    """
    ceiling_ms = int((now + CLOCK_SKEW).timestamp() * 1000)
    return TIMESTAMP_FLOOR_MS < candidate_ms <= ceiling_ms


def extract_timestamp(item: list, now: datetime | None = None) -> datetime | None:
    """Pick the capture time of a raw item, or None when nothing plausible is found.

    Candidates are direct numeric values and the first element of sub-arrays
    from position 2 onward. The earliest valid candidate wins: upload and edit
    times sit next to the capture time but are never earlier than it.
    """
    now = now or datetime.now(timezone.utc)
    candidates: list[int] = []
    for value in item[2:]:
        if isinstance(value, list):
            if not value:
                continue
            value = value[0]
        number = _as_int(value)
        if number is None:
            continue
        number = normalize_timestamp(number)
        if classify_timestamp(number, now):
            candidates.append(number)

    if not candidates:
        return None
    return datetime.fromtimestamp(min(candidates) / 1000, tz=timezone.utc)


# ── items ────────────────────────────────────────────────────────────


def _dimension(value: Any) -> int:
    number = _as_int(value) if not isinstance(value, str) else None
    return number if number and number > 0 else 0


def parse_photo_item(item: Any, now: datetime | None = None) -> Photo | None:
    """Build a Photo from one raw item array; None if id or URL is missing."""
    if not isinstance(item, list) or len(item) < 2:
        return None
    photo_id = item[0] if isinstance(item[0], str) else ""
    media = item[1]
    if not photo_id or not isinstance(media, list) or not media:
        return None
    url = media[0] if isinstance(media[0], str) else ""
    if not url:
        return None

    width = height = 0
    if len(media) >= 3:
        width, height = _dimension(media[1]), _dimension(media[2])

    description = ""
    for value in item[3:]:
        if isinstance(value, str) and value:
            description = value
            break

    return Photo(
        id=photo_id,
        url=url,
        width=width,
        height=height,
        taken_at=extract_timestamp(item, now),
        description=description,
    )


def parse_photo_items(items: Any, now: datetime | None = None) -> list[Photo]:
    """Parse a raw item list, silently dropping entries that are not usable."""
    if not isinstance(items, list):
        return []
    photos = []
    for item in items:
        photo = parse_photo_item(item, now)
        if photo is not None:
            photos.append(photo)
    dropped = len(items) - len(photos)
    if dropped:
        logger.debug("Dropped %d malformed item(s) of %d", dropped, len(items))
    return photos


def parse_album_page(html: str) -> ParsedPage:
    """Parse a shared-album page into title, first-page photos and the raw data array."""
    data = extract_embedded_data(html)
    return ParsedPage(
        title=extract_title(html),
        photos=parse_photo_items(item_list(data)),
        data=data,
    )
