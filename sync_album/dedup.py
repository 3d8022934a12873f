"""Dedup caches – snapshot indexes of assets that already exist in Immich."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from sync_album.clients.immich import DEVICE_ID, ImmichClient, ImmichError

logger = logging.getLogger(__name__)

KEY_PREFIX = "gp_"


def dedup_key(photo_id: str) -> str:
    """Return the filename stem used for an item's upload and existence checks."""
    return KEY_PREFIX + photo_id.replace("/", "_").replace(":", "_")


def strip_extension(filename: str) -> str:
    stem, dot, _ = filename.rpartition(".")
    return stem if dot else filename


class DedupCache:
    """Read-only mapping of filename stem -> existing asset id.

    Built once before workers start and never mutated afterwards, so workers
    can read it concurrently without a lock.
    """

    def __init__(self, entries: Mapping[str, str] | None = None, label: str = "cache"):
        self._entries = dict(entries or {})
        self.label = label

    @classmethod
    def from_assets(cls, assets: Iterable[dict], label: str = "cache") -> DedupCache:
        entries = {}
        for asset in assets:
            name = asset.get("originalFileName") or ""
            asset_id = asset.get("id") or ""
            if name and asset_id:
                entries[strip_extension(name)] = asset_id
        return cls(entries, label)

    @classmethod
    def from_album(cls, client: ImmichClient, album_id: str) -> DedupCache:
        """Index the destination album's current assets (empty if it cannot be read)."""
        if not album_id:
            return cls(label="album")
        try:
            album = client.get_album(album_id)
        except ImmichError as exc:
            logger.warning("Could not list assets of album %s: %s", album_id, exc)
            return cls(label="album")
        cache = cls.from_assets(album.get("assets") or [], label="album")
        logger.debug("Pre-fetched %d %s asset(s)", len(cache), cache.label)
        return cache

    @classmethod
    def from_device(cls, client: ImmichClient, device_id: str = DEVICE_ID) -> DedupCache:
        """Index everything this tool has ever uploaded, across all albums."""
        try:
            assets = client.search_assets_by_device(device_id)
        except ImmichError as exc:
            logger.warning(
                "Failed to fetch global assets, duplicates will be re-uploaded: %s", exc
            )
            return cls(label="global")
        cache = cls.from_assets(assets, label="global")
        logger.debug("Pre-fetched %d %s asset(s)", len(cache), cache.label)
        return cache

    def lookup(self, key: str) -> str | None:
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self._entries)
