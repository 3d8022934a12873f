"""Sync engine – mirrors one shared album into Immich through a bounded worker pool."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from rich.console import Console

from sync_album.clients.immich import ImmichClient, ImmichError
from sync_album.config import AlbumConfig, Config
from sync_album.dedup import DedupCache, dedup_key
from sync_album.progress import ProgressTracker, format_size
from sync_album.scraper import AlbumScraper, MediaResolver, Photo

logger = logging.getLogger(__name__)

DEBUG_PROGRESS_EVERY = 100


def build_description(caption: str, album_title: str, album_url: str) -> str:
    """Append the provenance trailer to an item's caption."""
    trailer = f"Source Album: {album_title} ({album_url})"
    return f"{caption}\n\n{trailer}" if caption else trailer


@dataclass
class ItemResult:
    """Outcome of processing one album item.

    ``asset_id`` is set whenever the item exists in Immich afterwards and
    should be part of the album; ``uploaded`` only when new bytes were stored.
    """

    asset_id: str = ""
    uploaded: bool = False
    skipped: bool = False
    bytes_downloaded: int = 0
    bytes_uploaded: int = 0
    error: Exception | None = None


@dataclass
class AlbumContext:
    """Read-only state shared by all workers of one album sync."""

    title: str
    url: str
    album_cache: DedupCache
    global_cache: DedupCache


@dataclass
class SyncResult:
    """Aggregated result of one album sync."""

    album_title: str = ""
    album_url: str = ""
    album_id: str = ""
    processed: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0
    bytes_downloaded: int = 0
    bytes_uploaded: int = 0
    asset_ids: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    def record(self, item: ItemResult) -> None:
        self.processed += 1
        self.bytes_downloaded += item.bytes_downloaded
        self.bytes_uploaded += item.bytes_uploaded
        if item.error is not None:
            self.failed += 1
            return
        if item.uploaded:
            self.added += 1
        elif item.skipped:
            self.skipped += 1
        if item.asset_id:
            self.asset_ids.append(item.asset_id)

    def summary(self) -> str:
        lines = [
            f"Processed   : {self.processed}",
            f"Added       : {self.added}",
            f"Skipped     : {self.skipped}",
            f"Failed      : {self.failed}",
        ]
        if self.bytes_downloaded:
            lines.append(f"Downloaded  : {format_size(self.bytes_downloaded)}")
        if self.bytes_uploaded:
            lines.append(f"Uploaded    : {format_size(self.bytes_uploaded)}")
        return "\n".join(lines)


class SyncEngine:
    """Scrapes an album, uploads what Immich is missing, and fills the destination album."""

    def __init__(
        self,
        immich: ImmichClient,
        scraper: AlbumScraper,
        resolver: MediaResolver,
        config: Config,
        console: Console | None = None,
    ):
        self._immich = immich
        self._scraper = scraper
        self._resolver = resolver
        self._config = config
        self._console = console

    # ── public API ───────────────────────────────────────────────────

    def sync_album(self, album_cfg: AlbumConfig, album_list: list[dict] | None = None) -> SyncResult:
        """Run one full sync of *album_cfg*; album-level failures raise."""
        start = time.monotonic()
        logger.info("Syncing shared album %s", album_cfg.url)

        album = self._scraper.scrape(album_cfg.url)
        title = album_cfg.album_name or album.title
        result = SyncResult(album_title=title, album_url=album_cfg.url)
        logger.info("Found %d item(s) in album %r", len(album.photos), title)

        if not album.photos:
            logger.info("No items found in %r, skipping", title)
            return result

        result.album_id = self.resolve_album_id(album_cfg, title, album_list or [])
        ctx = AlbumContext(
            title=title,
            url=album_cfg.url,
            album_cache=DedupCache.from_album(self._immich, result.album_id),
            global_cache=DedupCache.from_device(self._immich),
        )

        self._run_pool(album.photos, ctx, result)

        if result.asset_ids:
            logger.info("Adding %d item(s) to album %r", len(result.asset_ids), title)
            try:
                self._immich.add_assets_to_album(result.album_id, result.asset_ids)
            except ImmichError as exc:
                logger.error("Error adding assets to album %r: %s", title, exc)

        result.elapsed = time.monotonic() - start
        logger.info(
            "Sync finished for %r: processed=%d added=%d skipped=%d failed=%d (%.1fs)",
            title, result.processed, result.added, result.skipped, result.failed, result.elapsed,
        )
        return result

    def resolve_album_id(self, album_cfg: AlbumConfig, title: str, album_list: list[dict]) -> str:
        """Configured id, else exact name match in *album_list*, else a newly created album."""
        if album_cfg.immich_album_id:
            return album_cfg.immich_album_id
        for existing in album_list:
            if existing.get("albumName") == title and existing.get("id"):
                return existing["id"]
        logger.info("Creating Immich album: %s", title)
        return self._immich.create_album(title)["id"]

    def process_item(self, photo: Photo, ctx: AlbumContext) -> ItemResult:
        """Process one item; never raises, errors are returned in the result."""
        try:
            return self._process_item(photo, ctx)
        except Exception as exc:
            return ItemResult(error=exc)

    # ── worker pool ──────────────────────────────────────────────────

    def _run_pool(self, photos: list[Photo], ctx: AlbumContext, result: SyncResult) -> None:
        total = len(photos)
        workers = max(1, min(self._config.workers, total))
        logger.info("Processing %d item(s) with %d worker(s)", total, workers)

        tracker = ProgressTracker(ctx.title, total, debug=self._config.debug, console=self._console)
        tracker.start()
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="item") as executor:
                futures = {executor.submit(self.process_item, p, ctx): p for p in photos}
                # Single consumer: counters and the id list are only touched here.
                for future in as_completed(futures):
                    photo = futures[future]
                    try:
                        item = future.result()
                    except Exception as exc:
                        item = ItemResult(error=exc)
                    if item.error is not None:
                        logger.error("Failed to process item %s: %s", photo.id, item.error)
                        logger.debug("Traceback for %s", photo.id, exc_info=item.error)
                    result.record(item)
                    tracker.record_item(
                        item.bytes_downloaded,
                        item.bytes_uploaded,
                        added=item.error is None and item.uploaded,
                        skipped=item.error is None and item.skipped,
                        failed=item.error is not None,
                    )
                    if self._config.debug and result.processed % DEBUG_PROGRESS_EVERY == 0:
                        logger.debug(
                            "Progress %d/%d (added=%d skipped=%d failed=%d)",
                            result.processed, total, result.added, result.skipped, result.failed,
                        )
        finally:
            tracker.stop()

    # ── single item ──────────────────────────────────────────────────

    def _process_item(self, photo: Photo, ctx: AlbumContext) -> ItemResult:
        key = dedup_key(photo.id)

        asset_id = ctx.album_cache.lookup(key)
        if asset_id:
            logger.debug("Already in album: %s (%s)", key, asset_id)
            return ItemResult(asset_id=asset_id, skipped=True)

        asset_id = ctx.global_cache.lookup(key)
        if asset_id:
            logger.debug("Already in Immich, adding to album: %s (%s)", key, asset_id)
            return ItemResult(asset_id=asset_id, skipped=True)

        if self._config.strict_metadata and photo.taken_at is None:
            logger.warning(
                "Skipping item without a capture date (review manually): id=%s url=%s",
                photo.id, photo.url,
            )
            return ItemResult(skipped=True)

        still_size = (photo.width, photo.height) if self._config.strip_motion_photos else None
        media = self._resolver.download(photo.url, still_size=still_size)
        photo.is_video = media.is_video

        if media.is_video and self._config.skip_videos:
            logger.debug("Skipping video item %s", photo.id)
            return ItemResult(skipped=True, bytes_downloaded=media.size)

        filename = key + media.extension
        if photo.taken_at is None:
            logger.warning(
                "Uploading item without a capture date (using current time): %s url=%s video=%s",
                filename, photo.url, media.is_video,
            )

        try:
            asset_id, duplicate = self._immich.upload_asset(
                media.data,
                filename,
                media.size,
                photo.taken_at,
                build_description(photo.description, ctx.title, ctx.url),
            )
        except ImmichError as exc:
            return ItemResult(bytes_downloaded=media.size, error=exc)

        if duplicate:
            logger.debug("Immich reported %s as a duplicate of %s", filename, asset_id)
        else:
            logger.debug("Uploaded %s as %s", filename, asset_id)
        return ItemResult(
            asset_id=asset_id,
            uploaded=not duplicate,
            skipped=duplicate,
            bytes_downloaded=media.size,
            bytes_uploaded=media.size,
        )
