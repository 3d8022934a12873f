"""Scheduler – periodically re-syncs every configured album."""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, time as dtime, timedelta

from sync_album.clients.immich import ImmichClient, ImmichError
from sync_album.config import AlbumConfig, Config
from sync_album.sync_engine import SyncEngine, SyncResult

logger = logging.getLogger(__name__)

TICK_SECONDS = 60.0


class SystemClock:
    """Wall clock; ``wait`` returns early (True) once *stop* is set."""

    def now(self) -> datetime:
        return datetime.now().astimezone()

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        return stop.wait(seconds)


class EntryState(enum.Enum):
    IDLE = "idle"
    DUE = "due"
    RUNNING = "running"


@dataclass
class ScheduleEntry:
    album: AlbumConfig
    interval: timedelta
    next_due: datetime
    state: EntryState = EntryState.IDLE
    last_result: SyncResult | None = None


def first_run_at(now: datetime, start_time: dtime | None) -> datetime:
    """Now, or the next occurrence of the daily *start_time*."""
    if start_time is None:
        return now
    candidate = now.replace(
        hour=start_time.hour, minute=start_time.minute, second=0, microsecond=0
    )
    if candidate < now:
        candidate += timedelta(days=1)
    return candidate


class Scheduler:
    """Runs due albums every tick, at most ``album_workers`` at a time."""

    def __init__(
        self,
        config: Config,
        immich: ImmichClient,
        engine: SyncEngine,
        clock: SystemClock | None = None,
        tick: float = TICK_SECONDS,
    ):
        self._config = config
        self._immich = immich
        self._engine = engine
        self._clock = clock or SystemClock()
        self._tick = tick
        self._stop = threading.Event()

        start = first_run_at(self._clock.now(), config.start_time)
        self.entries = [
            ScheduleEntry(album=album, interval=album.interval, next_due=start)
            for album in config.albums
        ]
        for entry in self.entries:
            logger.info(
                "Scheduled %s every %s, first run at %s",
                entry.album.url, entry.interval, entry.next_due.strftime("%Y-%m-%d %H:%M"),
            )

    # ── public API ───────────────────────────────────────────────────

    def due(self, now: datetime | None = None) -> list[ScheduleEntry]:
        now = now or self._clock.now()
        return [e for e in self.entries if e.state is EntryState.IDLE and e.next_due <= now]

    def run_pending(self, force: bool = False) -> int:
        """Run every album that is due (all of them with *force*); return how many ran."""
        due = list(self.entries) if force else self.due()
        if not due:
            return 0
        for entry in due:
            entry.state = EntryState.DUE

        try:
            album_list = self._immich.get_albums()
        except ImmichError as exc:
            logger.warning("Failed to fetch Immich album list: %s", exc)
            album_list = []

        workers = max(1, min(self._config.album_workers, len(due)))
        logger.info("Processing %d due album(s) with %d album worker(s)", len(due), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="album") as executor:
            futures = [executor.submit(self._run_entry, entry, album_list) for entry in due]
            for future in as_completed(futures):
                future.result()
        return len(due)

    def run(self) -> None:
        """Block until ``stop()`` is called, running due albums every tick."""
        while not self._stop.is_set():
            self.run_pending()
            if self._clock.wait(self._tick, self._stop):
                break

    def stop(self) -> None:
        self._stop.set()

    # ── internals ────────────────────────────────────────────────────

    def _run_entry(self, entry: ScheduleEntry, album_list: list[dict]) -> None:
        entry.state = EntryState.RUNNING
        try:
            entry.last_result = self._engine.sync_album(entry.album, album_list)
        except Exception:
            logger.exception("Sync of %s failed", entry.album.url)
        finally:
            # Reschedule from completion time, failed runs included.
            entry.next_due = self._clock.now() + entry.interval
            entry.state = EntryState.IDLE
            logger.info(
                "Next sync of %s at %s",
                entry.album.url, entry.next_due.strftime("%Y-%m-%d %H:%M:%S"),
            )
