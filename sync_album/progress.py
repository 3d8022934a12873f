"""Per-album progress tracking with a periodic console reporter."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.text import Text

BAR_WIDTH = 30
TTY_INTERVAL = 3.0  # seconds
NON_TTY_INTERVAL = 30.0  # seconds
NON_TTY_PERCENT_STEP = 10  # captured logs only get a line per 10% milestone
NAME_WIDTH = 20
FILLED = "█"
EMPTY = "░"


def format_size(num_bytes: float) -> str:
    """Return a human-readable file size string."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(num_bytes) < 1024:
            return f"{num_bytes:.1f} {unit}" if unit != "B" else f"{int(num_bytes)} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.1f} PB"


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {seconds % 3600 // 60}m"


def format_eta(processed: int, total: int, elapsed: float) -> str:
    """(elapsed / processed) * remaining, or "calculating..." before the first item."""
    if processed <= 0:
        return "calculating..."
    remaining = max(total - processed, 0)
    return format_duration(elapsed / processed * remaining)


def render_bar(current: int, total: int, width: int = BAR_WIDTH) -> str:
    if total <= 0:
        return EMPTY * width
    filled = min(current * width // total, width)
    return FILLED * filled + EMPTY * (width - filled)


def _fit_name(name: str, width: int = NAME_WIDTH) -> str:
    if len(name) <= width:
        return name.ljust(width)
    return name[: width - 1] + "…"


@dataclass(frozen=True)
class Snapshot:
    processed: int
    added: int
    skipped: int
    failed: int
    bytes_downloaded: int
    bytes_uploaded: int


class ProgressTracker:
    """Counts one album run and reports it periodically.

    Counters are updated by the single aggregating loop but read by the
    reporter thread, so all access goes through a lock.
    """

    def __init__(
        self,
        album_name: str,
        total: int,
        debug: bool = False,
        console: Console | None = None,
        is_tty: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.album_name = album_name
        self.total = total
        self.debug = debug
        self._console = console or Console()
        self.is_tty = self._console.is_terminal if is_tty is None else is_tty
        self._clock = clock
        self._lock = threading.Lock()
        self._processed = 0
        self._added = 0
        self._skipped = 0
        self._failed = 0
        self._bytes_down = 0
        self._bytes_up = 0
        self._last_milestone = -1
        self._started = clock()
        self._done = threading.Event()
        self._thread: threading.Thread | None = None
        self._stopped = False

    # ── recording ────────────────────────────────────────────────────

    def record_item(
        self,
        downloaded: int = 0,
        uploaded: int = 0,
        added: bool = False,
        skipped: bool = False,
        failed: bool = False,
    ) -> None:
        with self._lock:
            self._processed += 1
            self._bytes_down += downloaded
            self._bytes_up += uploaded
            self._added += int(added)
            self._skipped += int(skipped)
            self._failed += int(failed)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                self._processed, self._added, self._skipped, self._failed,
                self._bytes_down, self._bytes_up,
            )

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    # ── reporting ────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin periodic reporting (no-op in debug mode, where logs are used instead)."""
        self._started = self._clock()
        if self.debug:
            return
        if not self.is_tty:
            self._console.print(
                f"[{_fit_name(self.album_name)}] Processing {self.total} items "
                f"(progress updates every {NON_TTY_PERCENT_STEP}%)",
                markup=False, highlight=False,
            )
        interval = TTY_INTERVAL if self.is_tty else NON_TTY_INTERVAL
        self._thread = threading.Thread(
            target=self._report_loop, args=(interval,), name="progress", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop reporting and print the final summary line; safe to call twice."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._done.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        if not self.debug:
            self._console.print(Text(self.final_line()))

    def _report_loop(self, interval: float) -> None:
        while not self._done.wait(interval):
            line = self.progress_line()
            if line:
                self._console.print(Text(line))

    def progress_line(self) -> str | None:
        """Return the current progress line, or None when nothing should be printed."""
        if self.total <= 0:
            return None
        snap = self.snapshot()
        percent = snap.processed * 100 // self.total
        if not self.is_tty:
            milestone = percent // NON_TTY_PERCENT_STEP * NON_TTY_PERCENT_STEP
            if milestone <= self._last_milestone:
                return None
            self._last_milestone = milestone

        elapsed = self.elapsed
        return (
            f"[{_fit_name(self.album_name)}] {render_bar(snap.processed, self.total)} "
            f"{percent:3d}% │ {snap.processed}/{self.total} │ "
            f"{self._speeds(snap, elapsed)} │ ETA: {format_eta(snap.processed, self.total, elapsed)}"
        )

    def final_line(self) -> str:
        snap = self.snapshot()
        return (
            f"[{_fit_name(self.album_name)}] {render_bar(snap.processed, self.total)} "
            f"100% │ {snap.processed}/{self.total} │ "
            f"+{snap.added} ={snap.skipped} ✗{snap.failed} │ "
            f"↓ {format_size(snap.bytes_downloaded)} ↑ {format_size(snap.bytes_uploaded)} │ "
            f"{format_duration(self.elapsed)}"
        )

    @staticmethod
    def _speeds(snap: Snapshot, elapsed: float) -> str:
        if elapsed < 0.5:
            return "↓ --- ↑ ---"
        return (
            f"↓ {format_size(snap.bytes_downloaded / elapsed)}/s "
            f"↑ {format_size(snap.bytes_uploaded / elapsed)}/s"
        )
