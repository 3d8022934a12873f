"""CLI entry point for mirroring shared Google Photos albums into Immich."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from sync_album.app import App
from sync_album.clients import HttpTransport, ImmichClient
from sync_album.config import DEFAULT_CONFIG_FILE, ConfigError, load_config
from sync_album.scheduler import ScheduleEntry, Scheduler
from sync_album.scraper import AlbumScraper, MediaResolver
from sync_album.sync_engine import SyncEngine

LOG_DIR = "logs"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Continuously mirror public shared Google Photos albums into Immich."
    )
    parser.add_argument(
        "--config", "-c",
        default=os.getenv("SYNC_CONFIG", DEFAULT_CONFIG_FILE),
        help=f"Path to the JSON config file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sync every configured album a single time and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging; overrides the config's debug flag",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-dir",
        default=os.getenv("LOG_DIR", LOG_DIR),
        help=f"Directory for plain-text log files (default: {LOG_DIR})",
    )
    return parser


def _setup_logging(verbose: bool, console: Console, log_filename: str) -> None:
    """Configure dual logging: rich console + plain-text log file."""
    log_level = logging.DEBUG if verbose else logging.INFO
    plain_format = "%(asctime)s  %(levelname)-8s  %(threadName)s  %(message)s"

    root = logging.getLogger()
    root.setLevel(log_level)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(log_level)
    root.addHandler(rich_handler)

    file_handler = logging.FileHandler(log_filename, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(plain_format, datefmt="%H:%M:%S"))
    root.addHandler(file_handler)

    # urllib3 logs every connection at DEBUG; keep it out of the way.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _make_console(is_tty: bool, no_color: bool) -> Console:
    """Colour follows the flags; terminal detection (used for progress output) does not."""
    return Console(force_terminal=is_tty, no_color=no_color or not is_tty)


def _print_summary(console: Console, entries: list[ScheduleEntry], log_filename: str) -> bool:
    """Print one panel per album after a single pass; True if every album synced cleanly."""
    all_ok = True
    console.print()
    for entry in entries:
        result = entry.last_result
        if result is None:
            all_ok = False
            console.print(
                Panel(Text("Sync failed, see log for details"), title=entry.album.url, border_style="red")
            )
            continue
        all_ok = all_ok and result.all_ok
        title = result.album_title or entry.album.url
        if not result.all_ok:
            title += " (with errors)"
        console.print(
            Panel(
                Text(result.summary()),
                title=title,
                border_style="green" if result.all_ok else "red",
                padding=(1, 2),
            )
        )
    console.print(f"\nFull log saved to: {log_filename}", style="dim")
    return all_ok


def main() -> int:
    load_dotenv()
    args = _build_parser().parse_args()

    console = _make_console(sys.stdout.isatty(), args.no_color or bool(os.getenv("NO_COLOR")))

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        console.print(f"Configuration error: {exc}", style="red bold", markup=False)
        return 1
    if args.verbose:
        config.debug = True

    os.makedirs(args.log_dir, exist_ok=True)
    log_filename = os.path.join(
        args.log_dir, f"sync_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    )
    _setup_logging(config.debug, console, log_filename)
    logging.info("Log file: %s", log_filename)

    console.print(Panel("Shared Album -> Immich Sync", style="bold blue", padding=(0, 2)))
    logging.info(
        "Albums: %d | workers/album: %d | concurrent albums: %d | strict metadata: %s | skip videos: %s",
        len(config.albums), config.workers, config.album_workers,
        config.strict_metadata, config.skip_videos,
    )

    with HttpTransport() as transport:
        immich = ImmichClient(config.api_url, config.api_key)
        engine = SyncEngine(
            immich=immich,
            scraper=AlbumScraper(transport),
            resolver=MediaResolver(transport),
            config=config,
            console=console,
        )
        scheduler = Scheduler(config, immich, engine)
        try:
            App(config, immich, scheduler).run(once=args.once)
        except KeyboardInterrupt:
            logging.info("Interrupted, exiting.")
            scheduler.stop()
            return 0

    if args.once and scheduler.entries:
        return 0 if _print_summary(console, scheduler.entries, log_filename) else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
