import io
import sys
from datetime import datetime, timedelta, timezone

from rich.console import Console

from sync_album import cli
from sync_album.config import AlbumConfig
from sync_album.progress import ProgressTracker
from sync_album.scheduler import ScheduleEntry
from sync_album.sync_engine import SyncResult


def test_parser_defaults(monkeypatch):
    monkeypatch.delenv("SYNC_CONFIG", raising=False)
    monkeypatch.delenv("LOG_DIR", raising=False)
    args = cli._build_parser().parse_args([])
    assert args.config == "config.json"
    assert args.log_dir == "logs"
    assert not args.once and not args.verbose and not args.no_color


def test_parser_flags():
    args = cli._build_parser().parse_args(["-c", "albums.json", "--once", "-v", "--no-color"])
    assert args.config == "albums.json"
    assert args.once and args.verbose and args.no_color


def test_main_reports_config_error(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    for name in ("IMMICH_API_KEY", "IMMICH_API_URL", "SYNC_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(sys, "argv", ["sync-album", "--config", str(tmp_path / "missing.json"), "--no-color"])

    assert cli.main() == 1
    assert "Configuration error" in capsys.readouterr().out
    assert not (tmp_path / "logs").exists()


def test_no_color_keeps_terminal_detection():
    console = cli._make_console(is_tty=True, no_color=True)
    assert console.is_terminal
    assert console.no_color
    assert ProgressTracker("Trip", 10, console=console).is_tty


def test_piped_output_is_not_a_terminal():
    console = cli._make_console(is_tty=False, no_color=False)
    assert not console.is_terminal
    assert console.no_color


def _entry(url, result):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return ScheduleEntry(album=AlbumConfig(url=url), interval=timedelta(hours=1), next_due=now, last_result=result)


def _summary_console():
    out = io.StringIO()
    return Console(file=out, force_terminal=False, width=120), out


def test_summary_after_clean_pass():
    console, out = _summary_console()
    result = SyncResult(album_title="Trip", processed=3, added=1, skipped=2)

    assert cli._print_summary(console, [_entry("https://a", result)], "logs/sync.log")

    text = out.getvalue()
    assert "Trip" in text
    assert "Added       : 1" in text
    assert "logs/sync.log" in text


def test_summary_reports_failures():
    console, out = _summary_console()
    entries = [
        _entry("https://a", SyncResult(album_title="Trip", processed=2, added=1, failed=1)),
        _entry("https://b", None),
    ]

    assert not cli._print_summary(console, entries, "logs/sync.log")

    text = out.getvalue()
    assert "Trip (with errors)" in text
    assert "Sync failed" in text
