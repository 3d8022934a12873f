import json
from datetime import datetime, timedelta, timezone

import pytest

from sync_album.scraper.errors import PageParseError
from sync_album.scraper.parser import (
    DEFAULT_TITLE,
    TIMESTAMP_FLOOR_MS,
    classify_timestamp,
    extract_embedded_data,
    extract_timestamp,
    extract_title,
    find_json_array,
    item_list,
    normalize_timestamp,
    parse_album_page,
    parse_photo_item,
    parse_photo_items,
)
from tests.conftest import album_html, make_item

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


# ── bracket scan ─────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "value",
    [
        [],
        [1, [2, [3, [4]]]],
        ["]", "[", "[[", "]]"],
        ['say "hi" ]', "back\\slash", "both \\\" ]"],
        [None, {"k": "[v]"}, [True, False], 1.5],
        ["unicode ✓ · ]"],
    ],
)
def test_find_json_array_bounds_exact_slice(value):
    payload = json.dumps(value)
    text = f"AF_initDataCallback({{key: 'ds:1', data:{payload}, sideChannel: {{}}}});"
    begin, end = find_json_array(text, text.index("data:"))
    assert text[begin:end] == payload
    assert json.loads(text[begin:end]) == value


def test_find_json_array_unbalanced():
    with pytest.raises(PageParseError):
        find_json_array('data:[1, [2, "]"]')


def test_find_json_array_without_start():
    with pytest.raises(PageParseError):
        find_json_array("no arrays here")


def test_extract_embedded_data_skips_other_blocks():
    data = [None, [make_item("A")], "tok"]
    assert extract_embedded_data(album_html(data)) == data


def test_extract_embedded_data_missing_anchor():
    with pytest.raises(PageParseError):
        extract_embedded_data("<html><script>var x = [1, 2];</script></html>")


def test_item_list_fallback():
    assert item_list([None, ["a"]]) == ["a"]
    assert item_list([["b"]]) == ["b"]
    assert item_list([None, None]) == []
    assert item_list([]) == []


# ── title ────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Summer Trip · Jun 1–3", "Summer Trip"),
        ("Tom &amp; Jerry", "Tom & Jerry"),
        ("Beach day 🏖️", "Beach day"),
        ("Party 🎉🎉 · 2023", "Party"),
        ("  Plain  ", "Plain"),
    ],
)
def test_extract_title_cleans(raw, expected):
    html = f'<meta property="og:title" content="{raw}">'
    assert extract_title(html) == expected


@pytest.mark.parametrize("html", ["<html></html>", '<meta property="og:title" content="">', '<meta property="og:title" content="🎉">'])
def test_extract_title_default(html):
    assert extract_title(html) == DEFAULT_TITLE


# ── timestamps ───────────────────────────────────────────────────────


def test_normalize_timestamp_units():
    assert normalize_timestamp(1_500_000_000) == 1_500_000_000_000
    assert normalize_timestamp(1_500_000_000_000) == 1_500_000_000_000
    assert normalize_timestamp(1_500_000_000_000_000) == 1_500_000_000_000


def test_classify_timestamp_window():
    ceiling = _ms(NOW + timedelta(days=1))
    assert not classify_timestamp(TIMESTAMP_FLOOR_MS, NOW)
    assert classify_timestamp(TIMESTAMP_FLOOR_MS + 1, NOW)
    assert classify_timestamp(ceiling, NOW)
    assert not classify_timestamp(ceiling + 1, NOW)


def test_extract_timestamp_earliest_valid_wins():
    item = [
        "id",
        ["https://lh3.example/x", 1_600_000_000_000, 1],  # position 1 is never scanned
        [1_600_000_000_000, "meta"],
        1_500_000_000,  # seconds
        900_000_000_000,  # 1998, too old
        _ms(NOW + timedelta(days=2)),  # future
        True,
    ]
    assert extract_timestamp(item, NOW) == datetime.fromtimestamp(1_500_000_000, tz=timezone.utc)


def test_extract_timestamp_accepts_numeric_strings():
    item = ["id", ["u"], "1650000000000"]
    assert extract_timestamp(item, NOW) == datetime.fromtimestamp(1_650_000_000, tz=timezone.utc)


def test_extract_timestamp_none_when_no_candidate():
    assert extract_timestamp(["id", ["u"], 0, -5, [], "text", None], NOW) is None


# ── items ────────────────────────────────────────────────────────────


def test_parse_photo_item_full():
    item = make_item("AF1", "https://lh3.example/p", 800, 600, 1_650_000_000_000, None, "A caption")
    photo = parse_photo_item(item, NOW)
    assert photo.id == "AF1"
    assert photo.url == "https://lh3.example/p"
    assert (photo.width, photo.height) == (800, 600)
    assert photo.taken_at == datetime.fromtimestamp(1_650_000_000, tz=timezone.utc)
    assert photo.description == "A caption"
    assert photo.is_video is False


def test_parse_photo_item_tolerates_short_media_array():
    photo = parse_photo_item(["AF1", ["https://lh3.example/p"]], NOW)
    assert (photo.width, photo.height) == (0, 0)
    assert photo.taken_at is None


@pytest.mark.parametrize(
    "item",
    [
        None,
        "AF1",
        ["AF1"],
        ["", ["https://lh3.example/p"]],
        [None, ["https://lh3.example/p"]],
        ["AF1", []],
        ["AF1", [""]],
        ["AF1", "https://lh3.example/p"],
    ],
)
def test_parse_photo_item_rejects_incomplete(item):
    assert parse_photo_item(item, NOW) is None


def test_parse_photo_items_drops_bad_entries():
    items = [make_item("A"), ["B"], None, make_item("C")]
    assert [p.id for p in parse_photo_items(items, NOW)] == ["A", "C"]
    assert parse_photo_items("not a list") == []


def test_parse_album_page():
    data = [None, [make_item("A", "https://lh3.example/a"), make_item("B", "https://lh3.example/b")], "next"]
    page = parse_album_page(album_html(data))
    assert page.title == "Summer Trip"
    assert [p.id for p in page.photos] == ["A", "B"]
    assert page.data == data


def test_non_finite_numbers_are_ignored():
    items = [
        make_item("A"),
        ["B", ["https://lh3.example/b", 1, 1], float("inf")],
        ["C", ["https://lh3.example/c", float("inf"), float("nan")], float("nan"), 1_650_000_000_000],
    ]
    photos = parse_photo_items(items, NOW)

    assert [p.id for p in photos] == ["A", "B", "C"]
    assert photos[1].taken_at is None
    assert photos[2].taken_at == datetime.fromtimestamp(1_650_000_000, tz=timezone.utc)
    assert (photos[2].width, photos[2].height) == (0, 0)
