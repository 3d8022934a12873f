import pytest

from sync_album.scraper import MediaDownloadError, MediaResolver
from sync_album.scraper.media import extension_from_content_type, is_video_type, still_suffix
from tests.conftest import FakeResponse, FakeTransport

BASE = "https://lh3.example/item"


@pytest.mark.parametrize(
    "content_type, ext",
    [
        ("image/jpeg", ".jpg"),
        ("image/png", ".png"),
        ("image/webp", ".webp"),
        ("image/heic", ".heic"),
        ("image/heif", ".heic"),
        ("video/mp4", ".mp4"),
        ("video/quicktime", ".mov"),
        ("video/webm; codecs=vp9", ".webm"),
        ("VIDEO/X-Matroska", ".mkv"),
        ("video/x-unknown", ".mp4"),
        ("application/octet-stream", ".jpg"),
        ("", ".jpg"),
        (None, ".jpg"),
    ],
)
def test_extension_from_content_type(content_type, ext):
    assert extension_from_content_type(content_type) == ext


def test_is_video_type():
    assert is_video_type("video/mp4")
    assert not is_video_type("image/jpeg")
    assert not is_video_type(None)


def test_still_suffix():
    assert still_suffix(4032, 3024) == "=w4032-h3024"
    assert still_suffix() == "=w16383-h16383"


def _resolver(probe_type, body=b"bytes", status=200, suffix="=d", content_type=None):
    transport = FakeTransport(
        pages={BASE + suffix: FakeResponse(status, body, {"Content-Type": content_type or probe_type})},
        heads={BASE + "=d": FakeResponse(200, b"", {"Content-Type": probe_type})},
    )
    return MediaResolver(transport), transport


def test_download_image_original():
    resolver, transport = _resolver("image/jpeg", b"\xff\xd8jpeg")
    media = resolver.download(BASE)

    assert media.data == b"\xff\xd8jpeg"
    assert media.size == 6
    assert media.extension == ".jpg"
    assert media.is_video is False
    assert transport.calls == [("HEAD", BASE + "=d"), ("GET", BASE + "=d")]


def test_download_video_uses_video_suffix():
    resolver, transport = _resolver("video/mp4", b"mp4", suffix="=dv")
    media = resolver.download(BASE)

    assert media.is_video is True
    assert media.extension == ".mp4"
    assert transport.calls[-1] == ("GET", BASE + "=dv")


def test_video_ignores_still_size():
    resolver, transport = _resolver("video/mp4", suffix="=dv")
    resolver.download(BASE, still_size=(100, 100))
    assert transport.calls[-1] == ("GET", BASE + "=dv")


def test_download_still_with_size():
    resolver, transport = _resolver("image/jpeg", suffix="=w4032-h3024")
    resolver.download(BASE, still_size=(4032, 3024))
    assert transport.calls[-1] == ("GET", BASE + "=w4032-h3024")


def test_download_still_unknown_size():
    resolver, transport = _resolver("image/jpeg", suffix="=w16383-h16383")
    resolver.download(BASE, still_size=(0, 0))
    assert transport.calls[-1] == ("GET", BASE + "=w16383-h16383")


def test_extension_follows_delivered_type():
    resolver, _ = _resolver("image/heic", content_type="image/jpeg")
    assert resolver.download(BASE).extension == ".jpg"


@pytest.mark.parametrize("status", [403, 404, 500])
def test_download_non_200_raises(status):
    resolver, _ = _resolver("image/jpeg", status=status)
    with pytest.raises(MediaDownloadError, match=str(status)):
        resolver.download(BASE)
