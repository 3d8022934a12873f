"""Shared fakes: requests-like responses/sessions and a scripted source transport."""

from __future__ import annotations

import json
from collections import deque

import pytest
from requests.structures import CaseInsensitiveDict


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, url=""):
        self.status_code = status_code
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.headers = CaseInsensitiveDict(headers or {})
        self.url = url
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def json(self):
        return json.loads(self.text)

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; replies from a queue and records calls."""

    def __init__(self, responses=()):
        self.responses = deque(responses)
        self.calls = []
        self.headers = {}
        self.closed = False

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected request {method} {url}")
        return self.responses.popleft()

    def close(self):
        self.closed = True


class FakeTransport:
    """Scripted HttpTransport: GET/HEAD by URL, POST responses in order."""

    def __init__(self, pages=None, heads=None, posts=()):
        self.pages = dict(pages or {})
        self.heads = dict(heads or {})
        self.posts = deque(posts)
        self.calls = []

    def get(self, url):
        self.calls.append(("GET", url))
        return self.pages[url]

    def head(self, url):
        self.calls.append(("HEAD", url))
        return self.heads[url]

    def post(self, url, content_type, body):
        self.calls.append(("POST", url, content_type, body))
        if not self.posts:
            raise AssertionError("unexpected POST")
        return self.posts.popleft()


def make_item(photo_id, url="https://lh3.example/base", width=4032, height=3024, *extra):
    """Raw item array as found in the album data block."""
    return [photo_id, [url, width, height], *extra]


def album_html(data, title="Summer Trip · Jun 1–3", extra=""):
    """Minimal shared-album page carrying *data* the way the real page does."""
    return (
        "<html><head>"
        f'<meta property="og:title" content="{title}">'
        "</head><body>"
        f"<script>window.WIZ_global_data = {{{extra}}};</script>"
        "<script>AF_initDataCallback({key: 'ds:0', hash: '1', data:[null]});</script>"
        "<script>AF_initDataCallback({key: 'ds:1', hash: '2', data:"
        f"{json.dumps(data)}, sideChannel: {{}}}});</script>"
        "</body></html>"
    )


def batch_body(items, next_token="", rpc_id="snAcKc"):
    """A batchexecute response body with one envelope line."""
    payload = json.dumps([None, items, next_token])
    envelope = json.dumps([["wrb.fr", rpc_id, payload, None, None, None, "generic"]])
    return f")]}}'\n\n{len(envelope)}\n{envelope}\n25\n[[\"di\",120],[\"af.httprm\",119]]\n"


@pytest.fixture
def fake_session():
    return FakeSession()
