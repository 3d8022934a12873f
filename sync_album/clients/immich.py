"""Immich client – thin REST wrapper for albums, asset search and uploads."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import PurePosixPath

import requests

logger = logging.getLogger(__name__)

# Stamped on every upload so later runs can find what this tool already sent.
DEVICE_ID = "gphotos-album-sync"

DEFAULT_TIMEOUT = 300  # seconds; uploads of large videos take a while
ALBUM_ADD_CHUNK = 500
SEARCH_PAGE_SIZE = 1000


class ImmichError(RuntimeError):
    """An Immich API call failed (transport error or HTTP status >= 400)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ImmichClient:
    """Wraps the subset of the Immich REST API the sync needs.

    One shared instance serves all workers; every call is an independent
    request so no locking is needed.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._base = api_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"x-api-key": api_key, "Accept": "application/json"})
        self._timeout = timeout

    # ── plumbing ─────────────────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self._base}/{path.lstrip('/')}"
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise ImmichError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ImmichError(
                f"API error {resp.status_code} on {method} {path}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ImmichError(f"{method} {path} returned invalid JSON") from exc

    # ── users / albums ───────────────────────────────────────────────

    def get_user(self) -> tuple[str, str]:
        """Return ``(id, name)`` of the API key's owner; doubles as a connectivity check."""
        body = self._request("GET", "users/me") or {}
        return body.get("id", ""), body.get("name", "")

    def get_albums(self) -> list[dict]:
        return self._request("GET", "albums") or []

    def get_album(self, album_id: str) -> dict:
        """Return the album including its ``assets`` list."""
        return self._request("GET", f"albums/{album_id}") or {}

    def create_album(self, name: str) -> dict:
        album = self._request("POST", "albums", json={"albumName": name}) or {}
        if not album.get("id"):
            raise ImmichError(f"album creation for {name!r} returned no id")
        logger.info("Created Immich album: %s", name)
        return album

    def add_assets_to_album(self, album_id: str, asset_ids: Iterable[str]) -> None:
        """Add assets to an album, in chunks the server accepts."""
        ids = list(asset_ids)
        for start in range(0, len(ids), ALBUM_ADD_CHUNK):
            chunk = ids[start : start + ALBUM_ADD_CHUNK]
            results = self._request("PUT", f"albums/{album_id}/assets", json={"ids": chunk}) or []
            # Assets already in the album come back as "duplicate" errors; that is expected.
            errors = [
                r for r in results
                if isinstance(r, dict) and not r.get("success") and r.get("error") != "duplicate"
            ]
            if errors:
                logger.warning("%d asset(s) could not be added to album %s", len(errors), album_id)

    # ── assets ───────────────────────────────────────────────────────

    def search_assets_by_device(self, device_id: str = DEVICE_ID) -> list[dict]:
        """Return every asset uploaded with *device_id*, following server pagination."""
        assets: list[dict] = []
        page: int | None = 1
        while page:
            body = self._request(
                "POST",
                "search/metadata",
                json={"deviceId": device_id, "page": page, "size": SEARCH_PAGE_SIZE},
            ) or {}
            block = body.get("assets") or {}
            assets.extend(block.get("items") or [])
            next_page = block.get("nextPage")
            page = int(next_page) if next_page else None
        return assets

    def upload_asset(
        self,
        data: bytes,
        filename: str,
        size: int,
        taken_at: datetime | None,
        description: str = "",
    ) -> tuple[str, bool]:
        """Upload one asset; return ``(asset_id, is_duplicate)``.

        *taken_at* falls back to the current time when unknown. The file stem
        doubles as ``deviceAssetId`` so later runs can recognise the upload.
        """
        created = _iso(taken_at or datetime.now(timezone.utc))
        fields = {
            "deviceAssetId": PurePosixPath(filename).stem,
            "deviceId": DEVICE_ID,
            "fileCreatedAt": created,
            "fileModifiedAt": created,
            "isFavorite": "false",
        }
        body = self._request(
            "POST",
            "assets",
            data=fields,
            files={"assetData": (filename, data, "application/octet-stream")},
        ) or {}

        asset_id = body.get("id", "")
        if not asset_id:
            raise ImmichError(f"upload returned no id for {filename}")
        duplicate = body.get("status") == "duplicate" or body.get("duplicate") is True

        if description and not duplicate:
            try:
                self.update_asset(asset_id, description=description)
            except ImmichError as exc:
                logger.warning("Uploaded %s but could not set its description: %s", filename, exc)
        logger.debug("Uploaded %s (%d bytes) as %s", filename, size, asset_id)
        return asset_id, duplicate

    def update_asset(self, asset_id: str, **changes) -> dict:
        return self._request("PUT", f"assets/{asset_id}", json=changes) or {}
