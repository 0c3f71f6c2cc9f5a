# src/shopify_admin/blob_store.py
# Temporary public storage used to hand a theme archive to Shopify, which
# only accepts a URL for themeCreate. Blobs live for the duration of one
# install and are deleted afterwards.

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

import httpx

from .errors import BlobStoreError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def put(self, name: str, path: Path) -> str: ...

    def delete(self, url: str) -> None: ...


class HttpBlobStore:
    """PUT {base_url}/{name} to store, DELETE the returned URL to remove."""

    def __init__(self, base_url: str, token: str = "", http: Optional[httpx.Client] = None):
        self.base = base_url.rstrip("/")
        self.token = token
        self._http = http or httpx.Client(timeout=120)

    def _headers(self) -> dict:
        h = {}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def put(self, name: str, path: Path) -> str:
        url = f"{self.base}/{name.lstrip('/')}"
        with open(path, "rb") as fh:
            r = self._http.put(url, content=fh.read(), headers=self._headers())
        if not (200 <= r.status_code < 300):
            raise BlobStoreError(f"blob upload failed ({r.status_code}): {r.text}")
        try:
            body = r.json()
        except ValueError:
            body = {}
        return (body or {}).get("url") or url

    def delete(self, url: str) -> None:
        try:
            r = self._http.delete(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"blob delete failed: {exc}") from exc
        if r.status_code not in (200, 202, 204, 404):
            raise BlobStoreError(f"blob delete failed ({r.status_code}): {r.text}")


@contextmanager
def temporary_blob(store: BlobStore, name: str, path: Path) -> Iterator[str]:
    """Yields the public URL; the blob is gone once the block exits, however it exits.

    A failed delete is logged and swallowed while another exception is on its
    way out, and raised as BlobStoreError after a clean exit.
    """
    url = store.put(name, path)
    try:
        yield url
    except BaseException:
        try:
            store.delete(url)
        except BlobStoreError as exc:
            logger.warning("could not remove temporary blob %s: %s", url, exc)
        raise
    store.delete(url)
