# src/shopify_admin/uploads.py
# Staged uploads: stage -> transfer -> commit -> poll.
#
#   1. stagedUploadsCreate hands out a single-use target (url + form params)
#   2. the bytes go straight to that storage endpoint as multipart/form-data
#   3. fileCreate registers the blob as a store file; Shopify then processes
#      it out-of-band, so we poll fileStatus until READY/FAILED or we give up
#
# Theme archives take a different road: themeCreate only accepts a public
# URL, so the zip is parked in a temporary blob store for the duration of
# the install.

from __future__ import annotations

import logging
import mimetypes
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel, Field

from settings import UploadSettings

from . import queries
from .blob_store import BlobStore, temporary_blob
from .client import ShopifyClient
from .errors import (
    BlobCleanupError,
    BlobStoreError,
    BusinessError,
    ProcessingFailed,
    ProcessingTimeout,
    StagingError,
    StorefrontError,
    TransferError,
)
from .reconciler import RemoteEntity, ResourceReconciler

logger = logging.getLogger(__name__)

TRANSFER_OK = (200, 201)


class ResourceStatus(str, Enum):
    CREATING = "CREATING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


_FILE_STATUS = {
    "UPLOADED": ResourceStatus.PROCESSING,
    "PROCESSING": ResourceStatus.PROCESSING,
    "READY": ResourceStatus.READY,
    "FAILED": ResourceStatus.FAILED,
}


class PollResult(BaseModel):
    status: ResourceStatus
    attempts: int = 0
    detail: Dict[str, Any] = Field(default_factory=dict)


class LocalFile(BaseModel):
    path: Path
    key: str
    mime_type: str = ""

    @classmethod
    def from_path(cls, path: Path | str, key: str) -> "LocalFile":
        p = Path(path)
        mime = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(path=p, key=key, mime_type=mime)

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return self.path.stat().st_size


class UploadTarget(BaseModel):
    url: str
    resource_url: str
    parameters: List[Tuple[str, str]] = Field(default_factory=list)


class RemoteReference(BaseModel):
    key: str
    url: str
    id: str = ""
    filename: str = ""
    status: ResourceStatus = ResourceStatus.READY


class StagedUploadManager:
    def __init__(
        self,
        client: ShopifyClient,
        *,
        http: Optional[httpx.Client] = None,
        poll_interval: float = 3.0,
        max_polls: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self._http = http or client.http
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._sleep = sleep

    @classmethod
    def from_settings(cls, client: ShopifyClient, cfg: UploadSettings, **kwargs: Any) -> "StagedUploadManager":
        return cls(client, poll_interval=cfg.poll_interval, max_polls=cfg.max_polls, **kwargs)

    # ---------- phase 1: stage ----------
    def stage(self, files: Sequence[LocalFile], resource: str = "IMAGE") -> List[UploadTarget]:
        inputs = [
            {
                "filename": f.filename,
                "mimeType": f.mime_type,
                "httpMethod": "POST",
                "resource": resource,
                "fileSize": str(f.size),
            }
            for f in files
        ]
        try:
            data = self.client.execute_with_retry(queries.STAGED_UPLOADS_CREATE, {"input": inputs})
        except BusinessError as exc:
            raise StagingError(f"stagedUploadsCreate rejected: {exc}") from exc

        raw = (data.get("stagedUploadsCreate") or {}).get("stagedTargets") or []
        if len(raw) < len(files):
            raise StagingError(f"expected {len(files)} staged targets, got {len(raw)}")
        targets = []
        for t in raw:
            if not t.get("url") or not t.get("resourceUrl"):
                raise StagingError("staged target is missing url/resourceUrl")
            params = [(p["name"], p["value"]) for p in t.get("parameters") or []]
            targets.append(UploadTarget(url=t["url"], resource_url=t["resourceUrl"], parameters=params))
        return targets

    # ---------- phase 2: transfer ----------
    def transfer(self, target: UploadTarget, local: LocalFile) -> None:
        # storage endpoints want every policy field, in issue order and
        # repeats included, before the file part; filename-less parts
        # render as plain form fields
        fields = [(name, (None, value.encode())) for name, value in target.parameters]
        try:
            with open(local.path, "rb") as fh:
                r = self._http.post(
                    target.url,
                    files=fields + [("file", (local.filename, fh, local.mime_type))],
                )
        except httpx.HTTPError as exc:
            raise TransferError(f"upload of {local.key} failed: {exc}") from exc

        if r.status_code not in TRANSFER_OK:
            raise TransferError(
                f"upload of {local.key} rejected with status {r.status_code}",
                status_code=r.status_code,
                body=r.text,
            )

    # ---------- phase 3: commit + poll ----------
    def commit(self, target: UploadTarget, local: LocalFile) -> str:
        data = self.client.execute_with_retry(
            queries.FILE_CREATE,
            {"files": [{"originalSource": target.resource_url, "contentType": "IMAGE", "alt": local.key}]},
        )
        files = (data.get("fileCreate") or {}).get("files") or []
        if not files or not files[0].get("id"):
            raise StagingError(f"fileCreate returned no file for {local.key}")
        return files[0]["id"]

    def poll(self, resource_id: str, probe: Callable[[str], PollResult]) -> PollResult:
        """Fixed interval, fixed budget. TIMEOUT is an outcome, not an exception."""
        for attempt in range(1, self.max_polls + 1):
            self._sleep(self.poll_interval)
            try:
                result = probe(resource_id)
            except StorefrontError as exc:
                logger.warning("poll %d for %s failed: %s", attempt, resource_id, exc)
                continue
            if result.status in (ResourceStatus.READY, ResourceStatus.FAILED):
                result.attempts = attempt
                return result
        return PollResult(status=ResourceStatus.TIMEOUT, attempts=self.max_polls)

    def file_status(self, file_id: str) -> PollResult:
        data = self.client.execute(queries.FILE_STATUS, {"id": file_id})
        node = data.get("node") or {}
        status = _FILE_STATUS.get(node.get("fileStatus") or "", ResourceStatus.CREATING)
        url = (node.get("image") or {}).get("url") or node.get("url") or ""
        return PollResult(status=status, detail={"url": url})

    def theme_status(self, theme_id: str) -> PollResult:
        data = self.client.execute(queries.THEME_STATUS, {"id": theme_id})
        theme = data.get("theme")
        if not theme:
            return PollResult(status=ResourceStatus.CREATING)
        if theme.get("processingFailed"):
            return PollResult(status=ResourceStatus.FAILED)
        if theme.get("processing"):
            return PollResult(status=ResourceStatus.PROCESSING)
        return PollResult(status=ResourceStatus.READY)

    def upload(self, local: LocalFile) -> RemoteReference:
        target = self.stage([local])[0]
        self.transfer(target, local)
        file_id = self.commit(target, local)

        result = self.poll(file_id, self.file_status)
        if result.status is ResourceStatus.FAILED:
            raise ProcessingFailed(f"Shopify failed to process {local.key}", resource_id=file_id)
        if result.status is ResourceStatus.TIMEOUT:
            pending = RemoteReference(
                key=local.key,
                url=target.resource_url,
                id=file_id,
                filename=local.filename,
                status=ResourceStatus.TIMEOUT,
            )
            raise ProcessingTimeout(f"{local.key} still processing after {result.attempts} polls", pending)

        return RemoteReference(
            key=local.key,
            url=result.detail.get("url") or target.resource_url,
            id=file_id,
            filename=local.filename,
        )

    def install_theme(
        self,
        archive: LocalFile,
        name: str,
        reconciler: ResourceReconciler,
        blob_store: BlobStore,
    ) -> RemoteEntity:
        blob_name = f"themes/{self.client.store_name}-{int(time.time())}.zip"
        theme: Optional[RemoteEntity] = None
        cleanup: Optional[BlobStoreError] = None
        try:
            with temporary_blob(blob_store, blob_name, archive.path) as source:
                theme = reconciler.find_or_create("theme", name, {"source": source, "role": "UNPUBLISHED"})
                result = self.poll(theme.id, self.theme_status)
        except BlobStoreError as exc:
            if theme is None:
                raise
            logger.warning("theme %s created but blob %s was left behind: %s", theme.id, blob_name, exc)
            cleanup = exc

        if result.status is ResourceStatus.FAILED:
            raise ProcessingFailed(f"theme '{name}' failed to process", resource_id=theme.id)
        if result.status is ResourceStatus.TIMEOUT:
            raise ProcessingTimeout(f"theme '{name}' still processing after {result.attempts} polls", theme)
        if cleanup is not None:
            raise BlobCleanupError(f"theme '{name}' is ready but {cleanup}", theme) from cleanup
        return theme
