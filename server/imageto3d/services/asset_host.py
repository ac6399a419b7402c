"""Uploadcare client used to publish the source image."""
from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional

import httpx

from ..errors import UploadError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(slots=True)
class UploadSession:
    local_file_path: Path
    total_bytes: int
    sent_bytes: int = 0

    @property
    def progress_fraction(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(self.sent_bytes / self.total_bytes, 1.0)


class _ProgressReader:
    """File wrapper that reports how much of the body httpx has pulled so far."""

    def __init__(
        self,
        raw: BinaryIO,
        session: UploadSession,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        self._raw = raw
        self._session = session
        self._on_progress = on_progress

    def read(self, size: int = -1) -> bytes:
        chunk = self._raw.read(size)
        if chunk:
            self._session.sent_bytes += len(chunk)
            if self._on_progress is not None:
                self._on_progress(self._session.progress_fraction)
        return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        position = self._raw.seek(offset, whence)
        self._session.sent_bytes = position
        return position

    def tell(self) -> int:
        return self._raw.tell()

    def fileno(self) -> int:
        return self._raw.fileno()


class UploadcareClient:
    """Uploads a local file through Uploadcare's direct upload API."""

    def __init__(
        self,
        public_key: str,
        *,
        http_client: httpx.AsyncClient,
        upload_url: str = "https://upload.uploadcare.com/base/",
        cdn_base: str = "https://ucarecdn.com",
    ) -> None:
        if not public_key:
            raise ValueError("public_key is required")
        self._public_key = public_key
        self._client = http_client
        self._upload_url = upload_url
        self._cdn_base = cdn_base.rstrip("/")

    def cdn_url(self, file_id: str) -> str:
        return f"{self._cdn_base}/{file_id}/"

    async def upload(self, path: Path, on_progress: Optional[ProgressCallback] = None) -> str:
        """Upload ``path`` and return its public CDN URL."""

        path = Path(path)
        if not path.is_file():
            raise UploadError(f"Image file not found: {path}")

        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        logger.info("Starting image upload to Uploadcare: %s", path)
        try:
            with path.open("rb") as raw:
                session = UploadSession(local_file_path=path, total_bytes=os.fstat(raw.fileno()).st_size)
                reader = _ProgressReader(raw, session, on_progress)
                response = await self._client.post(
                    self._upload_url,
                    data={"UPLOADCARE_PUB_KEY": self._public_key, "UPLOADCARE_STORE": "auto"},
                    files={"file": (path.name, reader, content_type)},
                )
        except OSError as exc:
            raise UploadError(f"Cannot read image file {path}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Failed to upload image: {exc}") from exc

        if not response.is_success:
            logger.error("Uploadcare rejected the upload (%s): %s", response.status_code, response.text)
            raise UploadError(
                f"Failed to upload image: HTTP {response.status_code}",
                response_body=response.text,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        file_id = payload.get("file") if isinstance(payload, dict) else None
        if not isinstance(file_id, str) or not file_id:
            raise UploadError("Upload response did not include a file id", response_body=response.text)

        if on_progress is not None:
            on_progress(1.0)
        logger.info("Image uploaded successfully. File ID: %s", file_id)
        return self.cdn_url(file_id)


__all__ = ["ProgressCallback", "UploadSession", "UploadcareClient"]
