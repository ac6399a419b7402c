"""Turn a generated model URL into something the viewer can load."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..errors import DownloadError, InvalidAssetError

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"
MIN_ASSET_BYTES = 100


@dataclass(slots=True)
class MaterializedAsset:
    """A model ready to be handed to the viewer, either on disk or by URL."""

    source_url: str
    local_path: Optional[Path] = None
    byte_length: int = 0
    verified: bool = False

    @property
    def viewer_source(self) -> str:
        return str(self.local_path) if self.local_path is not None else self.source_url


def verify_glb(data: bytes) -> None:
    """Raise :class:`InvalidAssetError` unless ``data`` looks like a binary glTF file."""

    if len(data) < MIN_ASSET_BYTES:
        raise InvalidAssetError(
            f"Downloaded file is too small to be a valid GLB ({len(data)} bytes)"
        )
    header = data[:4]
    if header != GLB_MAGIC:
        logger.info("Invalid GLB header: %s", header.hex())
        raise InvalidAssetError("Downloaded file is not a valid GLB model")


class DirectReferenceMaterializer:
    """Pass the remote URL straight through; the viewer fetches it itself."""

    requires_download = False

    async def materialize(self, url: str) -> MaterializedAsset:
        logger.info("Using remote model URL directly: %s", url)
        return MaterializedAsset(source_url=url)


class DownloadingMaterializer:
    """Fetch the model, check its signature and keep a local copy."""

    requires_download = True

    def __init__(
        self,
        output_dir: Path,
        *,
        http_client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._output_dir = Path(output_dir)
        self._client = http_client
        self._clock = clock

    async def materialize(self, url: str) -> MaterializedAsset:
        logger.info("Starting model download from: %s", url)
        try:
            response = await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download model: {exc}") from exc
        if response.status_code != 200:
            raise DownloadError(f"Failed to download model: {response.status_code}")

        data = response.content
        verify_glb(data)
        logger.info("File appears to be a valid GLB model")

        path = self._write(data)
        logger.info("Model saved to %s (%d bytes)", path, len(data))
        return MaterializedAsset(
            source_url=url,
            local_path=path,
            byte_length=len(data),
            verified=True,
        )

    def _target_path(self) -> Path:
        millis = int(self._clock() * 1000)
        path = self._output_dir / f"model_{millis}.glb"
        while path.exists():
            millis += 1
            path = self._output_dir / f"model_{millis}.glb"
        return path

    def _write(self, data: bytes) -> Path:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DownloadError(f"Cannot create model directory {self._output_dir}: {exc}") from exc
        path = self._target_path()
        partial = path.with_name(path.name + ".part")
        try:
            partial.write_bytes(data)
            os.replace(partial, path)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Failed to save model to {path}: {exc}") from exc
        return path


__all__ = [
    "DirectReferenceMaterializer",
    "DownloadingMaterializer",
    "GLB_MAGIC",
    "MIN_ASSET_BYTES",
    "MaterializedAsset",
    "verify_glb",
]
