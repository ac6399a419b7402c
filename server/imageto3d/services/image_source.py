"""Prepare picked photos for upload."""
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import UploadError

logger = logging.getLogger(__name__)

MAX_DIMENSION = 2048
JPEG_QUALITY = 85


def prepare_image(
    source: Path,
    *,
    output_dir: Optional[Path] = None,
    max_dimension: int = MAX_DIMENSION,
    quality: int = JPEG_QUALITY,
) -> Path:
    """Downscale ``source`` to fit ``max_dimension`` and recompress it as JPEG.

    Returns the path of a new temporary file; the caller owns its cleanup.
    """

    source = Path(source)
    if not source.is_file():
        raise UploadError(f"Image file not found: {source}")

    target: Optional[Path] = None
    saved = False
    try:
        with Image.open(source) as opened:
            # Camera photos carry their rotation in EXIF
            image = ImageOps.exif_transpose(opened)
            original_size = image.size
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            if image.mode != "RGB":
                image = image.convert("RGB")

            handle = tempfile.NamedTemporaryFile(
                prefix="upload_", suffix=".jpg", dir=output_dir, delete=False
            )
            target = Path(handle.name)
            with handle:
                image.save(handle, format="JPEG", quality=quality)
            saved = True
    except UnidentifiedImageError as exc:
        raise UploadError(f"Unsupported image file: {source}") from exc
    except OSError as exc:
        raise UploadError(f"Cannot prepare image file {source}: {exc}") from exc
    finally:
        if not saved and target is not None:
            target.unlink(missing_ok=True)

    logger.info(
        "Prepared %s for upload: %sx%s -> %sx%s",
        source.name,
        original_size[0],
        original_size[1],
        image.size[0],
        image.size[1],
    )
    return target


__all__ = ["JPEG_QUALITY", "MAX_DIMENSION", "prepare_image"]
