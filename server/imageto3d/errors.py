"""Error taxonomy for the generation workflow.

Every error is terminal for the current run: the coordinator turns it into a
single ``Failed`` state and nothing is retried automatically.
"""
from __future__ import annotations

from typing import Optional


class GenerationError(RuntimeError):
    """Base class for failures surfaced to the user as a ``Failed`` state."""


class ConfigError(GenerationError):
    """Raised when a required secret or setting is missing."""


class _ResponseBodyError(GenerationError):
    def __init__(self, message: str, *, response_body: Optional[str] = None) -> None:
        super().__init__(message)
        self.response_body = response_body


class UploadError(_ResponseBodyError):
    """Raised when the asset host cannot store the image."""


class SubmissionError(_ResponseBodyError):
    """Raised when the prediction service refuses a new job."""


class ProtocolError(GenerationError):
    """Raised for malformed or unexpected prediction service responses."""


class PredictionFailedError(GenerationError):
    """Raised when the prediction reaches the ``failed`` status."""


class PredictionCanceledError(GenerationError):
    """Raised when the prediction reaches the ``canceled`` status."""


class GenerationTimeoutError(GenerationError, TimeoutError):
    """Raised when polling exhausts its attempt ceiling."""


class InvalidAssetError(GenerationError):
    """Raised when downloaded bytes are not a binary glTF model."""


class DownloadError(GenerationError):
    """Raised when the output asset cannot be fetched."""


__all__ = [
    "ConfigError",
    "DownloadError",
    "GenerationError",
    "GenerationTimeoutError",
    "InvalidAssetError",
    "PredictionCanceledError",
    "PredictionFailedError",
    "ProtocolError",
    "SubmissionError",
    "UploadError",
]
