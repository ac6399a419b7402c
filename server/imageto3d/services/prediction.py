"""Replicate predictions client for the TRELLIS image-to-3D model."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import (
    PredictionCanceledError,
    PredictionFailedError,
    ProtocolError,
    SubmissionError,
)

logger = logging.getLogger(__name__)

MODEL_VERSION = "4581bc11c4a0700fd7ec31e16040aa10f1a540b682d7b7b3d51ac2d6bd4ecd3a"

# Fixed generation parameters; the image URL is added per request.
GENERATION_INPUT: Dict[str, Any] = {
    "seed": 0,
    "texture_size": 1024,
    "mesh_simplify": 0.95,
    "generate_color": True,
    "generate_model": True,
    "randomize_seed": True,
    "generate_normal": False,
    "ss_sampling_steps": 12,
    "slat_sampling_steps": 12,
    "ss_guidance_strength": 7.5,
    "slat_guidance_strength": 3,
}


class PredictionStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset(
    {PredictionStatus.SUCCEEDED, PredictionStatus.FAILED, PredictionStatus.CANCELED}
)


@dataclass(slots=True)
class PredictionJob:
    id: str
    status: str
    output_asset_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def known_status(self) -> Optional[PredictionStatus]:
        try:
            return PredictionStatus(self.status)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self.known_status in TERMINAL_STATUSES

    def raise_for_terminal(self) -> Optional[str]:
        """Return the output URL for a succeeded job or raise for failed/canceled ones.

        Non-terminal jobs, including unrecognized statuses, return ``None`` so the
        caller keeps polling.
        """

        status = self.known_status
        if status is PredictionStatus.SUCCEEDED:
            if not self.output_asset_url:
                raise ProtocolError("No model file in response")
            return self.output_asset_url
        if status is PredictionStatus.FAILED:
            raise PredictionFailedError(
                f"Model generation failed: {self.error_message or 'Unknown error'}"
            )
        if status is PredictionStatus.CANCELED:
            raise PredictionCanceledError("Model generation was canceled")
        return None


class _CreatedPayload(BaseModel):
    id: str


class _OutputPayload(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_file: Optional[str] = None


class _StatusPayload(BaseModel):
    status: str
    output: Optional[_OutputPayload] = None
    error: Optional[str] = None


class ReplicatePredictionClient:
    """Submits generation jobs and checks their status, one request per call."""

    def __init__(
        self,
        api_token: str,
        *,
        http_client: httpx.AsyncClient,
        base_url: str = "https://api.replicate.com",
        version: str = MODEL_VERSION,
    ) -> None:
        if not api_token:
            raise ValueError("api_token is required")
        raw_base = base_url.strip()
        if not raw_base.startswith(("http://", "https://")):
            raise ValueError("base_url must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._token = api_token
        self._client = http_client
        self._version = version

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def build_request_body(self, image_url: str) -> Dict[str, Any]:
        return {
            "version": self._version,
            "input": {"image": image_url, **GENERATION_INPUT},
        }

    async def submit(self, image_url: str) -> str:
        """Create a prediction for ``image_url`` and return its id."""

        logger.info("Starting model generation with image URL: %s", image_url)
        try:
            response = await self._client.post(
                f"{self._base_url}/v1/predictions",
                headers={**self._auth_headers, "Content-Type": "application/json"},
                json=self.build_request_body(image_url),
            )
        except httpx.HTTPError as exc:
            raise SubmissionError(f"Failed to create prediction: {exc}") from exc

        if response.status_code != 201:
            logger.error("Error response from Replicate: %s", response.text)
            raise SubmissionError(
                f"Failed to create prediction: {response.text}",
                response_body=response.text,
            )

        try:
            created = _CreatedPayload.model_validate_json(response.content)
        except ValidationError as exc:
            raise ProtocolError(f"Unexpected prediction response: {response.text}") from exc
        logger.info("Prediction created. ID: %s", created.id)
        return created.id

    async def poll_status(self, job_id: str) -> PredictionJob:
        """Perform a single status check for ``job_id``."""

        try:
            response = await self._client.get(
                f"{self._base_url}/v1/predictions/{job_id}",
                headers=self._auth_headers,
            )
        except httpx.HTTPError as exc:
            raise ProtocolError(f"Failed to check prediction status: {exc}") from exc

        if response.status_code != 200:
            logger.error("Error checking status: %s", response.text)
            raise ProtocolError(f"Failed to check prediction status: HTTP {response.status_code}")

        try:
            payload = _StatusPayload.model_validate_json(response.content)
        except ValidationError as exc:
            raise ProtocolError(f"Malformed prediction status: {response.text}") from exc

        return PredictionJob(
            id=job_id,
            status=payload.status,
            output_asset_url=payload.output.model_file if payload.output else None,
            error_message=payload.error,
        )


__all__ = [
    "GENERATION_INPUT",
    "MODEL_VERSION",
    "PredictionJob",
    "PredictionStatus",
    "ReplicatePredictionClient",
    "TERMINAL_STATUSES",
]
