"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from typing_extensions import assert_never

from .state import (
    Downloading,
    Failed,
    Generating,
    Idle,
    Ready,
    Uploading,
    WorkflowState,
    describe_state,
)


class AssetResponse(BaseModel):
    """Materialized model handed to the viewer."""

    source_url: str = Field(..., description="URL the prediction service returned")
    local_path: Optional[str] = Field(default=None, description="Verified local copy, if downloaded")
    byte_length: int = Field(default=0, description="Size of the local copy in bytes")
    verified: bool = Field(default=False, description="True when the GLB signature check passed")
    viewer_url: str = Field(..., description="Where the viewer should load the model from")


class WorkflowStateResponse(BaseModel):
    """Represents the current state of the generation workflow."""

    kind: str = Field(..., description="idle | uploading | generating | downloading | ready | failed")
    message: str = Field(..., description="Human-readable status line")
    progress: Optional[float] = Field(default=None, description="Upload progress in [0, 1]")
    image_url: Optional[str] = Field(default=None, description="Public URL of the uploaded image")
    asset: Optional[AssetResponse] = None
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: WorkflowState, *, model_path: str = "/generations/model") -> "WorkflowStateResponse":
        payload = cls(kind=state.kind, message=describe_state(state))
        if isinstance(state, Idle):
            pass
        elif isinstance(state, Uploading):
            payload.progress = state.progress
        elif isinstance(state, Generating):
            payload.image_url = state.image_url
        elif isinstance(state, Downloading):
            pass
        elif isinstance(state, Ready):
            asset = state.asset
            payload.asset = AssetResponse(
                source_url=asset.source_url,
                local_path=str(asset.local_path) if asset.local_path is not None else None,
                byte_length=asset.byte_length,
                verified=asset.verified,
                viewer_url=model_path if asset.local_path is not None else asset.source_url,
            )
        elif isinstance(state, Failed):
            payload.error = state.message
        else:
            assert_never(state)
        return payload
