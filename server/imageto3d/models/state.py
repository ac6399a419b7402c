"""Workflow state as a single tagged union."""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from typing_extensions import assert_never

from ..services.materializer import MaterializedAsset


@dataclass(frozen=True)
class Idle:
    kind: ClassVar[str] = "idle"


@dataclass(frozen=True)
class Uploading:
    progress: float = 0.0
    kind: ClassVar[str] = "uploading"


@dataclass(frozen=True)
class Generating:
    image_url: str
    kind: ClassVar[str] = "generating"


@dataclass(frozen=True)
class Downloading:
    source_url: str
    kind: ClassVar[str] = "downloading"


@dataclass(frozen=True)
class Ready:
    asset: MaterializedAsset
    kind: ClassVar[str] = "ready"


@dataclass(frozen=True)
class Failed:
    message: str
    kind: ClassVar[str] = "failed"


WorkflowState = Union[Idle, Uploading, Generating, Downloading, Ready, Failed]

# A new image may only be selected from these states.
SELECTABLE_STATES = (Idle, Ready, Failed)


def is_busy(state: WorkflowState) -> bool:
    return not isinstance(state, SELECTABLE_STATES)


def describe_state(state: WorkflowState) -> str:
    """Human-readable status line for the display surface."""

    if isinstance(state, Idle):
        return "Select an image to generate a 3D model"
    elif isinstance(state, Uploading):
        return f"Uploading image... {state.progress * 100:.1f}%"
    elif isinstance(state, Generating):
        return "Generating 3D model...\nThis may take a few minutes"
    elif isinstance(state, Downloading):
        return "Downloading model..."
    elif isinstance(state, Ready):
        return f"Model ready: {state.asset.viewer_source}"
    elif isinstance(state, Failed):
        return f"Error: {state.message}"
    else:
        assert_never(state)


__all__ = [
    "Downloading",
    "Failed",
    "Generating",
    "Idle",
    "Ready",
    "SELECTABLE_STATES",
    "Uploading",
    "WorkflowState",
    "describe_state",
    "is_busy",
]
