"""Coordinator for the upload → generate → materialize workflow."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from ..errors import GenerationError
from ..models.state import (
    Downloading,
    Failed,
    Generating,
    Idle,
    Ready,
    Uploading,
    WorkflowState,
    is_busy,
)
from .asset_host import ProgressCallback
from .materializer import MaterializedAsset
from .polling import Sleep, poll_until
from .prediction import PredictionJob

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Generation was interrupted"

StateListener = Callable[[WorkflowState], None]
ImagePreparer = Callable[[Path], Path]


class AssetHost(Protocol):
    async def upload(self, path: Path, on_progress: Optional[ProgressCallback] = None) -> str: ...


class PredictionService(Protocol):
    async def submit(self, image_url: str) -> str: ...

    async def poll_status(self, job_id: str) -> PredictionJob: ...


class Materializer(Protocol):
    requires_download: bool

    async def materialize(self, url: str) -> MaterializedAsset: ...


class GenerationWorkflow:
    """Runs one generation at a time and publishes every state change.

    The state is only ever mutated here, on the event loop, so listeners and
    readers never observe two phases at once.
    """

    def __init__(
        self,
        *,
        asset_host: AssetHost,
        predictions: PredictionService,
        materializer: Materializer,
        prepare_image: Optional[ImagePreparer] = None,
        poll_interval: float = 2.0,
        max_poll_attempts: int = 60,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._asset_host = asset_host
        self._predictions = predictions
        self._materializer = materializer
        self._prepare_image = prepare_image
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._sleep = sleep
        self._state: WorkflowState = Idle()
        self._listeners: List[StateListener] = []
        self._task: Optional[asyncio.Task[WorkflowState]] = None

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return is_busy(self._state)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for state changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: WorkflowState) -> None:
        old_state = self._state
        self._state = state
        if type(old_state) is not type(state):
            logger.info("Workflow state: %s -> %s", old_state.kind, state.kind)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")

    def _claim(self) -> bool:
        if self.is_busy:
            logger.info("Ignoring image selection while %s", self._state.kind)
            return False
        self._set_state(Uploading(progress=0.0))
        return True

    async def run(self, image_path: Path) -> Optional[WorkflowState]:
        """Execute a full run and return its final state, or ``None`` if a run is active."""

        if not self._claim():
            return None
        return await self._execute(Path(image_path))

    def start(self, image_path: Path) -> Optional[asyncio.Task[WorkflowState]]:
        """Schedule a run on the running loop; returns ``None`` if a run is active."""

        if not self._claim():
            return None
        self._task = asyncio.create_task(self._execute(Path(image_path)))
        return self._task

    async def aclose(self) -> None:
        """Cancel an active run and wait for it to settle into ``Failed``."""

        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        # A task cancelled before its first step never reaches its own handler
        if self.is_busy:
            self._set_state(Failed(message=INTERRUPTED_MESSAGE))

    def acknowledge(self) -> bool:
        """Clear a failure so the next image can be selected from ``Idle``."""

        if not isinstance(self._state, Failed):
            return False
        self._set_state(Idle())
        return True

    def _on_upload_progress(self, fraction: float) -> None:
        if isinstance(self._state, Uploading):
            self._set_state(Uploading(progress=fraction))

    async def _execute(self, image_path: Path) -> WorkflowState:
        prepared: Optional[Path] = None
        try:
            upload_path = image_path
            if self._prepare_image is not None:
                prepared = await asyncio.to_thread(self._prepare_image, image_path)
                upload_path = prepared

            image_url = await self._asset_host.upload(upload_path, on_progress=self._on_upload_progress)
            self._set_state(Generating(image_url=image_url))

            job_id = await self._predictions.submit(image_url)
            model_url = await poll_until(
                lambda: self._predictions.poll_status(job_id),
                self._resolve_job,
                interval=self._poll_interval,
                max_attempts=self._max_poll_attempts,
                sleep=self._sleep,
                label=f"prediction {job_id}",
            )
            logger.info("Received model URL: %s", model_url)

            if self._materializer.requires_download:
                self._set_state(Downloading(source_url=model_url))
            asset = await self._materializer.materialize(model_url)
            self._set_state(Ready(asset=asset))
        except asyncio.CancelledError:
            logger.warning("Generation was cancelled while %s", self._state.kind)
            self._set_state(Failed(message=INTERRUPTED_MESSAGE))
            raise
        except GenerationError as exc:
            logger.error("Error generating 3D model: %s", exc)
            self._set_state(Failed(message=str(exc)))
        except Exception as exc:
            logger.exception("Unexpected error while generating 3D model")
            self._set_state(Failed(message=f"Unexpected error: {exc}"))
        finally:
            if prepared is not None:
                prepared.unlink(missing_ok=True)
        return self._state

    @staticmethod
    def _resolve_job(job: PredictionJob) -> Optional[str]:
        logger.info("Prediction status: %s", job.status)
        if job.known_status is None:
            logger.warning("Unknown prediction status %r, continuing to poll", job.status)
        return job.raise_for_terminal()


__all__ = [
    "AssetHost",
    "GenerationWorkflow",
    "INTERRUPTED_MESSAGE",
    "Materializer",
    "PredictionService",
    "StateListener",
]
