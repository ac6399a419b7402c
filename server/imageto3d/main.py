"""FastAPI application entrypoint for the image-to-3D generation service."""
from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from .config import Settings, get_settings
from .routers import generations
from .services.asset_host import UploadcareClient
from .services.image_source import prepare_image
from .services.materializer import DirectReferenceMaterializer, DownloadingMaterializer
from .services.prediction import ReplicatePredictionClient
from .services.workflow import GenerationWorkflow

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_workflow(settings: Settings, http_client: httpx.AsyncClient, *, upload_dir: Path) -> GenerationWorkflow:
    """Wire the clients and coordinator from explicit settings."""

    settings.require_secrets()
    asset_host = UploadcareClient(
        settings.uploadcare_public_key,
        http_client=http_client,
        upload_url=settings.uploadcare_upload_url,
        cdn_base=settings.uploadcare_cdn_base,
    )
    predictions = ReplicatePredictionClient(
        settings.replicate_api_token,
        http_client=http_client,
        base_url=settings.replicate_base_url,
    )
    if settings.materialize_mode == "direct":
        materializer = DirectReferenceMaterializer()
    else:
        materializer = DownloadingMaterializer(settings.output_dir, http_client=http_client)

    return GenerationWorkflow(
        asset_host=asset_host,
        predictions=predictions,
        materializer=materializer,
        prepare_image=partial(prepare_image, output_dir=upload_dir),
        poll_interval=settings.poll_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    workflow: Optional[GenerationWorkflow] = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    Passing ``workflow`` skips client construction, which is how tests inject
    fakes.
    """

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    upload_dir = Path(tempfile.gettempdir()) / "imageto3d_uploads"

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        if workflow is not None:
            application.state.workflow = workflow
            try:
                yield
            finally:
                await workflow.aclose()
            return
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
            running = build_workflow(settings, http_client, upload_dir=upload_dir)
            application.state.workflow = running
            logger.info("Generation workflow ready (materialize mode: %s)", settings.materialize_mode)
            try:
                yield
            finally:
                # Runs must stop before the shared client closes
                await running.aclose()

    application = FastAPI(
        title="Image to 3D Model",
        description="Uploads a photo, runs an image-to-3D prediction and serves the resulting GLB model.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.upload_dir = upload_dir
    if workflow is not None:
        application.state.workflow = workflow
    application.include_router(generations.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "imageto3d", "status": "ok"}

    return application


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
