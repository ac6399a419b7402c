"""Generation workflow endpoints for the display surface."""
from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, RedirectResponse

from ..models import schemas
from ..models.state import Ready, WorkflowState
from ..services.workflow import GenerationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generations", tags=["generations"])


def _workflow(request: Request) -> GenerationWorkflow:
    return request.app.state.workflow


def _payload(state: WorkflowState) -> schemas.WorkflowStateResponse:
    return schemas.WorkflowStateResponse.from_state(state, model_path=f"{router.prefix}/model")


@router.post("", status_code=202, response_model=schemas.WorkflowStateResponse)
async def create_generation(request: Request, image: UploadFile = File(...)) -> schemas.WorkflowStateResponse:
    """Accept a picked image and start a run, unless one is already active."""

    workflow = _workflow(request)
    if workflow.is_busy:
        raise HTTPException(status_code=409, detail="A generation is already in progress")

    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")

    suffix = Path(image.filename or "image.jpg").suffix or ".jpg"
    upload_dir: Path = request.app.state.upload_dir
    upload_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(prefix="picked_", suffix=suffix, dir=upload_dir, delete=False) as handle:
        handle.write(data)
    picked = Path(handle.name)

    task = workflow.start(picked)
    if task is None:
        picked.unlink(missing_ok=True)
        raise HTTPException(status_code=409, detail="A generation is already in progress")
    task.add_done_callback(lambda _: picked.unlink(missing_ok=True))
    logger.info("Started generation for %s (%d bytes)", image.filename, len(data))
    return _payload(workflow.state)


@router.get("/state", response_model=schemas.WorkflowStateResponse)
async def get_generation_state(request: Request) -> schemas.WorkflowStateResponse:
    """Return the current workflow state."""

    return _payload(_workflow(request).state)


@router.post("/acknowledge", response_model=schemas.WorkflowStateResponse)
async def acknowledge_failure(request: Request) -> schemas.WorkflowStateResponse:
    workflow = _workflow(request)
    if not workflow.acknowledge():
        raise HTTPException(status_code=409, detail=f"Nothing to acknowledge while {workflow.state.kind}")
    return _payload(workflow.state)


@router.get("/model")
async def get_model(request: Request):
    """Serve the materialized model, or redirect to it for direct references."""

    state = _workflow(request).state
    if not isinstance(state, Ready):
        raise HTTPException(status_code=404, detail="No model is ready")
    asset = state.asset
    if asset.local_path is None:
        return RedirectResponse(asset.source_url)
    if not asset.local_path.exists():
        logger.error("Model file not found at path: %s", asset.local_path)
        raise HTTPException(status_code=404, detail="Model file not found")
    return FileResponse(asset.local_path, media_type="model/gltf-binary", filename=asset.local_path.name)


@router.websocket("/events")
async def generation_events(websocket: WebSocket) -> None:
    """Push the current state and every later change as JSON text frames.

    Incoming frames are ignored; reading them is how a disconnect is noticed.
    """

    await websocket.accept()
    workflow: GenerationWorkflow = websocket.app.state.workflow
    queue: asyncio.Queue[WorkflowState] = asyncio.Queue()
    unsubscribe = workflow.subscribe(queue.put_nowait)

    async def forward_changes() -> None:
        while True:
            state = await queue.get()
            await websocket.send_text(_payload(state).model_dump_json())

    sender: asyncio.Task[None] | None = None
    try:
        await websocket.send_text(_payload(workflow.state).model_dump_json())
        sender = asyncio.create_task(forward_changes())
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Generation events client disconnected")
    finally:
        unsubscribe()
        if sender is not None:
            sender.cancel()
