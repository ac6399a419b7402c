from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from imageto3d.errors import (
    PredictionCanceledError,
    PredictionFailedError,
    ProtocolError,
    SubmissionError,
)
from imageto3d.services.prediction import MODEL_VERSION, PredictionJob, ReplicatePredictionClient


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _call(handler, action):  # noqa: ANN001
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = ReplicatePredictionClient("r8_secret", http_client=http_client)
            return await action(client)

    return _run(scenario())


def test_submit_sends_fixed_generation_request() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["content_type"] = request.headers["Content-Type"]
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(201, json={"id": "pred-123", "status": "starting"})

    job_id = _call(handler, lambda client: client.submit("https://ucarecdn.com/abc/"))

    assert job_id == "pred-123"
    assert captured["method"] == "POST"
    assert captured["url"] == "https://api.replicate.com/v1/predictions"
    assert captured["auth"] == "Bearer r8_secret"
    assert captured["content_type"] == "application/json"
    assert captured["body"] == {
        "version": MODEL_VERSION,
        "input": {
            "image": "https://ucarecdn.com/abc/",
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
        },
    }
    body_input = captured["body"]["input"]
    assert type(body_input["slat_guidance_strength"]) is int
    assert type(body_input["seed"]) is int


def test_submit_rejects_non_created_response() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text='{"detail": "invalid version"}')

    with pytest.raises(SubmissionError) as excinfo:
        _call(handler, lambda client: client.submit("https://ucarecdn.com/abc/"))

    assert excinfo.value.response_body == '{"detail": "invalid version"}'
    assert "invalid version" in str(excinfo.value)


def test_submit_requires_prediction_id() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"status": "starting"})

    with pytest.raises(ProtocolError):
        _call(handler, lambda client: client.submit("https://ucarecdn.com/abc/"))


def test_submit_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SubmissionError, match="connection refused"):
        _call(handler, lambda client: client.submit("https://ucarecdn.com/abc/"))


def test_poll_status_parses_succeeded_job() -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "id": "pred-123",
                "status": "succeeded",
                "output": {"model_file": "https://replicate.delivery/model.glb", "color_video": None},
                "error": None,
            },
        )

    job = _call(handler, lambda client: client.poll_status("pred-123"))

    assert captured["url"] == "https://api.replicate.com/v1/predictions/pred-123"
    assert captured["auth"] == "Bearer r8_secret"
    assert job == PredictionJob(
        id="pred-123",
        status="succeeded",
        output_asset_url="https://replicate.delivery/model.glb",
        error_message=None,
    )
    assert job.is_terminal


def test_poll_status_rejects_non_ok_response() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal error")

    with pytest.raises(ProtocolError, match="500"):
        _call(handler, lambda client: client.poll_status("pred-123"))


def test_poll_status_rejects_malformed_body() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "pred-123"})

    with pytest.raises(ProtocolError):
        _call(handler, lambda client: client.poll_status("pred-123"))


def test_succeeded_job_without_model_file_is_protocol_error() -> None:
    job = PredictionJob(id="pred-123", status="succeeded")

    with pytest.raises(ProtocolError, match="No model file"):
        job.raise_for_terminal()


def test_failed_job_carries_service_message() -> None:
    job = PredictionJob(id="pred-123", status="failed", error_message="CUDA out of memory")

    with pytest.raises(PredictionFailedError, match="CUDA out of memory"):
        job.raise_for_terminal()

    with pytest.raises(PredictionFailedError, match="Unknown error"):
        PredictionJob(id="pred-123", status="failed").raise_for_terminal()


def test_canceled_job_has_its_own_error() -> None:
    with pytest.raises(PredictionCanceledError, match="canceled"):
        PredictionJob(id="pred-123", status="canceled").raise_for_terminal()


@pytest.mark.parametrize("status", ["starting", "processing", "queued-for-gpu"])
def test_non_terminal_statuses_keep_polling(status: str) -> None:
    job = PredictionJob(id="pred-123", status=status)

    assert not job.is_terminal
    assert job.raise_for_terminal() is None


def test_client_requires_token_and_scheme() -> None:
    http_client = httpx.AsyncClient()
    try:
        with pytest.raises(ValueError):
            ReplicatePredictionClient("", http_client=http_client)
        with pytest.raises(ValueError):
            ReplicatePredictionClient("token", http_client=http_client, base_url="api.replicate.com")
    finally:
        _run(http_client.aclose())
