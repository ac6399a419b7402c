from __future__ import annotations

import asyncio

import httpx
import pytest

from imageto3d.errors import DownloadError, InvalidAssetError
from imageto3d.services.materializer import (
    DirectReferenceMaterializer,
    DownloadingMaterializer,
    verify_glb,
)

MODEL_URL = "https://replicate.delivery/pbxt/model.glb"
VALID_GLB = b"glTF" + b"\x02\x00\x00\x00" + b"\x00" * 120


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _materialize(handler, output_dir, clock=lambda: 1_700_000_000.5):  # noqa: ANN001
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            materializer = DownloadingMaterializer(output_dir, http_client=http_client, clock=clock)
            return await materializer.materialize(MODEL_URL)

    return _run(scenario())


def test_download_writes_verified_model(tmp_path) -> None:
    output_dir = tmp_path / "models"

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == MODEL_URL
        return httpx.Response(200, content=VALID_GLB)

    asset = _materialize(handler, output_dir)

    assert asset.verified is True
    assert asset.source_url == MODEL_URL
    assert asset.byte_length == len(VALID_GLB)
    assert asset.local_path == output_dir / "model_1700000000500.glb"
    assert asset.local_path.read_bytes() == VALID_GLB
    assert asset.viewer_source == str(asset.local_path)
    assert sorted(p.name for p in output_dir.iterdir()) == ["model_1700000000500.glb"]


def test_download_avoids_overwriting_existing_model(tmp_path) -> None:
    tmp_path.joinpath("model_1700000000500.glb").write_bytes(b"older model")

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=VALID_GLB)

    asset = _materialize(handler, tmp_path)

    assert asset.local_path == tmp_path / "model_1700000000501.glb"
    assert tmp_path.joinpath("model_1700000000500.glb").read_bytes() == b"older model"


@pytest.mark.parametrize(
    "content",
    [
        VALID_GLB[:99],
        b"",
        b"PK\x03\x04" + b"\x00" * 200,
        b"GLTF" + b"\x00" * 200,
    ],
    ids=["99-bytes", "empty", "zip-magic", "wrong-case-magic"],
)
def test_invalid_bytes_do_not_produce_a_model(tmp_path, content: bytes) -> None:
    output_dir = tmp_path / "models"

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=content)

    with pytest.raises(InvalidAssetError):
        _materialize(handler, output_dir)

    assert not output_dir.exists() or list(output_dir.iterdir()) == []


def test_exactly_one_hundred_bytes_is_accepted() -> None:
    verify_glb(b"glTF" + b"\x00" * 96)


def test_download_failure_status_raises(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    with pytest.raises(DownloadError, match="404"):
        _materialize(handler, tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_direct_reference_passes_url_through() -> None:
    materializer = DirectReferenceMaterializer()

    asset = _run(materializer.materialize(MODEL_URL))

    assert materializer.requires_download is False
    assert asset.local_path is None
    assert asset.verified is False
    assert asset.viewer_source == MODEL_URL
