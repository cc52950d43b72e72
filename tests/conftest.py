"""Shared pytest configuration and fixtures."""

import shutil

import cv2
import numpy as np
import pytest
import pytest_asyncio

from scanabg.adapters.camera.mock_camera import MockCamera
from scanabg.adapters.ocr.mock_ocr import MockOcr
from scanabg.orchestrator.state_machine import ScanPipeline
from scanabg.services.status_store import StatusStore


def pytest_addoption(parser):
    parser.addoption(
        "--run-tesseract",
        action="store_true",
        default=False,
        help="Run tests that call the real tesseract binary",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-tesseract") and shutil.which("tesseract"):
        return
    skip = pytest.mark.skip(reason="Need --run-tesseract and a tesseract binary on PATH")
    for item in items:
        if "tesseract" in item.keywords:
            item.add_marker(skip)


def make_png(text: str = "AB 7.40", width: int = 100, height: int = 100) -> bytes:
    img = np.full((height, width, 3), 255, dtype=np.uint8)
    cv2.putText(img, text, (4, height // 2 + 6), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 2)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


@pytest.fixture
def status() -> StatusStore:
    return StatusStore()


@pytest.fixture
def camera(status) -> MockCamera:
    return MockCamera(status)


@pytest.fixture
def engine(status) -> MockOcr:
    return MockOcr(status, text="AB 7.40")


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest_asyncio.fixture
async def pipeline(camera, engine, status):
    p = ScanPipeline(camera=camera, engine=engine, status_store=status)
    yield p
    await p.aclose()
