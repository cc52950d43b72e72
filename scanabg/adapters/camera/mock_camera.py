"""Mock camera: draws synthetic frames so the pipeline runs without hardware."""
import asyncio

import cv2
import numpy as np

from scanabg.adapters.camera.base import CameraAdapter, StreamHandle
from scanabg.orchestrator.contracts import StreamConstraints


class MockStream(StreamHandle):
    def __init__(self, mode: str, width: int, height: int):
        self.mode = mode
        self.width = width
        self.height = height
        self.stop_count = 0
        self._live = True
        self._frames = 0

    @property
    def is_live(self) -> bool:
        return self._live

    def read_frame(self):
        if not self._live:
            return None
        self._frames += 1
        img = np.full((self.height, self.width, 3), 255, dtype=np.uint8)
        cv2.putText(img, f"{self.mode} #{self._frames}", (10, self.height // 2),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 0), 2)
        return img

    def stop_all_tracks(self) -> None:
        if self._live:
            self._live = False
            self.stop_count += 1


class MockCamera(CameraAdapter):
    """
    failures: facing mode -> exception raised when that mode is requested.
    The default size differs from the requested ideal on purpose: consumers
    must use the granted size.
    """

    def __init__(self, status_store, width: int = 360, height: int = 640,
                 failures: dict | None = None, delay: float = 0.0):
        self.status = status_store
        self.width = width
        self.height = height
        self.failures = dict(failures or {})
        self.delay = delay
        self.streams: list[MockStream] = []

    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        if self.delay:
            await asyncio.sleep(self.delay)
        err = self.failures.get(constraints.facing_mode)
        if err is not None:
            self.status.log(f"mock_camera: {constraints.facing_mode} refused ({type(err).__name__})")
            raise err
        stream = MockStream(constraints.facing_mode, self.width, self.height)
        self.streams.append(stream)
        self.status.log(f"mock_camera: serving {constraints.facing_mode} {self.width}x{self.height}")
        return stream

    def live_streams(self) -> list[MockStream]:
        return [s for s in self.streams if s.is_live]
