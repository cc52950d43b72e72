"""
OpenCV webcam capture adapter.
CAMERA_REAR_INDEX (default 0) and CAMERA_FRONT_INDEX (default 1) map facing
modes to device indices.
"""
import asyncio
import os
import threading

import cv2

from scanabg.adapters.camera.base import CameraAdapter, StreamHandle
from scanabg.orchestrator.contracts import StreamConstraints
from scanabg.orchestrator.errors import DeviceBusy, DeviceUnavailable, PermissionDenied


class CV2Stream(StreamHandle):
    def __init__(self, cap, index: int, first_frame):
        self._cap = cap
        self._lock = threading.Lock()
        self.index = index
        # negotiated size, read back from what the device actually delivers
        self.height, self.width = first_frame.shape[:2]

    @property
    def is_live(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def read_frame(self):
        with self._lock:
            if self._cap is None:
                return None
            ret, frame = self._cap.read()
        if not ret or frame is None:
            return None
        return frame

    def stop_all_tracks(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None


class CV2Camera(CameraAdapter):
    def __init__(self, status_store, rear_index: int | None = None, front_index: int | None = None):
        self.status = status_store
        self._indices = {
            "rear": rear_index if rear_index is not None else int(os.getenv("CAMERA_REAR_INDEX", "0")),
            "front": front_index if front_index is not None else int(os.getenv("CAMERA_FRONT_INDEX", "1")),
        }

    def index_for(self, mode: str) -> int:
        return self._indices[mode]

    def _open(self, constraints: StreamConstraints) -> CV2Stream:
        index = self.index_for(constraints.facing_mode)
        device = f"/dev/video{index}"
        if os.path.exists(device) and not os.access(device, os.R_OK | os.W_OK):
            self.status.log(f"cv2_camera: no access to {device}")
            raise PermissionDenied(f"access to {device} refused")

        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            self.status.log(f"cv2_camera: failed to open device {index}")
            raise DeviceUnavailable(f"no {constraints.facing_mode} camera (device {index})")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)

        ret, frame = cap.read()
        if not ret or frame is None:
            cap.release()
            self.status.log(f"cv2_camera: device {index} opened but delivers no frames")
            raise DeviceBusy(f"{constraints.facing_mode} camera (device {index}) is held elsewhere")

        stream = CV2Stream(cap, index, frame)
        self.status.log(
            f"cv2_camera: device {index} granted {stream.width}x{stream.height} "
            f"(asked {constraints.ideal_width}x{constraints.ideal_height} aspect {constraints.aspect_ratio:.2f})"
        )
        return stream

    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        fut = asyncio.ensure_future(asyncio.to_thread(self._open, constraints))
        try:
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            # caller gave up while the device was opening: release whatever it grants
            fut.add_done_callback(_release_orphan)
            raise


def _release_orphan(fut) -> None:
    if not fut.cancelled() and fut.exception() is None:
        fut.result().stop_all_tracks()
