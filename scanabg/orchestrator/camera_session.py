"""
Camera session lifecycle: acquire, swap on mode change, release.

At most one session is current. A mode switch acquires the new stream first
and only then stops the old one, so a failed switch leaves the old camera
running.
"""
from dataclasses import dataclass

from scanabg.adapters.camera.base import CameraAdapter, StreamHandle
from scanabg.orchestrator.contracts import FacingMode, StreamConstraints
from scanabg.orchestrator.errors import DeviceBusy, DeviceUnavailable


@dataclass(eq=False)
class CameraSession:
    mode: FacingMode
    stream: StreamHandle
    is_open: bool = True

    @property
    def is_live(self) -> bool:
        return self.is_open and self.stream.is_live

    @property
    def width(self) -> int:
        return self.stream.width

    @property
    def height(self) -> int:
        return self.stream.height


class CameraSessionManager:
    def __init__(self, camera: CameraAdapter, status_store):
        self.camera = camera
        self.status = status_store
        self.current: CameraSession | None = None
        self.pending = False  # acquisition in flight (e.g. permission prompt)
        self._shut = False

    async def _acquire(self, mode: FacingMode) -> CameraSession:
        if self._shut:
            raise DeviceUnavailable("camera manager is shut down")
        if self.pending:
            raise DeviceBusy("camera acquisition already in progress")
        self.pending = True
        try:
            self.status.log(f"camera: requesting {mode}")
            stream = await self.camera.request_stream(StreamConstraints(facing_mode=mode))
        finally:
            self.pending = False
        session = CameraSession(mode=mode, stream=stream)
        if self._shut:
            # torn down while we waited on the device
            self.close(session)
            raise DeviceUnavailable("camera manager is shut down")
        self.status.log(f"camera: {mode} open {stream.width}x{stream.height}")
        return session

    def _install(self, session: CameraSession) -> None:
        prior, self.current = self.current, session
        if prior is not None and prior is not session:
            self.close(prior)

    async def open(self, mode: FacingMode) -> CameraSession:
        session = await self._acquire(mode)
        self._install(session)
        return session

    def close(self, session: CameraSession | None) -> None:
        if session is None or not session.is_open:
            return
        session.is_open = False
        session.stream.stop_all_tracks()
        if self.current is session:
            self.current = None
        self.status.log(f"camera: {session.mode} closed")

    async def switch_mode(self, current: CameraSession | None, new_mode: FacingMode) -> CameraSession:
        session = await self._acquire(new_mode)  # on failure `current` keeps running
        self.close(current)
        self._install(session)
        return session

    def shutdown(self) -> None:
        self._shut = True
        self.close(self.current)
