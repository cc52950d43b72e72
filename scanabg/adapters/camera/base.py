from abc import ABC, abstractmethod
from scanabg.orchestrator.contracts import StreamConstraints


class StreamHandle(ABC):
    """A granted hardware stream. Width/height are what the device negotiated."""

    width: int = 0
    height: int = 0

    @abstractmethod
    def read_frame(self):
        """Grab the current frame as a BGR ndarray, or None if nothing is available. Blocking."""
        ...

    @abstractmethod
    def stop_all_tracks(self) -> None:
        """Release the underlying device. Safe to call more than once."""
        ...

    @property
    @abstractmethod
    def is_live(self) -> bool:
        ...


class CameraAdapter(ABC):
    @abstractmethod
    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        """Acquire a stream for constraints.facing_mode.

        Raises PermissionDenied, DeviceUnavailable or DeviceBusy.
        """
        ...
