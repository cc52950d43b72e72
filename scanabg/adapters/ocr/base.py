from abc import ABC, abstractmethod
from typing import Callable

from scanabg.orchestrator.contracts import OcrResult, ProgressEvent

ProgressCallback = Callable[[ProgressEvent], None]


class OcrEngineError(Exception):
    """Engine-reported failure: internal error, corrupt image, unsupported language."""


class OcrEngine(ABC):
    @abstractmethod
    async def recognize(self, image: bytes, language: str, progress: ProgressCallback) -> OcrResult:
        """Recognize text in an encoded image.

        progress is called on the event-loop thread with non-decreasing
        fractions, always before this coroutine returns or raises.
        """
        ...

    def available(self) -> bool:
        return True
