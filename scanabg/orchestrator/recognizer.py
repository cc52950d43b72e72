from typing import Callable

from scanabg.adapters.ocr.base import OcrEngine
from scanabg.orchestrator.contracts import CanonicalImage, ProgressEvent
from scanabg.orchestrator.errors import Busy, RecognitionFailed

FAILED_TEXT = "Failed to extract text."


class Recognizer:
    """Single-flight front for the OCR engine."""

    def __init__(self, engine: OcrEngine, status_store):
        self.engine = engine
        self.status = status_store
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    async def recognize(self, image: CanonicalImage, language: str,
                        on_progress: Callable[[ProgressEvent], None]) -> str:
        if self._in_flight:
            raise Busy("cannot start a second recognition while one is running")

        self._in_flight = True
        settled = False

        def relay(event: ProgressEvent):
            # nothing reaches the caller once the job has settled
            if not settled:
                on_progress(event)

        self.status.log(f"ocr: start {image.width}x{image.height} lang={language}")
        try:
            result = await self.engine.recognize(image.data, language, relay)
        except Exception as e:
            detail = str(e) or type(e).__name__
            self.status.log(f"ocr: failed: {detail}")
            raise RecognitionFailed(FAILED_TEXT, detail=detail) from e
        finally:
            settled = True
            self._in_flight = False

        self.status.log(f"ocr: done ({len(result.text)} chars)")
        return result.text
