import asyncio

from scanabg.adapters.ocr.base import OcrEngine, OcrEngineError, ProgressCallback
from scanabg.orchestrator.contracts import OcrResult, ProgressEvent

DEFAULT_PHASES = [
    ProgressEvent("loading tesseract core", 0.0),
    ProgressEvent("initializing api", 0.3),
    ProgressEvent("recognizing text", 0.5),
    ProgressEvent("recognizing text", 1.0),
]


class MockOcr(OcrEngine):
    """
    Scripted engine. Returns `text`, or raises OcrEngineError(`fail`) when set.
    When `gate` is given the job stays pending until the gate is set, after
    the first progress event.
    """

    def __init__(self, status_store, text: str = "", fail: str | None = None,
                 phases: list[ProgressEvent] | None = None, gate: asyncio.Event | None = None):
        self.status = status_store
        self.text = text
        self.fail = fail
        self.phases = list(DEFAULT_PHASES if phases is None else phases)
        self.gate = gate
        self.calls: list[tuple[bytes, str]] = []

    async def recognize(self, image: bytes, language: str, progress: ProgressCallback) -> OcrResult:
        self.calls.append((image, language))
        for i, event in enumerate(self.phases):
            progress(event)
            if i == 0 and self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
        if self.gate is not None and not self.phases:
            await self.gate.wait()
        if self.fail is not None:
            self.status.log(f"mock_ocr: failing ({self.fail})")
            raise OcrEngineError(self.fail)
        self.status.log(f"mock_ocr: {self.text!r}")
        return OcrResult(text=self.text)
