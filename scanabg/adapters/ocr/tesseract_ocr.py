"""
Tesseract OCR engine via pytesseract.

Requires the tesseract binary (apt install tesseract-ocr / brew install tesseract).
TESSERACT_CMD overrides the binary path when it is not on PATH.
"""
import asyncio
import io
import os

import pytesseract
from PIL import Image, UnidentifiedImageError

from scanabg.adapters.ocr.base import OcrEngine, OcrEngineError, ProgressCallback
from scanabg.orchestrator.contracts import OcrResult, ProgressEvent

# phase label -> overall fraction reached when the phase starts
PHASES = [
    ("loading tesseract core", 0.0),
    ("loading language traineddata", 0.2),
    ("initializing api", 0.3),
    ("recognizing text", 0.4),
    ("recognized text", 1.0),
]


def _load_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise OcrEngineError(f"corrupt image: {e}") from e
    return img


class TesseractOcr(OcrEngine):
    def __init__(self, status_store, tesseract_cmd: str | None = None):
        self.status = status_store
        cmd = tesseract_cmd or os.getenv("TESSERACT_CMD")
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd
        self._languages: set[str] | None = None

    def available(self) -> bool:
        try:
            pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError:
            return False
        return True

    async def _installed_languages(self) -> set[str]:
        if self._languages is None:
            langs = await asyncio.to_thread(pytesseract.get_languages, config="")
            self._languages = set(langs)
        return self._languages

    async def recognize(self, image: bytes, language: str, progress: ProgressCallback) -> OcrResult:
        phases = iter(PHASES)

        def advance():
            phase, fraction = next(phases)
            progress(ProgressEvent(phase=phase, progress=fraction))

        advance()
        try:
            version = await asyncio.to_thread(pytesseract.get_tesseract_version)
        except pytesseract.TesseractNotFoundError as e:
            raise OcrEngineError("tesseract is not installed or not on PATH") from e
        self.status.log(f"tesseract_ocr: core {version}")

        advance()
        installed = await self._installed_languages()
        missing = [code for code in language.split("+") if code not in installed]
        if missing:
            raise OcrEngineError(f"unsupported language: {'+'.join(missing)}")

        advance()
        img = await asyncio.to_thread(_load_image, image)

        advance()
        try:
            text = await asyncio.to_thread(pytesseract.image_to_string, img, lang=language)
        except pytesseract.TesseractError as e:
            raise OcrEngineError(e.message or f"tesseract exited with status {e.status}") from e

        advance()
        self.status.log(f"tesseract_ocr: {len(text)} chars ({language})")
        return OcrResult(text=text)
