"""
Turns a live frame or an uploaded file into a CanonicalImage.

Frames are encoded as PNG at their own size (no scaling, no cropping).
Uploads keep their bytes once they decode as an image.
"""
import asyncio
import base64
import binascii

import cv2
import numpy as np

from scanabg.orchestrator.contracts import CanonicalImage
from scanabg.orchestrator.errors import InvalidInput

PNG = "image/png"


def from_captured_frame(frame) -> CanonicalImage:
    if frame is None or frame.size == 0:
        raise InvalidInput("empty frame")
    # size comes from the frame itself: the camera may have negotiated anything
    height, width = frame.shape[:2]
    ok, buf = cv2.imencode(".png", frame)
    if not ok:
        raise InvalidInput("frame could not be encoded")
    return CanonicalImage(data=buf.tobytes(), mime_type=PNG, width=width, height=height)


def _read_size(data: bytes) -> tuple[int, int]:
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise InvalidInput("file could not be decoded as an image")
    return img.shape[1], img.shape[0]


async def from_uploaded_file(file_bytes: bytes, declared_mime_type: str | None) -> CanonicalImage:
    mime = (declared_mime_type or "").split(";")[0].strip().lower()
    if not mime.startswith("image/"):
        raise InvalidInput(f"unsupported file type: {declared_mime_type or 'unknown'}")
    if not file_bytes:
        raise InvalidInput("empty file")
    width, height = await asyncio.to_thread(_read_size, bytes(file_bytes))
    return CanonicalImage(data=bytes(file_bytes), mime_type=mime, width=width, height=height)


def decode_data_url(value: str) -> tuple[bytes, str | None]:
    """Split a Data URL (or bare base64) into raw bytes and its declared MIME type."""
    payload = value.strip()
    mime = None
    if payload.startswith("data:"):
        header, sep, payload = payload.partition(",")
        if not sep or ";base64" not in header:
            raise InvalidInput("malformed data URL")
        mime = header[len("data:"):].split(";")[0] or None
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"base64 decode failed: {e}") from e
    return data, mime
