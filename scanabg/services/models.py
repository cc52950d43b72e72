from pydantic import BaseModel
from typing import Literal, Optional

StateKind = Literal["idle", "image_ready", "recognizing", "recognized", "failed"]


class ImageOut(BaseModel):
    mime_type: str
    width: int
    height: int
    size: int  # encoded bytes
    seq: int  # bumps on every capture or upload


class JobOut(BaseModel):
    job_id: int
    language: str
    phase: Optional[str] = None
    progress: float = 0.0


class StateOut(BaseModel):
    kind: StateKind
    image: Optional[ImageOut] = None
    job: Optional[JobOut] = None      # recognizing only
    text: Optional[str] = None        # recognized only
    reason: Optional[str] = None      # failed only


class CameraOut(BaseModel):
    mode: Literal["front", "rear"]
    open: bool
    pending: bool                     # waiting on the device / permission prompt
    width: Optional[int] = None       # negotiated size of the open stream
    height: Optional[int] = None


class StatusResponse(BaseModel):
    state: StateOut
    camera: CameraOut
    last_action: Optional[str] = None
    last_error_code: Optional[str] = None
    last_error: Optional[str] = None
    logs: list[str]


class ActionResponse(BaseModel):
    ok: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    state: StateOut


class ToggleResponse(ActionResponse):
    mode: Literal["front", "rear"]


class UploadRequest(BaseModel):
    image: str                        # base64 or data URL
    mime_type: Optional[str] = None   # required when `image` is bare base64


class RecognizeRequest(BaseModel):
    language: Optional[str] = None    # tesseract code, e.g. "eng" or "eng+deu"
    wait: bool = False                # return after the job settles
