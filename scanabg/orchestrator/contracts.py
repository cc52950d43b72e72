import base64
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

FacingMode = Literal["front", "rear"]

FRONT: FacingMode = "front"
REAR: FacingMode = "rear"

DEFAULT_LANGUAGE = "eng"


@dataclass(frozen=True)
class StreamConstraints:
    facing_mode: FacingMode
    # hints only: the granted stream may negotiate something else
    ideal_width: int = 720
    ideal_height: int = 1280
    aspect_ratio: float = 9 / 16


@dataclass(frozen=True)
class CanonicalImage:
    data: bytes
    mime_type: str
    width: int
    height: int
    seq: int = 0  # set by the pipeline when the image becomes current

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{b64}"


@dataclass(frozen=True)
class ProgressEvent:
    phase: str       # engine-defined, e.g. "recognizing text"
    progress: float  # 0..1


@dataclass(frozen=True)
class RecognitionJob:
    job_id: int
    image: CanonicalImage
    language: str = DEFAULT_LANGUAGE
    phase: Optional[str] = None
    progress: float = 0.0


# ── Pipeline states ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    kind: Literal["idle"] = field(default="idle", init=False)


@dataclass(frozen=True)
class ImageReady:
    image: CanonicalImage
    kind: Literal["image_ready"] = field(default="image_ready", init=False)


@dataclass(frozen=True)
class Recognizing:
    image: CanonicalImage
    job: RecognitionJob
    kind: Literal["recognizing"] = field(default="recognizing", init=False)


@dataclass(frozen=True)
class Recognized:
    image: CanonicalImage
    text: str
    kind: Literal["recognized"] = field(default="recognized", init=False)


@dataclass(frozen=True)
class Failed:
    image: CanonicalImage
    reason: str
    kind: Literal["failed"] = field(default="failed", init=False)


PipelineState = Union[Idle, ImageReady, Recognizing, Recognized, Failed]


@dataclass(frozen=True)
class OcrResult:
    text: str  # may be empty: nothing found is still a success
