import asyncio
from dataclasses import replace
from typing import Callable

from scanabg.adapters.camera.base import CameraAdapter
from scanabg.adapters.ocr.base import OcrEngine
from scanabg.orchestrator.camera_session import CameraSessionManager
from scanabg.orchestrator.contracts import (
    DEFAULT_LANGUAGE, FRONT, REAR, CanonicalImage, Failed, FacingMode, Idle, ImageReady,
    PipelineState, ProgressEvent, RecognitionJob, Recognized, Recognizing,
)
from scanabg.orchestrator.errors import Busy, DeviceBusy, InvalidInput, RecognitionFailed
from scanabg.orchestrator.image_source import from_captured_frame, from_uploaded_file
from scanabg.orchestrator.recognizer import Recognizer

NO_IMAGE_TEXT = "Please capture or upload an image first!"


class ScanPipeline:
    """
    One capture-and-recognize session.

    Holds the PipelineState and the only ways to change it:
    trigger_capture / trigger_upload / toggle_camera_mode / trigger_recognize.
    Everything runs on one event loop; each trigger does its checks and its
    state change before its first await.
    """

    def __init__(self, camera: CameraAdapter, engine: OcrEngine, status_store,
                 language: str = DEFAULT_LANGUAGE, mode: FacingMode = REAR):
        self.status = status_store
        self.cameras = CameraSessionManager(camera, status_store)
        self.recognizer = Recognizer(engine, status_store)
        self.engine = engine
        self.camera = camera
        self.language = language
        self.mode: FacingMode = mode
        self._state: PipelineState = Idle()
        self._job_seq = 0
        self._image_seq = 0
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[PipelineState], None]] = []
        self._closed = False

    # ── observation ─────────────────────────────────────────────────────────

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Callable[[PipelineState], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _transition(self, new_state: PipelineState) -> None:
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)

    # ── lifecycle ───────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the camera in the current mode. A failure leaves the pipeline usable (upload still works)."""
        self._check_open()
        self.status.log(f"pipeline: start mode={self.mode}")
        await self.cameras.open(self.mode)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.cameras.shutdown()
        self.status.log("pipeline: closed")
        # in-flight engine calls are left to settle; their results are dropped
        if self._tasks:
            self.status.log(f"pipeline: waiting on {len(self._tasks)} recognition job(s)")
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("pipeline is closed")

    # ── image sources ───────────────────────────────────────────────────────

    async def trigger_capture(self) -> CanonicalImage:
        self._check_open()
        session = self.cameras.current
        if session is None or not session.is_open:
            session = await self.cameras.open(self.mode)
        frame = await asyncio.to_thread(session.stream.read_frame)
        if frame is None:
            raise DeviceBusy("camera delivered no frame")
        return self._accept_image(from_captured_frame(frame), f"capture ({session.mode})")

    async def trigger_upload(self, file_bytes: bytes, mime_type: str | None) -> CanonicalImage:
        self._check_open()
        image = await from_uploaded_file(file_bytes, mime_type)
        return self._accept_image(image, f"upload ({image.mime_type})")

    def _accept_image(self, image: CanonicalImage, source: str) -> CanonicalImage:
        self._check_open()
        self._image_seq += 1
        image = replace(image, seq=self._image_seq)
        prev = self._state
        if isinstance(prev, Recognizing):
            self.status.log(f"pipeline: job {prev.job.job_id} superseded by new image")
        self._transition(ImageReady(image=image))
        self.status.log(f"pipeline: image ready from {source} {image.width}x{image.height} {image.size}B")
        return image

    # ── camera ──────────────────────────────────────────────────────────────

    async def toggle_camera_mode(self) -> FacingMode:
        self._check_open()
        new_mode: FacingMode = FRONT if self.mode == REAR else REAR
        current = self.cameras.current
        if current is None:
            await self.cameras.open(new_mode)
        else:
            await self.cameras.switch_mode(current, new_mode)
        self.mode = new_mode
        self.status.log(f"pipeline: camera mode -> {new_mode}")
        return new_mode

    # ── recognition ─────────────────────────────────────────────────────────

    def _begin_recognize(self, language: str | None) -> RecognitionJob:
        self._check_open()
        state = self._state
        if isinstance(state, Idle):
            raise InvalidInput(NO_IMAGE_TEXT)
        if isinstance(state, Recognizing) or self.recognizer.busy:
            raise Busy("cannot start a second recognition while one is running")
        self._job_seq += 1
        job = RecognitionJob(job_id=self._job_seq, image=state.image, language=language or self.language)
        self._transition(Recognizing(image=job.image, job=job))
        self.status.log(f"pipeline: job {job.job_id} started")
        return job

    def _is_current(self, job: RecognitionJob) -> bool:
        state = self._state
        return not self._closed and isinstance(state, Recognizing) and state.job.job_id == job.job_id

    def _on_progress(self, job: RecognitionJob, event: ProgressEvent) -> None:
        if not self._is_current(job):
            return
        state = self._state
        updated = replace(state.job, phase=event.phase, progress=event.progress)
        self._transition(Recognizing(image=state.image, job=updated))
        self.status.log(f"ocr: {event.phase} {event.progress:.0%}")

    async def _run(self, job: RecognitionJob) -> Recognized | Failed:
        try:
            text = await self.recognizer.recognize(job.image, job.language, lambda ev: self._on_progress(job, ev))
            outcome: Recognized | Failed = Recognized(image=job.image, text=text)
        except RecognitionFailed as e:
            outcome = Failed(image=job.image, reason=f"{e.message} {e.detail}".strip())
        except asyncio.CancelledError:
            if self._is_current(job):
                self._transition(Failed(image=job.image, reason="recognition cancelled"))
            raise

        if self._is_current(job):
            self._transition(outcome)
            self.status.log(f"pipeline: job {job.job_id} -> {outcome.kind}")
        else:
            self.status.log(f"pipeline: job {job.job_id} settled after being superseded, result dropped")
        return outcome

    async def trigger_recognize(self, language: str | None = None) -> Recognized | Failed:
        """Run recognition on the current image and wait for it to settle.

        Raises InvalidInput without an image and Busy while a job is pending.
        An engine failure is not raised: it comes back (and lands in the
        state) as Failed.
        """
        job = self._begin_recognize(language)
        return await self._run(job)

    def start_recognize(self, language: str | None = None) -> asyncio.Task:
        """Like trigger_recognize, but returns once the job has started."""
        job = self._begin_recognize(language)
        task = asyncio.create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._reap)
        return task

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            e = task.exception()
            self.status.log(f"pipeline: recognition task error {type(e).__name__}: {e}")
