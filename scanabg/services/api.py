import asyncio
import os
from contextlib import asynccontextmanager, suppress

import cv2
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from scanabg.orchestrator import errors
from scanabg.orchestrator.contracts import Failed, ImageReady, PipelineState, Recognized, Recognizing
from scanabg.orchestrator.errors import PipelineError
from scanabg.orchestrator.image_source import decode_data_url
from scanabg.orchestrator.state_machine import ScanPipeline
from scanabg.services.models import (
    ActionResponse, CameraOut, ImageOut, JobOut, RecognizeRequest, StateOut,
    StatusResponse, ToggleResponse, UploadRequest,
)
from scanabg.services.status_store import StatusStore

load_dotenv(dotenv_path="scanabg/.env", override=False)


def build_camera(status: StatusStore):
    # Values: cv2 | mock  (default: cv2)
    adapter = os.getenv("CAMERA_ADAPTER", "cv2").lower()
    if adapter == "mock":
        from scanabg.adapters.camera.mock_camera import MockCamera
        camera = MockCamera(status)
    else:
        from scanabg.adapters.camera.cv2_camera import CV2Camera
        camera = CV2Camera(status)
    status.log(f"camera adapter: {type(camera).__name__}")
    return camera


def build_engine(status: StatusStore):
    # Values: tesseract | mock  (default: tesseract)
    adapter = os.getenv("OCR_ADAPTER", "tesseract").lower()
    if adapter == "mock":
        from scanabg.adapters.ocr.mock_ocr import MockOcr
        engine = MockOcr(status, text=os.getenv("MOCK_OCR_TEXT", ""))
    else:
        from scanabg.adapters.ocr.tesseract_ocr import TesseractOcr
        engine = TesseractOcr(status)
    status.log(f"ocr adapter: {type(engine).__name__}")
    return engine


def build_pipeline(status: StatusStore) -> ScanPipeline:
    return ScanPipeline(
        camera=build_camera(status),
        engine=build_engine(status),
        status_store=status,
        language=os.getenv("OCR_LANG", "eng"),
    )


def state_out(state: PipelineState) -> StateOut:
    out = StateOut(kind=state.kind)
    if isinstance(state, (ImageReady, Recognizing, Recognized, Failed)):
        img = state.image
        out.image = ImageOut(mime_type=img.mime_type, width=img.width, height=img.height,
                             size=img.size, seq=img.seq)
    if isinstance(state, Recognizing):
        job = state.job
        out.job = JobOut(job_id=job.job_id, language=job.language, phase=job.phase, progress=job.progress)
    elif isinstance(state, Recognized):
        out.text = state.text
    elif isinstance(state, Failed):
        out.reason = state.reason
    return out


def create_app(pipeline: ScanPipeline | None = None, status: StatusStore | None = None,
               autostart: bool | None = None) -> FastAPI:
    status = status or (pipeline.status if pipeline is not None else StatusStore())
    pipeline = pipeline or build_pipeline(status)
    if autostart is None:
        autostart = os.getenv("CAMERA_AUTOSTART", "1") not in ("0", "false", "no")

    async def _autostart():
        try:
            await pipeline.start()
        except PipelineError as e:
            # upload + recognize still work without a camera
            status.set_error(e.code, e.message)
            status.log(f"startup: camera unavailable: {e.code} {e.message}")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # serve right away; an acquisition still waiting shows up as camera.pending
        camera_start = asyncio.create_task(_autostart()) if autostart else None
        _app.state.camera_start = camera_start
        yield
        if camera_start is not None:
            camera_start.cancel()
            with suppress(asyncio.CancelledError):
                await camera_start
        await pipeline.aclose()

    app = FastAPI(title="scanabg", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.status = status

    def ok(action: str) -> ActionResponse:
        status.last_action = action
        status.clear_error()
        return ActionResponse(ok=True, state=state_out(pipeline.state))

    def fail(action: str, code: str, message: str) -> ActionResponse:
        status.last_action = action
        status.set_error(code, message)
        status.log(f"{action.upper()}: error {code}: {message}")
        return ActionResponse(ok=False, error_code=code, error=message, state=state_out(pipeline.state))

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        session = pipeline.cameras.current
        camera = CameraOut(
            mode=pipeline.mode,
            open=session is not None and session.is_live,
            pending=pipeline.cameras.pending,
            width=session.width if session is not None else None,
            height=session.height if session is not None else None,
        )
        return StatusResponse(
            state=state_out(pipeline.state),
            camera=camera,
            last_action=status.last_action,
            last_error_code=status.last_error_code,
            last_error=status.last_error,
            logs=status.logs,
        )

    @app.get("/image")
    def get_image():
        """Preview of the current image, exactly as it will be recognized."""
        image = getattr(pipeline.state, "image", None)
        if image is None:
            raise HTTPException(status_code=404, detail="no image captured or uploaded")
        return Response(content=image.data, media_type=image.mime_type)

    @app.get("/camera/frame")
    async def camera_frame():
        """Live JPEG snapshot of the open stream; the page polls this as its preview."""
        session = pipeline.cameras.current
        if session is None or not session.is_live:
            raise HTTPException(status_code=503, detail="camera not open")
        frame = await asyncio.to_thread(session.stream.read_frame)
        if frame is None:
            raise HTTPException(status_code=503, detail="no frame")
        ok_, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 85])
        if not ok_:
            raise HTTPException(status_code=500, detail="jpeg encode failed")
        return Response(content=bytes(buf), media_type="image/jpeg")

    @app.post("/capture", response_model=ActionResponse)
    async def capture():
        status.log("CAPTURE")
        try:
            await pipeline.trigger_capture()
        except PipelineError as e:
            return fail("capture", e.code, e.message)
        except Exception as e:
            return fail("capture", errors.ERR_UNKNOWN, f"{type(e).__name__}: {e}")
        return ok("capture")

    @app.post("/upload", response_model=ActionResponse)
    async def upload(req: UploadRequest):
        status.log("UPLOAD")
        try:
            data, url_mime = decode_data_url(req.image)
            await pipeline.trigger_upload(data, req.mime_type or url_mime)
        except PipelineError as e:
            return fail("upload", e.code, e.message)
        return ok("upload")

    @app.post("/camera/toggle", response_model=ToggleResponse)
    async def toggle_camera():
        status.log(f"TOGGLE camera from {pipeline.mode}")
        try:
            await pipeline.toggle_camera_mode()
        except PipelineError as e:
            r = fail("toggle", e.code, e.message)
            return ToggleResponse(mode=pipeline.mode, **r.model_dump())
        r = ok("toggle")
        return ToggleResponse(mode=pipeline.mode, **r.model_dump())

    @app.post("/recognize", response_model=ActionResponse)
    async def recognize(req: RecognizeRequest | None = None):
        req = req or RecognizeRequest()
        status.log(f"RECOGNIZE lang={req.language or pipeline.language} wait={req.wait}")
        try:
            if req.wait:
                await pipeline.trigger_recognize(req.language)
            else:
                pipeline.start_recognize(req.language)
        except PipelineError as e:
            return fail("recognize", e.code, e.message)
        # a Failed state is a result, not an action error
        return ok("recognize")

    @app.get("/health")
    def health():
        session = pipeline.cameras.current
        checks = {
            "api": True,
            "camera_adapter": type(pipeline.camera).__name__,
            "camera_open": session is not None and session.is_live,
            "ocr_adapter": type(pipeline.engine).__name__,
            "ocr_ready": pipeline.engine.available(),
        }
        checks["all_ok"] = checks["api"] and checks["ocr_ready"]
        return checks

    return app


app = create_app()
