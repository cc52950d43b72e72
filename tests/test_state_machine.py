"""Unit tests for ScanPipeline transitions."""

import asyncio

import pytest

from scanabg.adapters.camera.mock_camera import MockCamera
from scanabg.adapters.ocr.mock_ocr import MockOcr
from scanabg.orchestrator.contracts import Failed, Idle, ImageReady, Recognized, Recognizing
from scanabg.orchestrator.errors import Busy, DeviceUnavailable, InvalidInput, PermissionDenied
from scanabg.orchestrator.state_machine import ScanPipeline


class TestImageSources:

    @pytest.mark.asyncio
    async def test_starts_idle(self, pipeline):
        assert isinstance(pipeline.state, Idle)

    @pytest.mark.asyncio
    async def test_upload_makes_image_ready(self, pipeline, png_bytes):
        image = await pipeline.trigger_upload(png_bytes, "image/png")

        assert isinstance(pipeline.state, ImageReady)
        assert pipeline.state.image is image

    @pytest.mark.asyncio
    async def test_bad_upload_keeps_state(self, pipeline, png_bytes):
        await pipeline.trigger_upload(png_bytes, "image/png")
        before = pipeline.state

        with pytest.raises(InvalidInput):
            await pipeline.trigger_upload(b"hello", "text/plain")
        assert pipeline.state is before

    @pytest.mark.asyncio
    async def test_capture_opens_camera_lazily(self, pipeline, camera):
        image = await pipeline.trigger_capture()

        assert isinstance(pipeline.state, ImageReady)
        assert (image.width, image.height) == (camera.width, camera.height)
        assert pipeline.cameras.current.is_live

    @pytest.mark.asyncio
    async def test_capture_without_permission_stays_idle(self, status, engine):
        camera = MockCamera(status, failures={"rear": PermissionDenied("camera access refused")})
        pipeline = ScanPipeline(camera, engine, status)

        with pytest.raises(PermissionDenied):
            await pipeline.trigger_capture()
        assert isinstance(pipeline.state, Idle)
        await pipeline.aclose()

    @pytest.mark.asyncio
    async def test_each_new_image_gets_a_higher_seq(self, pipeline, png_bytes):
        first = await pipeline.trigger_upload(png_bytes, "image/png")
        second = await pipeline.trigger_upload(png_bytes, "image/png")
        captured = await pipeline.trigger_capture()

        assert (first.width, first.height, first.size) == (second.width, second.height, second.size)
        assert 0 < first.seq < second.seq < captured.seq
        assert pipeline.state.image.seq == captured.seq

    @pytest.mark.asyncio
    async def test_latest_image_wins(self, pipeline, png_bytes):
        await pipeline.trigger_upload(png_bytes, "image/png")
        await pipeline.trigger_recognize()
        captured = await pipeline.trigger_capture()

        assert isinstance(pipeline.state, ImageReady)
        assert pipeline.state.image is captured


class TestRecognition:

    @pytest.mark.asyncio
    async def test_upload_then_recognize(self, pipeline, png_bytes):
        image = await pipeline.trigger_upload(png_bytes, "image/png")
        outcome = await pipeline.trigger_recognize()

        assert isinstance(outcome, Recognized)
        assert pipeline.state is outcome
        assert pipeline.state.image is image
        assert "AB" in outcome.text and "7.40" in outcome.text

    @pytest.mark.asyncio
    async def test_recognize_without_image_never_reaches_engine(self, pipeline, engine):
        with pytest.raises(InvalidInput, match="capture or upload an image first"):
            await pipeline.trigger_recognize()

        assert engine.calls == []
        assert isinstance(pipeline.state, Idle)

    @pytest.mark.asyncio
    async def test_default_and_explicit_language(self, pipeline, engine, png_bytes):
        await pipeline.trigger_upload(png_bytes, "image/png")
        await pipeline.trigger_recognize()
        await pipeline.trigger_recognize("deu")

        assert [lang for _, lang in engine.calls] == ["eng", "deu"]

    @pytest.mark.asyncio
    async def test_double_trigger_yields_one_busy(self, pipeline, engine, png_bytes):
        await pipeline.trigger_upload(png_bytes, "image/png")

        results = await asyncio.gather(
            pipeline.trigger_recognize(),
            pipeline.trigger_recognize(),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Busy) for r in results) == 1
        assert sum(isinstance(r, Recognized) for r in results) == 1
        assert len(engine.calls) == 1

    @pytest.mark.asyncio
    async def test_progress_is_ordered_and_precedes_terminal(self, pipeline, png_bytes):
        seen = []
        pipeline.subscribe(seen.append)
        await pipeline.trigger_upload(png_bytes, "image/png")
        await pipeline.trigger_recognize()

        kinds = [s.kind for s in seen]
        assert kinds[0] == "image_ready"
        assert kinds[-1] == "recognized"
        assert "recognized" not in kinds[:-1]
        progress = [s.job.progress for s in seen if isinstance(s, Recognizing)]
        assert progress == sorted(progress)
        assert progress[-1] == 1.0
        phases = [s.job.phase for s in seen if isinstance(s, Recognizing) and s.job.phase]
        assert phases[0] == "loading tesseract core"

    @pytest.mark.asyncio
    async def test_failure_is_a_state_and_retry_works(self, pipeline, engine, png_bytes):
        image = await pipeline.trigger_upload(png_bytes, "image/png")
        engine.fail = "engine crashed"

        outcome = await pipeline.trigger_recognize()

        assert isinstance(outcome, Failed)
        assert pipeline.state is outcome
        assert "Failed to extract text." in outcome.reason
        assert "engine crashed" in outcome.reason

        engine.fail = None
        retry = await pipeline.trigger_recognize()
        assert isinstance(retry, Recognized)
        assert retry.image is image

    @pytest.mark.asyncio
    async def test_empty_text_is_recognized(self, status, camera, png_bytes):
        pipeline = ScanPipeline(camera, MockOcr(status, text=""), status)
        await pipeline.trigger_upload(png_bytes, "image/png")

        outcome = await pipeline.trigger_recognize()

        assert isinstance(outcome, Recognized)
        assert outcome.text == ""
        await pipeline.aclose()


class TestSupersededJobs:

    @pytest.mark.asyncio
    async def test_new_capture_beats_stale_result(self, status, camera, png_bytes):
        gate = asyncio.Event()
        pipeline = ScanPipeline(camera, MockOcr(status, text="old", gate=gate), status)
        await pipeline.trigger_upload(png_bytes, "image/png")

        task = pipeline.start_recognize()
        assert isinstance(pipeline.state, Recognizing)
        captured = await pipeline.trigger_capture()

        gate.set()
        outcome = await task

        assert isinstance(outcome, Recognized)
        assert isinstance(pipeline.state, ImageReady)
        assert pipeline.state.image is captured
        await pipeline.aclose()

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_overwrite(self, status, camera, png_bytes):
        gate = asyncio.Event()
        pipeline = ScanPipeline(camera, MockOcr(status, fail="boom", gate=gate), status)
        await pipeline.trigger_upload(png_bytes, "image/png")

        task = pipeline.start_recognize()
        second = await pipeline.trigger_upload(png_bytes, "image/png")
        gate.set()
        await task

        assert isinstance(pipeline.state, ImageReady)
        assert pipeline.state.image is second
        await pipeline.aclose()

    @pytest.mark.asyncio
    async def test_new_image_waits_for_pending_engine(self, status, camera, png_bytes):
        gate = asyncio.Event()
        pipeline = ScanPipeline(camera, MockOcr(status, text="t", gate=gate), status)
        await pipeline.trigger_upload(png_bytes, "image/png")
        task = pipeline.start_recognize()
        await asyncio.sleep(0)
        await pipeline.trigger_upload(png_bytes, "image/png")

        with pytest.raises(Busy):
            await pipeline.trigger_recognize()

        gate.set()
        await task
        assert isinstance(await pipeline.trigger_recognize(), Recognized)
        await pipeline.aclose()

    @pytest.mark.asyncio
    async def test_result_after_close_is_dropped(self, status, camera, png_bytes):
        gate = asyncio.Event()
        pipeline = ScanPipeline(camera, MockOcr(status, text="late", gate=gate), status)
        await pipeline.trigger_upload(png_bytes, "image/png")
        task = pipeline.start_recognize()
        await asyncio.sleep(0)

        closing = asyncio.create_task(pipeline.aclose())
        await asyncio.sleep(0)
        assert pipeline.closed
        assert not closing.done()

        gate.set()
        await closing

        assert task.done()
        assert not isinstance(pipeline.state, Recognized)
        assert pipeline._tasks == set()


class TestCameraMode:

    @pytest.mark.asyncio
    async def test_toggle_swaps_streams(self, pipeline, camera):
        await pipeline.start()
        rear = pipeline.cameras.current

        assert await pipeline.toggle_camera_mode() == "front"
        assert pipeline.mode == "front"
        assert rear.stream.stop_count == 1
        assert [s.mode for s in camera.live_streams()] == ["front"]

        assert await pipeline.toggle_camera_mode() == "rear"
        assert [s.mode for s in camera.live_streams()] == ["rear"]

    @pytest.mark.asyncio
    async def test_failed_toggle_keeps_camera(self, pipeline, camera):
        await pipeline.start()
        rear = pipeline.cameras.current
        camera.failures["front"] = DeviceUnavailable("no front camera")

        with pytest.raises(DeviceUnavailable):
            await pipeline.toggle_camera_mode()

        assert pipeline.mode == "rear"
        assert pipeline.cameras.current is rear
        assert rear.is_live

    @pytest.mark.asyncio
    async def test_toggle_does_not_touch_image(self, pipeline, png_bytes):
        await pipeline.trigger_upload(png_bytes, "image/png")
        before = pipeline.state

        await pipeline.toggle_camera_mode()

        assert pipeline.state is before


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_close_releases_camera_once(self, status, camera, engine):
        async with ScanPipeline(camera, engine, status) as pipeline:
            stream = pipeline.cameras.current.stream
            assert stream.is_live

        await pipeline.aclose()
        assert stream.stop_count == 1
        assert camera.live_streams() == []

    @pytest.mark.asyncio
    async def test_closed_pipeline_rejects_triggers(self, pipeline, png_bytes):
        await pipeline.aclose()
        with pytest.raises(RuntimeError):
            await pipeline.trigger_upload(png_bytes, "image/png")

    @pytest.mark.asyncio
    async def test_close_waits_for_background_job(self, status, camera, png_bytes):
        gate = asyncio.Event()
        pipeline = ScanPipeline(camera, MockOcr(status, text="t", gate=gate), status)
        await pipeline.start()
        await pipeline.trigger_upload(png_bytes, "image/png")
        task = pipeline.start_recognize()
        await asyncio.sleep(0)

        closing = asyncio.create_task(pipeline.aclose())
        await asyncio.sleep(0)
        assert camera.live_streams() == []

        gate.set()
        await asyncio.wait_for(closing, timeout=1.0)
        assert task.done() and not task.cancelled()
        assert "pipeline: waiting on 1 recognition job(s)" in status.logs

    @pytest.mark.asyncio
    async def test_background_job_error_is_logged(self, pipeline, status, png_bytes):
        def explode(state):
            if state.kind == "recognized":
                raise RuntimeError("listener blew up")

        pipeline.subscribe(explode)
        await pipeline.trigger_upload(png_bytes, "image/png")
        task = pipeline.start_recognize()

        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert any("recognition task error RuntimeError: listener blew up" in line for line in status.logs)
        assert pipeline._tasks == set()
