"""批处理编排：部分失败、取消、进度与后台线程管理。"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from framr.core.config import UNIT_PIXELS, BorderSpec, OutputSpec, ProcessingConfig, ResizeSpec
from framr.core.exceptions import InvalidConfigurationError, InvalidGeometryError
from framr.core.models import STATUS_DONE, STATUS_FAILED, STATUS_PENDING, ProcessingResult, SourceImage
from framr.core.progress import ProgressUpdate
from framr.processing.codec import DecodedImage, decode_image
from framr.processing.orchestrator import BatchOrchestrator
from framr.processing.worker import BackgroundWorker, ErrorMessage, handle_request


def _png(color: str = "gray", size: tuple[int, int] = (16, 12)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def _item(name: str, color: str = "gray") -> SourceImage:
    return SourceImage(name=name, width=16, height=12, data=_png(color))


def _config() -> ProcessingConfig:
    return ProcessingConfig(
        border=BorderSpec(width=2, unit=UNIT_PIXELS, color="#000000"),
        output=OutputSpec(format="png"),
    )


class CountingDecoder:
    def __init__(self) -> None:
        self.calls: list[bytes] = []
        self.decoded: list[DecodedImage] = []

    def __call__(self, data: bytes) -> DecodedImage:
        self.calls.append(data)
        decoded = decode_image(data)
        self.decoded.append(decoded)
        return decoded


class WorkerRecorder:
    def __init__(self, handler=handle_request) -> None:
        self.handler = handler
        self.workers: list[BackgroundWorker] = []

    def __call__(self) -> BackgroundWorker:
        worker = BackgroundWorker(handler=self.handler)
        self.workers.append(worker)
        return worker


def test_results_follow_submission_order() -> None:
    items = [_item(f"img{i}.png") for i in range(3)]

    with BatchOrchestrator() as orchestrator:
        results = orchestrator.run(items, _config())

    assert [r.image_id for r in results] == [item.id for item in items]
    assert [r.filename for r in results] == ["img0_bordered.png", "img1_bordered.png", "img2_bordered.png"]
    assert all(item.status == STATUS_DONE for item in items)
    assert all(item.output == result.data for item, result in zip(items, results))
    with Image.open(io.BytesIO(results[0].data)) as img:
        assert img.size == (20, 16)


def test_failed_item_does_not_abort_batch() -> None:
    items = [_item(f"img{i}.png") for i in range(4)]
    items[2].data = b"not an image"
    done: list[str] = []
    errors: list[tuple[str, str]] = []

    with BatchOrchestrator() as orchestrator:
        results = orchestrator.run(
            items,
            _config(),
            on_item_done=lambda image_id, result: done.append(image_id),
            on_item_error=lambda image_id, message: errors.append((image_id, message)),
        )

    assert len(results) == 3
    assert done == [items[0].id, items[1].id, items[3].id]
    assert len(errors) == 1 and errors[0][0] == items[2].id
    assert items[2].status == STATUS_FAILED
    assert items[2].error and items[2].output is None
    assert orchestrator.is_running is False


def test_oversized_image_fails_alone(monkeypatch: pytest.MonkeyPatch) -> None:
    # 超过 2 倍像素上限时 Pillow 抛出 DecompressionBombError
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    items = [
        SourceImage(name="small.png", width=8, height=8, data=_png(size=(8, 8))),
        SourceImage(name="huge.png", width=30, height=30, data=_png(size=(30, 30))),
        SourceImage(name="after.png", width=8, height=8, data=_png(size=(8, 8))),
    ]
    errors: list[str] = []

    with BatchOrchestrator() as orchestrator:
        results = orchestrator.run(items, _config(), on_item_error=lambda image_id, _msg: errors.append(image_id))

    assert [r.filename for r in results] == ["small_bordered.png", "after_bordered.png"]
    assert errors == [items[1].id]
    assert [item.status for item in items] == [STATUS_DONE, STATUS_FAILED, STATUS_DONE]


def test_worker_error_message_marks_item_failed() -> None:
    def handler(request, emit) -> None:
        if request.filename == "bad.png":
            emit(ErrorMessage(image_id=request.image_id, error="Failed to create image blob"))
            return
        handle_request(request, emit)

    items = [_item("good.png"), _item("bad.png"), _item("also_good.png")]
    errors: list[str] = []

    with BatchOrchestrator(worker_factory=WorkerRecorder(handler)) as orchestrator:
        results = orchestrator.run(items, _config(), on_item_error=lambda _id, msg: errors.append(msg))

    assert [r.filename for r in results] == ["good_bordered.png", "also_good_bordered.png"]
    assert errors == ["Failed to create image blob"]


def test_cancel_takes_effect_at_next_item_boundary() -> None:
    items = [_item(f"img{i}.png") for i in range(5)]
    decoder = CountingDecoder()
    orchestrator = BatchOrchestrator(decoder=decoder)
    completed: list[ProcessingResult] = []

    def on_done(image_id: str, result: ProcessingResult) -> None:
        completed.append(result)
        if len(completed) == 2:
            orchestrator.cancel()

    with orchestrator:
        results = orchestrator.run(items, _config(), on_item_done=on_done)

    assert len(results) == 2
    assert len(decoder.calls) == 2
    assert [item.status for item in items[2:]] == [STATUS_PENDING] * 3
    assert orchestrator.state.cancelled
    assert orchestrator.state.progress == 100
    assert not orchestrator.state.running


def test_orchestrator_is_reusable_after_cancel() -> None:
    items = [_item("a.png"), _item("b.png")]
    orchestrator = BatchOrchestrator()

    with orchestrator:
        orchestrator.run(items, _config(), on_item_done=lambda *_: orchestrator.cancel())
        remaining = [item for item in items if item.status == STATUS_PENDING]
        results = orchestrator.run(remaining, _config())

    assert [r.image_id for r in results] == [items[1].id]
    assert not orchestrator.state.cancelled


def test_pixel_buffer_is_transferred_to_worker() -> None:
    decoder = CountingDecoder()

    with BatchOrchestrator(decoder=decoder) as orchestrator:
        orchestrator.run([_item("a.png")], _config())

    assert decoder.decoded[0].pixels.detached


def test_subscriptions_are_released_after_each_item() -> None:
    recorder = WorkerRecorder()
    items = [_item(f"img{i}.png") for i in range(6)]
    items[3].data = b"broken"

    with BatchOrchestrator(worker_factory=recorder) as orchestrator:
        orchestrator.run(items, _config())
        orchestrator.run([_item("again.png")], _config())

    assert len(recorder.workers) == 1
    assert recorder.workers[0].listener_count == 0


def test_dead_worker_fails_item_and_is_recreated() -> None:
    crashed: list[str] = []

    def handler(request, emit) -> None:
        if not crashed:
            crashed.append(request.filename)
            raise SystemExit
        handle_request(request, emit)

    recorder = WorkerRecorder(handler)
    items = [_item("first.png"), _item("second.png")]
    errors: list[str] = []

    with BatchOrchestrator(worker_factory=recorder, poll_interval=0.01) as orchestrator:
        results = orchestrator.run(items, _config(), on_item_error=lambda image_id, msg: errors.append(image_id))

    assert errors == [items[0].id]
    assert [r.image_id for r in results] == [items[1].id]
    assert len(recorder.workers) == 2


def test_progress_is_monotonic_and_ends_at_100() -> None:
    updates: list[ProgressUpdate] = []
    items = [_item(f"img{i}.png") for i in range(3)]

    with BatchOrchestrator(progress_callback=updates.append) as orchestrator:
        orchestrator.run(items, _config())

    percents = [u.percent for u in updates]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert updates[-1].status == "done"
    assert updates[-1].completed == 3
    assert all(u.total == 3 for u in updates)
    # 每张图片内部的进度被折算进整体进度
    assert any(0 < p < 100 / 3 for p in percents)


def test_empty_batch_is_a_no_op() -> None:
    updates: list[ProgressUpdate] = []

    with BatchOrchestrator(progress_callback=updates.append) as orchestrator:
        assert orchestrator.run([], _config()) == []

    assert updates == []
    assert orchestrator.state.total == 0


def test_invalid_geometry_is_raised_before_dispatch() -> None:
    decoder = CountingDecoder()
    config = _config()
    config.resize = ResizeSpec(enabled=True, width=0, maintain_aspect=False)
    items = [_item("a.png")]

    with BatchOrchestrator(decoder=decoder) as orchestrator:
        with pytest.raises(InvalidGeometryError):
            orchestrator.run(items, config)

    assert decoder.calls == []
    assert items[0].status == STATUS_PENDING
    assert not orchestrator.is_running


def test_invalid_color_is_raised_before_dispatch() -> None:
    decoder = CountingDecoder()
    config = _config()
    config.border.color = "#12"

    with BatchOrchestrator(decoder=decoder) as orchestrator:
        with pytest.raises(InvalidConfigurationError):
            orchestrator.run([_item("a.png")], config)

    assert decoder.calls == []


def test_worker_rejects_unknown_requests() -> None:
    worker = BackgroundWorker()

    with pytest.raises(TypeError):
        worker.post(object())  # type: ignore[arg-type]
