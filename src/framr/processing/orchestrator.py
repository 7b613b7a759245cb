"""批处理编排：顺序派发、进度汇总与协作式取消。"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Sequence

from framr.core.config import ProcessingConfig
from framr.core.exceptions import DecodeFailedError, WorkerCrashedError
from framr.core.geometry import plan_geometry
from framr.core.models import BatchState, ProcessingResult, SourceImage
from framr.core.progress import ProgressUpdate
from framr.processing.codec import DecodedImage, decode_image
from framr.processing.compositor import validate_config
from framr.processing.worker import (
    BackgroundWorker,
    ErrorMessage,
    ProcessRequest,
    ProgressMessage,
    ResultMessage,
)

LOGGER = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
ItemDoneCallback = Optional[Callable[[str, ProcessingResult], None]]
ItemErrorCallback = Optional[Callable[[str, str], None]]
Decoder = Callable[[bytes], DecodedImage]
WorkerFactory = Callable[[], BackgroundWorker]


class BatchOrchestrator:
    """按提交顺序逐张处理图片。

    同一时刻只有一张图片在后台线程中处理；取消只在两张图片之间生效，
    正在处理的图片会先完成（或失败）。单张失败不会中断整个批次。
    """

    def __init__(
        self,
        *,
        progress_callback: ProgressCallback = None,
        decoder: Decoder = decode_image,
        worker_factory: WorkerFactory = BackgroundWorker,
        poll_interval: float = 0.1,
    ) -> None:
        self.state = BatchState()
        self._progress_callback = progress_callback
        self._decoder = decoder
        self._worker_factory = worker_factory
        self._poll_interval = poll_interval
        self._cancel_event = threading.Event()
        self._worker: Optional[BackgroundWorker] = None

    def __enter__(self) -> "BatchOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_running(self) -> bool:
        return self.state.running

    def cancel(self) -> None:
        """请求取消，在下一张图片开始前生效。"""

        if self.state.running:
            LOGGER.info("收到取消请求，当前图片完成后停止")
        self._cancel_event.set()
        self.state.cancelled = True

    def close(self) -> None:
        """关闭后台线程，之后的 run 会重新创建。"""

        if self._worker is not None:
            self._worker.shutdown()
            self._worker = None

    def run(
        self,
        items: Sequence[SourceImage],
        config: ProcessingConfig,
        on_item_done: ItemDoneCallback = None,
        on_item_error: ItemErrorCallback = None,
    ) -> list[ProcessingResult]:
        """处理 ``items`` 并返回成功结果（按提交顺序）。

        配置错误（含非正输出尺寸）在派发任何图片之前抛出。
        """

        if not items:
            return []

        validate_config(config)
        for item in items:
            plan_geometry(item.width, item.height, config)

        total = len(items)
        self._cancel_event.clear()
        self.state = BatchState(running=True, current_index=0, total=total)
        results = self.state.results
        attempted = 0
        LOGGER.info("开始处理 %d 张图片", total)

        try:
            for index, item in enumerate(items):
                if self._cancel_event.is_set():
                    LOGGER.info("批处理已取消，剩余 %d 张未处理", total - index)
                    break

                self.state.current_index = index
                attempted = index + 1
                self._set_progress(index / total * 100, index, f"开始 {item.name}")

                try:
                    result = self._process_item(item, index, total, config)
                except (DecodeFailedError, WorkerCrashedError) as exc:
                    self._fail(item, str(exc), on_item_error)
                    continue

                if isinstance(result, ErrorMessage):
                    self._fail(item, result.error, on_item_error)
                    continue

                processed = ProcessingResult(image_id=item.id, data=result.data, filename=result.filename)
                results.append(processed)
                item.mark_done(processed.data)
                LOGGER.info("完成 %s -> %s", item.name, processed.filename)
                if on_item_done is not None:
                    on_item_done(item.id, processed)
        finally:
            self.state.running = False
            self.state.cancelled = self._cancel_event.is_set()
            self._set_progress(100.0, attempted, "处理完成", status="done")

        LOGGER.info("批处理结束：成功 %d 张，共 %d 张", len(results), total)
        return list(results)

    def _process_item(
        self,
        item: SourceImage,
        index: int,
        total: int,
        config: ProcessingConfig,
    ) -> ResultMessage | ErrorMessage:
        item.mark_processing()
        if item.data is None:
            raise DecodeFailedError(f"源数据已释放: {item.name}")

        decoded = self._decoder(item.data)
        worker = self._ensure_worker()

        with worker.subscribe(item.id) as subscription:
            worker.post(
                ProcessRequest(
                    image_id=item.id,
                    pixels=decoded.pixels.transfer(),
                    config=config,
                    filename=item.name,
                )
            )
            while True:
                message = subscription.get(timeout=self._poll_interval)
                if message is None:
                    if worker.is_alive():
                        continue
                    # 线程退出前发出的消息仍可能在队列里
                    message = subscription.get(timeout=0)
                    if message is None:
                        self._worker = None
                        raise WorkerCrashedError(f"后台线程在处理 {item.name} 时退出")
                if isinstance(message, ProgressMessage):
                    percent = (index + message.progress / 100) / total * 100
                    self._set_progress(percent, index)
                    continue
                return message

    def _ensure_worker(self) -> BackgroundWorker:
        if self._worker is None or not self._worker.is_alive():
            if self._worker is not None:
                LOGGER.warning("后台线程已退出，重新创建")
            self._worker = self._worker_factory()
            self._worker.start()
        return self._worker

    def _fail(self, item: SourceImage, message: str, on_item_error: ItemErrorCallback) -> None:
        item.mark_failed(message)
        LOGGER.info("处理失败 %s: %s", item.name, message)
        if on_item_error is not None:
            on_item_error(item.id, message)

    def _set_progress(
        self,
        percent: float,
        completed: int,
        message: Optional[str] = None,
        status: str = "running",
    ) -> None:
        self.state.progress = percent
        if self._progress_callback is None:
            return
        self._progress_callback(
            ProgressUpdate(
                total=self.state.total,
                completed=completed,
                percent=percent,
                current_index=self.state.current_index,
                message=message,
                status=status,
            )
        )
