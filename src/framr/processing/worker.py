"""后台工作线程与消息类型。

控制线程与工作线程之间只通过消息通信：请求经 inbox 队列送入，
进度/结果/错误消息按图片 id 路由到对应的订阅队列。
每个订阅只服务一张图片，退出 ``with`` 块即注销。
"""

from __future__ import annotations

import logging
import queue
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Union

from framr.core.config import ProcessingConfig
from framr.core.exceptions import FramrError
from framr.processing.codec import PixelBuffer
from framr.processing.compositor import composite

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessRequest:
    """描述单张图片的处理请求，``pixels`` 的所有权随请求转移。"""

    image_id: str
    pixels: PixelBuffer = field(repr=False)
    config: ProcessingConfig
    filename: str


@dataclass(slots=True)
class ProgressMessage:
    image_id: str
    progress: int


@dataclass(slots=True)
class ResultMessage:
    image_id: str
    data: bytes = field(repr=False)
    filename: str


@dataclass(slots=True)
class ErrorMessage:
    image_id: str
    error: str


WorkerMessage = Union[ProgressMessage, ResultMessage, ErrorMessage]
Emit = Callable[[WorkerMessage], None]
RequestHandler = Callable[[ProcessRequest, Emit], None]


def handle_request(request: ProcessRequest, emit: Emit) -> None:
    """在工作线程中执行合成，所有结局都以消息形式返回。"""

    image_id = request.image_id

    def report(progress: int) -> None:
        emit(ProgressMessage(image_id=image_id, progress=progress))

    try:
        result = composite(request.pixels, request.config, request.filename, progress=report)
    except FramrError as exc:
        emit(ErrorMessage(image_id=image_id, error=str(exc)))
        return
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("处理 %s 时出现未预期的异常", request.filename)
        emit(ErrorMessage(image_id=image_id, error=str(exc) or "Unknown error occurred"))
        return
    finally:
        request.pixels.release()

    emit(ResultMessage(image_id=image_id, data=result.data, filename=result.filename))


class Subscription:
    """单张图片的消息订阅。"""

    def __init__(self, image_id: str) -> None:
        self.image_id = image_id
        self._messages: "queue.Queue[WorkerMessage]" = queue.Queue()

    def put(self, message: WorkerMessage) -> None:
        self._messages.put(message)

    def get(self, timeout: Optional[float] = None) -> Optional[WorkerMessage]:
        """等待下一条消息，超时返回 None。"""

        try:
            return self._messages.get(timeout=timeout)
        except queue.Empty:
            return None


class BackgroundWorker:
    """唯一的后台处理线程，一次只处理一个请求。"""

    _SHUTDOWN = object()

    def __init__(self, handler: RequestHandler = handle_request, name: str = "framr-worker") -> None:
        self._handler = handler
        self._inbox: "queue.Queue[object]" = queue.Queue()
        self._listeners: Dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()
        LOGGER.debug("后台线程已启动: %s", self._thread.name)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    @contextmanager
    def subscribe(self, image_id: str) -> Iterator[Subscription]:
        """注册 ``image_id`` 的订阅，退出时无论成功与否都会注销。"""

        subscription = Subscription(image_id)
        with self._lock:
            self._listeners[image_id] = subscription
        try:
            yield subscription
        finally:
            with self._lock:
                self._listeners.pop(image_id, None)

    def post(self, request: ProcessRequest) -> None:
        if not isinstance(request, ProcessRequest):
            raise TypeError(f"需要 ProcessRequest，实际为 {type(request).__name__}")
        self._inbox.put(request)

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """发送停止信号并等待线程退出（当前请求会先完成）。"""

        if not self._thread.is_alive():
            return
        self._inbox.put(self._SHUTDOWN)
        self._thread.join(timeout)
        if self._thread.is_alive():
            LOGGER.warning("后台线程未能在 %.1f 秒内退出", timeout or 0.0)

    def _run(self) -> None:
        while True:
            request = self._inbox.get()
            if request is self._SHUTDOWN:
                break
            self._handler(request, self._route)
        LOGGER.debug("后台线程退出: %s", self._thread.name)

    def _route(self, message: WorkerMessage) -> None:
        with self._lock:
            subscription = self._listeners.get(message.image_id)
        if subscription is None:
            LOGGER.debug("丢弃无订阅者的消息: %s", message)
            return
        subscription.put(message)
