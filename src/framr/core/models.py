"""核心数据模型定义。"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_FAILED = "failed"


def generate_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class Dimensions:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class BorderInsets:
    """四条边各自的边框厚度（像素）。"""

    top: int
    right: int
    bottom: int
    left: int

    @classmethod
    def uniform(cls, size: int) -> "BorderInsets":
        return cls(top=size, right=size, bottom=size, left=size)


@dataclass(slots=True)
class SourceImage:
    """队列中的一张源图片。

    ``data`` 为编码后的源字节，在处理开始前由队列条目独占；
    移除或清空队列时通过 :meth:`release` 立即释放。
    """

    name: str
    width: int
    height: int
    data: Optional[bytes] = field(default=None, repr=False)
    id: str = field(default_factory=generate_id)
    status: str = STATUS_PENDING
    output: Optional[bytes] = field(default=None, repr=False)
    error: Optional[str] = None

    def mark_processing(self) -> None:
        self.status = STATUS_PROCESSING
        self.error = None

    def mark_done(self, output: bytes) -> None:
        self.status = STATUS_DONE
        self.output = output
        self.error = None

    def mark_failed(self, message: str) -> None:
        self.status = STATUS_FAILED
        self.output = None
        self.error = message

    def reset(self) -> None:
        """恢复为待处理状态，保留源字节。"""

        self.status = STATUS_PENDING
        self.output = None
        self.error = None

    def release(self) -> None:
        """释放源字节与输出字节的引用。"""

        self.data = None
        self.output = None


@dataclass(slots=True)
class ProcessingResult:
    """单张图片的成功产出。"""

    image_id: str
    data: bytes = field(repr=False)
    filename: str


@dataclass(slots=True)
class BatchState:
    """一次批处理运行的状态，仅由编排器修改。"""

    running: bool = False
    current_index: int = 0
    total: int = 0
    progress: float = 0.0
    results: list[ProcessingResult] = field(default_factory=list)
    cancelled: bool = False
