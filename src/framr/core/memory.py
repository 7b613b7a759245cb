"""大图内存占用的粗略估算。

估算值 = 宽 × 高 × 4 字节 × 2（解码缓冲 + 工作副本），不区分格式。
结果只用于提示，不会阻止处理。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

LOGGER = logging.getLogger(__name__)

BYTES_PER_PIXEL = 4
WORKING_COPIES = 2
WARNING_THRESHOLD_BYTES = 500 * 1024 * 1024


class HasDimensions(Protocol):
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class MemoryWarning:
    """内存提示（非异常）。"""

    estimated_bytes: int
    threshold_bytes: int
    image_count: int

    @property
    def message(self) -> str:
        return (
            f"{self.image_count} 张图片预计占用约 {format_file_size(self.estimated_bytes)} 内存，"
            f"超过 {format_file_size(self.threshold_bytes)}，建议分批处理。"
        )


def estimate_footprint(images: Iterable[HasDimensions]) -> int:
    """累加队列中所有图片的预计内存占用（字节）。"""

    return sum(img.width * img.height * BYTES_PER_PIXEL * WORKING_COPIES for img in images)


def exceeds_warning_threshold(images: Iterable[HasDimensions]) -> bool:
    return estimate_footprint(images) > WARNING_THRESHOLD_BYTES


def check_memory(images: Iterable[HasDimensions], log: bool = True) -> Optional[MemoryWarning]:
    """超过阈值时返回 :class:`MemoryWarning`，``log`` 为真时记录警告日志。"""

    images = list(images)
    estimated = estimate_footprint(images)
    if estimated <= WARNING_THRESHOLD_BYTES:
        return None

    warning = MemoryWarning(
        estimated_bytes=estimated,
        threshold_bytes=WARNING_THRESHOLD_BYTES,
        image_count=len(images),
    )
    if log:
        LOGGER.warning(warning.message)
    return warning


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"
