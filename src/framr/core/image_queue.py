"""待处理图片队列。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from framr.core.memory import MemoryWarning, check_memory
from framr.core.models import STATUS_PENDING, STATUS_PROCESSING, SourceImage
from framr.processing.codec import probe_dimensions

LOGGER = logging.getLogger(__name__)


class ImageQueue:
    """按加入顺序保存 :class:`SourceImage`，并在变化时刷新内存提示。"""

    def __init__(self) -> None:
        self._items: list[SourceImage] = []
        self.memory_warning: Optional[MemoryWarning] = None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[SourceImage]:
        return iter(self._items)

    def get(self, image_id: str) -> Optional[SourceImage]:
        for item in self._items:
            if item.id == image_id:
                return item
        return None

    def add_bytes(self, name: str, data: bytes) -> SourceImage:
        """探测尺寸后加入队列，无法识别时抛出 DecodeFailedError。"""

        width, height = probe_dimensions(data)
        item = SourceImage(name=name, width=width, height=height, data=data)
        self._items.append(item)
        self._refresh_memory_warning()
        LOGGER.debug("加入队列 %s (%dx%d)", name, width, height)
        return item

    def add_path(self, path: Path) -> SourceImage:
        return self.add_bytes(path.name, path.read_bytes())

    def remove(self, image_id: str) -> bool:
        """移除并立即释放该条目持有的字节。"""

        item = self.get(image_id)
        if item is None:
            return False
        item.release()
        self._items.remove(item)
        self._refresh_memory_warning()
        return True

    def clear(self) -> None:
        for item in self._items:
            item.release()
        self._items.clear()
        self.memory_warning = None

    def pending(self) -> list[SourceImage]:
        return [item for item in self._items if item.status == STATUS_PENDING]

    def begin_run(self) -> list[SourceImage]:
        """把所有待处理条目标记为 processing 并返回它们。"""

        batch = self.pending()
        for item in batch:
            item.mark_processing()
        return batch

    def revert_processing(self) -> int:
        """取消后把仍处于 processing 的条目恢复为 pending，返回恢复数量。"""

        reverted = 0
        for item in self._items:
            if item.status == STATUS_PROCESSING:
                item.reset()
                reverted += 1
        return reverted

    def _refresh_memory_warning(self) -> None:
        # 只在从无提示变为有提示时记录日志
        self.memory_warning = check_memory(self._items, log=self.memory_warning is None)
