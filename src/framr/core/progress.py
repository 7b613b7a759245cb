"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。

    ``percent`` 为整体进度 (0~100)，已把当前图片的内部进度折算进去。
    """

    total: int
    completed: int
    percent: float
    current_index: int = 0
    message: Optional[str] = None
    status: str = "running"
