"""尺寸计算：缩放后的输出尺寸与边框内边距。

这里只有纯函数，不做任何 I/O。先缩放、再按缩放后的尺寸计算边框，
两者相互独立。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from framr.core.config import UNIT_PERCENT, VALID_UNITS, BorderSpec, ProcessingConfig, ResizeSpec
from framr.core.exceptions import InvalidConfigurationError, InvalidGeometryError
from framr.core.models import BorderInsets, Dimensions


@dataclass(frozen=True, slots=True)
class GeometryPlan:
    """单张图片的完整几何结果。"""

    resized: Dimensions
    insets: BorderInsets
    canvas: Dimensions


def round_half_up(value: float) -> int:
    """四舍五入到整数（.5 总是向上），避免 round() 的银行家舍入。"""

    return int(math.floor(value + 0.5))


def compute_border_insets(width: int, height: int, border: BorderSpec) -> BorderInsets:
    """根据边框配置计算四边厚度。

    百分比单位以较短边为基准；``aspect_aware`` 时较长方向两侧的厚度按宽高比放大。
    宽或高为 0 时视为退化输入，返回统一厚度。
    """

    if border.unit not in VALID_UNITS:
        raise InvalidConfigurationError(f"未知的边框单位: {border.unit}")
    if border.width < 0:
        raise InvalidConfigurationError(f"边框宽度不能为负数: {border.width}")
    if width < 0 or height < 0:
        raise InvalidGeometryError(f"图片尺寸不能为负数: {width}x{height}")

    if border.unit == UNIT_PERCENT:
        base = min(width, height)
        magnitude = round_half_up(base * border.width / 100)
    else:
        magnitude = round_half_up(border.width)

    if not border.aspect_aware or width == 0 or height == 0:
        return BorderInsets.uniform(magnitude)

    aspect_ratio = width / height
    if aspect_ratio > 1:
        horizontal = round_half_up(magnitude * aspect_ratio)
        return BorderInsets(top=magnitude, right=horizontal, bottom=magnitude, left=horizontal)
    if aspect_ratio < 1:
        vertical = round_half_up(magnitude / aspect_ratio)
        return BorderInsets(top=vertical, right=magnitude, bottom=vertical, left=magnitude)
    return BorderInsets.uniform(magnitude)


def compute_output_dimensions(orig_width: int, orig_height: int, resize: ResizeSpec) -> Dimensions:
    """计算缩放后的输出尺寸。

    结果中出现非正数时抛出 :class:`InvalidGeometryError`，不做截断。
    """

    if not resize.enabled:
        return Dimensions(orig_width, orig_height)

    if resize.unit not in VALID_UNITS:
        raise InvalidConfigurationError(f"未知的缩放单位: {resize.unit}")

    target_w = _to_pixels(resize.width, orig_width, resize.unit)
    target_h = _to_pixels(resize.height, orig_height, resize.unit)

    if resize.maintain_aspect and orig_width > 0 and orig_height > 0:
        aspect_ratio = orig_width / orig_height
        if target_w is not None and target_h is None:
            target_h = round_half_up(target_w / aspect_ratio)
        elif target_h is not None and target_w is None:
            target_w = round_half_up(target_h * aspect_ratio)
        elif target_w is not None and target_h is not None:
            # fit-inside：取较小的缩放比
            ratio = min(target_w / orig_width, target_h / orig_height)
            target_w = round_half_up(orig_width * ratio)
            target_h = round_half_up(orig_height * ratio)

    width = orig_width if target_w is None else target_w
    height = orig_height if target_h is None else target_h

    if width <= 0 or height <= 0:
        raise InvalidGeometryError(
            f"缩放配置导致非正输出尺寸 {width}x{height}（原图 {orig_width}x{orig_height}）"
        )
    return Dimensions(width, height)


def compute_canvas_size(width: int, height: int, insets: BorderInsets) -> Dimensions:
    return Dimensions(width + insets.left + insets.right, height + insets.top + insets.bottom)


def plan_geometry(orig_width: int, orig_height: int, config: ProcessingConfig) -> GeometryPlan:
    """依次计算缩放尺寸、边框与画布尺寸。"""

    resized = compute_output_dimensions(orig_width, orig_height, config.resize)
    insets = compute_border_insets(resized.width, resized.height, config.border)
    canvas = compute_canvas_size(resized.width, resized.height, insets)
    if canvas.width <= 0 or canvas.height <= 0:
        raise InvalidGeometryError(f"画布尺寸非法: {canvas.width}x{canvas.height}")
    return GeometryPlan(resized=resized, insets=insets, canvas=canvas)


def _to_pixels(value: Optional[float], original: int, unit: str) -> Optional[int]:
    if value is None:
        return None
    if unit == UNIT_PERCENT:
        return round_half_up(original * value / 100)
    return round_half_up(value)
