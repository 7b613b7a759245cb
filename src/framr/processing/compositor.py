"""边框合成：缩放、填充边框色、居中绘制并编码。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from PIL import Image

from framr.core.config import FORMAT_ORIGINAL, VALID_FORMATS, VALID_UNITS, OutputSpec, ProcessingConfig
from framr.core.exceptions import InvalidConfigurationError
from framr.core.geometry import GeometryPlan, plan_geometry
from framr.processing.codec import (
    LOSSY_MIMES,
    PixelBuffer,
    encode_image,
    get_file_extension,
    get_mime_type,
    strip_extension,
)
from framr.utils.colors import is_valid_hex, parse_hex_color

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

ProgressCallback = Optional[Callable[[int], None]]


@dataclass(slots=True)
class CompositeResult:
    data: bytes = field(repr=False)
    filename: str
    mime_type: str
    geometry: GeometryPlan


def validate_config(config: ProcessingConfig) -> None:
    """检查与图片尺寸无关的配置项。"""

    border = config.border
    if not is_valid_hex(border.color):
        raise InvalidConfigurationError(f"无法解析边框颜色: {border.color}")
    if border.width < 0:
        raise InvalidConfigurationError(f"边框宽度不能为负数: {border.width}")
    if border.unit not in VALID_UNITS:
        raise InvalidConfigurationError(f"未知的边框单位: {border.unit}")
    if config.resize.unit not in VALID_UNITS:
        raise InvalidConfigurationError(f"未知的缩放单位: {config.resize.unit}")
    if config.output.format not in VALID_FORMATS:
        raise InvalidConfigurationError(f"未知的输出格式: {config.output.format}")
    if not 1 <= config.output.quality <= 100:
        raise InvalidConfigurationError(f"quality 必须在 1~100 之间: {config.output.quality}")


def resolve_output_format(source_name: str, output: OutputSpec) -> Tuple[str, str]:
    """返回 (mime, 扩展名)。``original`` 沿用源文件扩展名。"""

    if output.format == FORMAT_ORIGINAL:
        extension = get_file_extension(source_name)
        return get_mime_type(extension), extension

    extension = "jpg" if output.format == "jpeg" else output.format
    return get_mime_type(extension), extension


def generate_output_filename(source_name: str, output: OutputSpec) -> str:
    """``{原文件名去扩展名}_bordered.{扩展名}``。"""

    _, extension = resolve_output_format(source_name, output)
    return f"{strip_extension(source_name)}_bordered.{extension}"


def composite(
    pixels: PixelBuffer,
    config: ProcessingConfig,
    source_name: str,
    progress: ProgressCallback = None,
) -> CompositeResult:
    """对单张已解码图片执行缩放 + 边框合成 + 编码。

    ``pixels`` 在函数返回前被释放。
    """

    _report(progress, 10)
    plan = plan_geometry(pixels.width, pixels.height, config)
    _report(progress, 30)

    source = pixels.to_image()
    pixels.release()
    try:
        canvas = _render(source, plan, parse_hex_color(config.border.color), progress)
    finally:
        source.close()
    _report(progress, 70)

    mime_type, _ = resolve_output_format(source_name, config.output)
    quality = config.output.quality / 100 if mime_type in LOSSY_MIMES else None
    try:
        data = encode_image(canvas, mime_type, quality)
    finally:
        canvas.close()
    _report(progress, 90)

    filename = generate_output_filename(source_name, config.output)
    LOGGER.debug(
        "合成完成 %s -> %s (%dx%d)", source_name, filename, plan.canvas.width, plan.canvas.height
    )
    return CompositeResult(data=data, filename=filename, mime_type=mime_type, geometry=plan)


def _render(
    source: Image.Image,
    plan: GeometryPlan,
    fill: Tuple[int, int, int],
    progress: ProgressCallback = None,
) -> Image.Image:
    """生成填充边框色的画布，并把缩放后的图片绘制到 (left, top)。"""

    resized_size = (plan.resized.width, plan.resized.height)
    if source.size != resized_size:
        resized = source.resize(resized_size, _RESAMPLING.LANCZOS)
    else:
        resized = source

    canvas = Image.new("RGB", (plan.canvas.width, plan.canvas.height), fill)
    _report(progress, 50)
    # 透明像素处露出底下的边框色
    canvas.paste(resized, (plan.insets.left, plan.insets.top), mask=resized)

    if resized is not source:
        resized.close()
    return canvas


def _report(progress: ProgressCallback, value: int) -> None:
    if progress is not None:
        progress(value)
