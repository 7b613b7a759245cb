"""图片解码、编码与像素缓冲区。

解码结果统一为 RGBA ``uint8`` 的 numpy 数组，包装在 :class:`PixelBuffer` 中。
缓冲区通过 :meth:`PixelBuffer.transfer` 移交所有权，移交后原句柄不可再用。
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from framr.core.exceptions import BufferDetachedError, DecodeFailedError, EncodeFailedError

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"
DEFAULT_MIME = "image/jpeg"

MIME_BY_EXTENSION = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
}

PIL_FORMAT_BY_MIME = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/tiff": "TIFF",
}

LOSSY_MIMES = {"image/jpeg", "image/webp"}

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".webp"}

EXTENSION_RE = re.compile(r"\.([^.]+)$")


class PixelBuffer:
    """独占所有权的 RGBA 像素数组。"""

    __slots__ = ("_array",)

    def __init__(self, array: np.ndarray) -> None:
        if array.ndim != 3 or array.shape[2] != 4 or array.dtype != np.uint8:
            raise ValueError(f"需要 HxWx4 的 uint8 数组，实际为 {array.shape} {array.dtype}")
        self._array: Optional[np.ndarray] = array

    @property
    def detached(self) -> bool:
        return self._array is None

    @property
    def array(self) -> np.ndarray:
        if self._array is None:
            raise BufferDetachedError("像素缓冲区已被转移或释放")
        return self._array

    @property
    def width(self) -> int:
        return self.array.shape[1]

    @property
    def height(self) -> int:
        return self.array.shape[0]

    def transfer(self) -> "PixelBuffer":
        """把数组移交给新的句柄，当前句柄随即失效。"""

        moved = PixelBuffer(self.array)
        self._array = None
        return moved

    def release(self) -> None:
        self._array = None

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.array)


@dataclass(slots=True)
class DecodedImage:
    pixels: PixelBuffer
    width: int
    height: int


def probe_dimensions(data: bytes) -> Tuple[int, int]:
    """只读取头部信息获取宽高（已考虑 EXIF 方向）。"""

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            orientation = img.getexif().get(0x0112, 1)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise DecodeFailedError(f"无法识别图像: {exc}") from exc

    # 5~8 为带 90 度旋转的方向值
    if orientation in {5, 6, 7, 8}:
        return height, width
    return width, height


def decode_image(data: bytes) -> DecodedImage:
    """将编码字节解码为 RGBA 像素缓冲区。"""

    if not data:
        raise DecodeFailedError("输入为空")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        LOGGER.debug("无法解码图像: %s", exc)
        raise DecodeFailedError(f"无法解码图像: {exc}") from exc

    array = np.asarray(rgba, dtype=np.uint8).copy()
    rgba.close()
    return DecodedImage(pixels=PixelBuffer(array), width=array.shape[1], height=array.shape[0])


def encode_image(image: Image.Image, mime_type: str, quality: Optional[float] = None) -> bytes:
    """将画布编码为指定格式的字节。

    ``quality`` 为 0.0~1.0 的标量，仅对 JPEG/WebP 生效。
    """

    image_format = PIL_FORMAT_BY_MIME.get(mime_type)
    if not image_format:
        raise EncodeFailedError(f"不支持的输出格式: {mime_type}")

    save_params: dict = {}
    image_to_save = image
    if image_format == "JPEG" and image.mode != "RGB":
        image_to_save = image.convert("RGB")
    elif image.mode not in {"RGB", "RGBA"}:
        image_to_save = image.convert("RGB")

    if mime_type in LOSSY_MIMES and quality is not None:
        save_params["quality"] = max(1, min(100, int(round(quality * 100))))

    buffer = io.BytesIO()
    try:
        image_to_save.save(buffer, format=image_format, **save_params)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeFailedError(f"编码失败 ({mime_type}): {exc}") from exc
    finally:
        if image_to_save is not image:
            image_to_save.close()

    data = buffer.getvalue()
    if not data:
        raise EncodeFailedError(f"编码结果为空 ({mime_type})")
    return data


def get_file_extension(filename: str) -> str:
    """返回小写扩展名（不含点），没有扩展名时回退为 ``jpg``。"""

    match = EXTENSION_RE.search(filename)
    if not match:
        return DEFAULT_EXTENSION
    return match.group(1).lower()


def strip_extension(filename: str) -> str:
    return EXTENSION_RE.sub("", filename)


def get_mime_type(extension: str) -> str:
    return MIME_BY_EXTENSION.get(extension.lower(), DEFAULT_MIME)


def is_supported_filename(filename: str) -> bool:
    return PurePath(filename).suffix.lower() in SUPPORTED_EXTENSIONS
