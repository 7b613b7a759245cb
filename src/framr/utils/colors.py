"""颜色工具函数。"""

from __future__ import annotations

import re
from typing import Tuple

from framr.core.exceptions import InvalidConfigurationError

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

BLACK = "#000000"
WHITE = "#FFFFFF"

PRESET_COLORS: tuple[tuple[str, str], ...] = (
    ("Black", "#000000"),
    ("Charcoal", "#1A1A1A"),
    ("Dark Gray", "#333333"),
    ("Light Gray", "#F5F5F5"),
    ("Cool White", "#F0F8FF"),
    ("Warm White", "#FFFEF0"),
    ("Ivory", "#FFFFF0"),
    ("White", "#FFFFFF"),
)


def is_valid_hex(value: str) -> bool:
    """3 位或 6 位十六进制颜色，``#`` 可选。"""

    if not value:
        return False
    return HEX_COLOR_RE.fullmatch(value) is not None


def normalize_hex(value: str) -> str:
    """规范化为 ``#RRGGBB`` 大写形式。"""

    if not is_valid_hex(value):
        raise InvalidConfigurationError(f"无法解析颜色值: {value}")

    hex_value = value.lstrip("#")
    if len(hex_value) == 3:
        hex_value = "".join(ch * 2 for ch in hex_value)
    return "#" + hex_value.upper()


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """将 HEX 字符串解析为 RGB 三元组。"""

    if not value:
        raise InvalidConfigurationError("颜色值不能为空")

    hex_value = normalize_hex(value.strip())
    r = int(hex_value[1:3], 16)
    g = int(hex_value[3:5], 16)
    b = int(hex_value[5:7], 16)
    return r, g, b


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{channel:02X}" for channel in (r, g, b))


def contrast_color(value: str) -> str:
    """返回与给定颜色对比度更高的黑色或白色。"""

    r, g, b = parse_hex_color(value)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return BLACK if luminance > 0.5 else WHITE


def resolve_color(value: str) -> str:
    """接受 HEX 或预设颜色名（不区分大小写），返回规范化的 HEX。"""

    lowered = value.strip().lower()
    for name, hex_value in PRESET_COLORS:
        if name.lower() == lowered:
            return hex_value
    return normalize_hex(value.strip())
