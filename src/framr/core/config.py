"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

SizeUnit = str  # "px" | "percent"，此阶段使用简单别名。
OutputFormat = str  # "original" | "jpeg" | "png" | "webp"

UNIT_PIXELS = "px"
UNIT_PERCENT = "percent"
VALID_UNITS = {UNIT_PIXELS, UNIT_PERCENT}

FORMAT_ORIGINAL = "original"
VALID_FORMATS = {FORMAT_ORIGINAL, "jpeg", "png", "webp"}

DEFAULT_BORDER_COLOR = "#FFFFFF"
DEFAULT_QUALITY = 95


@dataclass(slots=True)
class BorderSpec:
    """纯色边框配置。

    ``width`` 始终相对于缩放之后的图片尺寸解释。
    """

    width: float = 5
    unit: SizeUnit = UNIT_PERCENT
    color: str = DEFAULT_BORDER_COLOR
    aspect_aware: bool = False


@dataclass(slots=True)
class ResizeSpec:
    """边框之前的可选缩放配置。"""

    enabled: bool = False
    width: Optional[float] = None
    height: Optional[float] = None
    unit: SizeUnit = UNIT_PIXELS
    maintain_aspect: bool = True


@dataclass(slots=True)
class OutputSpec:
    """输出编码配置，quality 仅对有损格式生效。"""

    format: OutputFormat = FORMAT_ORIGINAL
    quality: int = DEFAULT_QUALITY


@dataclass(slots=True)
class ProcessingConfig:
    """单次批处理使用的完整配置。"""

    border: BorderSpec = field(default_factory=BorderSpec)
    resize: ResizeSpec = field(default_factory=ResizeSpec)
    output: OutputSpec = field(default_factory=OutputSpec)


@dataclass(frozen=True, slots=True)
class BorderPreset:
    """快捷边框预设。"""

    preset_id: str
    name: str
    border: BorderSpec
    description: str = ""

    def to_border(self) -> BorderSpec:
        """返回边框配置的副本，修改副本不影响预设表。"""

        return replace(self.border)


def _preset(preset_id: str, name: str, width: float, color: str, description: str) -> BorderPreset:
    return BorderPreset(
        preset_id=preset_id,
        name=name,
        border=BorderSpec(width=width, unit=UNIT_PERCENT, color=color, aspect_aware=False),
        description=description,
    )


BORDER_PRESETS: tuple[BorderPreset, ...] = (
    _preset("white-3", "White 3%", 3, "#FFFFFF", "Minimal white border"),
    _preset("white-5", "White 5%", 5, "#FFFFFF", "Standard white border"),
    _preset("white-10", "White 10%", 10, "#FFFFFF", "Prominent white border"),
    _preset("black-3", "Black 3%", 3, "#000000", "Minimal black border"),
    _preset("black-5", "Black 5%", 5, "#000000", "Standard black border"),
    _preset("black-10", "Black 10%", 10, "#000000", "Prominent black border"),
)


def get_preset(preset_id: str) -> BorderPreset:
    """按 id 查找预设，未找到时抛出 KeyError。"""

    for preset in BORDER_PRESETS:
        if preset.preset_id == preset_id:
            return preset
    raise KeyError(preset_id)
