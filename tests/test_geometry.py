"""尺寸计算：边框内边距与缩放尺寸。"""

from __future__ import annotations

import pytest

from framr.core.config import UNIT_PERCENT, UNIT_PIXELS, BorderSpec, ProcessingConfig, ResizeSpec
from framr.core.exceptions import InvalidConfigurationError, InvalidGeometryError
from framr.core.geometry import (
    compute_border_insets,
    compute_output_dimensions,
    plan_geometry,
    round_half_up,
)
from framr.core.models import BorderInsets, Dimensions


def test_percent_border_on_landscape_photo() -> None:
    config = ProcessingConfig(border=BorderSpec(width=5, unit=UNIT_PERCENT, aspect_aware=False))

    plan = plan_geometry(4000, 3000, config)

    assert plan.insets == BorderInsets.uniform(150)
    assert plan.canvas == Dimensions(4300, 3300)


def test_pixel_border_is_used_as_is() -> None:
    insets = compute_border_insets(640, 480, BorderSpec(width=12, unit=UNIT_PIXELS))
    assert insets == BorderInsets.uniform(12)


def test_percent_rounds_half_up() -> None:
    # 50 * 5% = 2.5
    insets = compute_border_insets(50, 70, BorderSpec(width=5, unit=UNIT_PERCENT))
    assert insets == BorderInsets.uniform(3)
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4


def test_aspect_aware_wide_image_scales_left_and_right() -> None:
    border = BorderSpec(width=10, unit=UNIT_PIXELS, aspect_aware=True)

    insets = compute_border_insets(400, 200, border)

    assert insets == BorderInsets(top=10, right=20, bottom=10, left=20)


def test_aspect_aware_tall_image_scales_top_and_bottom() -> None:
    border = BorderSpec(width=10, unit=UNIT_PIXELS, aspect_aware=True)

    insets = compute_border_insets(200, 400, border)

    assert insets == BorderInsets(top=20, right=10, bottom=20, left=10)


def test_aspect_aware_square_image_is_uniform() -> None:
    border = BorderSpec(width=4, unit=UNIT_PERCENT, aspect_aware=True)
    assert compute_border_insets(500, 500, border) == BorderInsets.uniform(20)


def test_aspect_aware_rounds_each_axis_independently() -> None:
    border = BorderSpec(width=10, unit=UNIT_PIXELS, aspect_aware=True)

    insets = compute_border_insets(300, 200, border)

    assert insets == BorderInsets(top=10, right=15, bottom=10, left=15)


@pytest.mark.parametrize("size", [(0, 100), (100, 0), (0, 0)])
def test_zero_dimension_gives_degenerate_border(size: tuple[int, int]) -> None:
    border = BorderSpec(width=10, unit=UNIT_PERCENT, aspect_aware=True)
    assert compute_border_insets(*size, border) == BorderInsets.uniform(0)


def test_insets_are_non_negative_and_uniform_without_aspect() -> None:
    for width, height in [(1, 1), (7, 3), (3000, 4000), (1920, 1080), (0, 50)]:
        for percent in range(0, 101, 5):
            insets = compute_border_insets(width, height, BorderSpec(width=percent, unit=UNIT_PERCENT))
            assert min(insets.top, insets.right, insets.bottom, insets.left) >= 0
            assert insets.top == insets.right == insets.bottom == insets.left


def test_negative_border_width_is_rejected() -> None:
    with pytest.raises(InvalidConfigurationError):
        compute_border_insets(100, 100, BorderSpec(width=-1, unit=UNIT_PIXELS))


def test_disabled_resize_returns_original_size() -> None:
    resize = ResizeSpec(enabled=False, width=10, height=10)
    for size in [(1, 1), (4000, 3000), (17, 923)]:
        assert compute_output_dimensions(*size, resize) == Dimensions(*size)


def test_resize_width_only_keeps_aspect() -> None:
    resize = ResizeSpec(enabled=True, width=1000, maintain_aspect=True)
    assert compute_output_dimensions(4000, 3000, resize) == Dimensions(1000, 750)


def test_resize_height_only_keeps_aspect() -> None:
    resize = ResizeSpec(enabled=True, height=600, maintain_aspect=True)
    assert compute_output_dimensions(4000, 3000, resize) == Dimensions(800, 600)


def test_resize_both_sides_fits_inside() -> None:
    resize = ResizeSpec(enabled=True, width=1000, height=1000, maintain_aspect=True)
    assert compute_output_dimensions(4000, 3000, resize) == Dimensions(1000, 750)

    portrait = compute_output_dimensions(3000, 4000, resize)
    assert portrait == Dimensions(750, 1000)


def test_resize_neither_side_falls_back_to_original() -> None:
    resize = ResizeSpec(enabled=True, maintain_aspect=True)
    assert compute_output_dimensions(640, 480, resize) == Dimensions(640, 480)


def test_resize_percent_is_relative_to_original() -> None:
    resize = ResizeSpec(enabled=True, width=50, unit=UNIT_PERCENT, maintain_aspect=True)
    assert compute_output_dimensions(4000, 3000, resize) == Dimensions(2000, 1500)


def test_resize_without_aspect_defaults_missing_side() -> None:
    resize = ResizeSpec(enabled=True, width=500, maintain_aspect=False)
    assert compute_output_dimensions(4000, 3000, resize) == Dimensions(500, 3000)

    stretched = ResizeSpec(enabled=True, width=500, height=100, maintain_aspect=False)
    assert compute_output_dimensions(4000, 3000, stretched) == Dimensions(500, 100)


@pytest.mark.parametrize(
    "resize",
    [
        ResizeSpec(enabled=True, width=0, maintain_aspect=False),
        ResizeSpec(enabled=True, width=-10, maintain_aspect=True),
        ResizeSpec(enabled=True, width=1, unit=UNIT_PERCENT, maintain_aspect=False),
    ],
)
def test_non_positive_output_is_rejected(resize: ResizeSpec) -> None:
    with pytest.raises(InvalidGeometryError):
        compute_output_dimensions(10, 10, resize)


def test_border_is_computed_after_resize() -> None:
    config = ProcessingConfig(
        border=BorderSpec(width=10, unit=UNIT_PERCENT),
        resize=ResizeSpec(enabled=True, width=1000, maintain_aspect=True),
    )

    plan = plan_geometry(4000, 3000, config)

    assert plan.resized == Dimensions(1000, 750)
    assert plan.insets == BorderInsets.uniform(75)
    assert plan.canvas == Dimensions(1150, 900)
