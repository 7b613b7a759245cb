"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from framr.core.config import (
    UNIT_PERCENT,
    UNIT_PIXELS,
    VALID_FORMATS,
    BorderSpec,
    OutputSpec,
    ProcessingConfig,
    ResizeSpec,
    get_preset,
)
from framr.core.exceptions import DecodeFailedError, FramrError, InvalidConfigurationError
from framr.core.image_queue import ImageQueue
from framr.core.memory import estimate_footprint, format_file_size
from framr.core.packaging import save_archive, save_single
from framr.core.progress import ProgressUpdate
from framr.core.scanner import collect_image_paths
from framr.processing.orchestrator import BatchOrchestrator
from framr.utils.colors import resolve_color
from framr.utils.logging import setup_logging

app = typer.Typer(help="批量为图片添加纯色边框。")

LOGGER = logging.getLogger(__name__)


def _parse_unit(value: str) -> str:
    lowered = value.lower()
    if lowered in {"px", "pixel", "pixels"}:
        return UNIT_PIXELS
    if lowered in {"%", "percent", "pct"}:
        return UNIT_PERCENT
    raise typer.BadParameter("单位必须为 px 或 percent")


def _parse_color(value: str) -> str:
    try:
        return resolve_color(value)
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("处理图片", total=100)
        progress.update(task_id, completed=update.percent)
        if update.message:
            progress.log(update.message)

    return callback


def _load_queue(sources: List[Path], recursive: bool) -> ImageQueue:
    image_queue = ImageQueue()
    for path in collect_image_paths([p.expanduser() for p in sources], recursive=recursive):
        try:
            image_queue.add_path(path)
        except (DecodeFailedError, OSError) as exc:
            LOGGER.warning("无法加入队列 %s: %s", path, exc)
    return image_queue


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    preset: Optional[str] = typer.Option(None, "--preset", help="边框预设，如 white-5、black-10"),
    border_width: float = typer.Option(5.0, "--border-width", "-b", help="边框宽度"),
    border_unit: str = typer.Option("percent", "--border-unit", help="边框单位 px 或 percent"),
    color: str = typer.Option("#FFFFFF", "--color", "-c", help="边框颜色 (HEX 或预设名，如 \"Warm White\")"),
    aspect_aware: bool = typer.Option(False, "--aspect-aware/--uniform", help="按宽高比调整长边边框"),
    resize_width: Optional[float] = typer.Option(None, "--resize-width", help="缩放目标宽度"),
    resize_height: Optional[float] = typer.Option(None, "--resize-height", help="缩放目标高度"),
    resize_unit: str = typer.Option("px", "--resize-unit", help="缩放单位 px 或 percent"),
    keep_aspect: bool = typer.Option(True, "--keep-aspect/--stretch", help="缩放时保持宽高比"),
    output_format: str = typer.Option("original", "--format", "-f", help="输出格式 original/jpeg/png/webp"),
    quality: int = typer.Option(95, "--quality", "-q", min=1, max=100, help="有损格式的质量 1~100"),
    as_zip: bool = typer.Option(False, "--zip", help="把全部结果打包为一个 zip"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """为图片添加边框并导出。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)

    if output_format not in VALID_FORMATS:
        raise typer.BadParameter(f"输出格式必须为 {'/'.join(sorted(VALID_FORMATS))}")

    if preset:
        try:
            border = get_preset(preset).to_border()
        except KeyError as exc:
            raise typer.BadParameter(f"未知的预设: {preset}") from exc
    else:
        border = BorderSpec(
            width=border_width,
            unit=_parse_unit(border_unit),
            color=_parse_color(color),
            aspect_aware=aspect_aware,
        )

    config = ProcessingConfig(
        border=border,
        resize=ResizeSpec(
            enabled=resize_width is not None or resize_height is not None,
            width=resize_width,
            height=resize_height,
            unit=_parse_unit(resize_unit),
            maintain_aspect=keep_aspect,
        ),
        output=OutputSpec(format=output_format, quality=quality),
    )

    image_queue = _load_queue(source, recursive)
    if not len(image_queue):
        typer.echo("没有可处理的图片。")
        raise typer.Exit(code=1)
    if image_queue.memory_warning:
        typer.secho(image_queue.memory_warning.message, fg=typer.colors.YELLOW)

    output_dir = output.expanduser().resolve()
    failures: list[str] = []

    def on_item_error(image_id: str, message: str) -> None:
        item = image_queue.get(image_id)
        failures.append(f"{item.name if item else image_id}: {message}")

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    try:
        with BatchOrchestrator(progress_callback=_build_progress_callback(progress)) as orchestrator:
            with progress:
                results = orchestrator.run(image_queue.begin_run(), config, on_item_error=on_item_error)
    except InvalidConfigurationError as exc:
        image_queue.revert_processing()
        typer.secho(f"配置错误：{exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc

    try:
        if as_zip and results:
            archive_path = save_archive(results, output_dir)
            typer.echo(f"归档文件：{archive_path}")
        else:
            for result in results:
                save_single(result.data, result.filename, output_dir, conflict_strategy)
    except FramrError as exc:
        typer.secho(f"写出失败：{exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    for line in failures:
        typer.secho(f"失败 {line}", fg=typer.colors.RED, err=True)
    typer.echo(f"处理完成：成功 {len(results)} 张，失败 {len(failures)} 张。")


@app.command("estimate")
def estimate_cli(
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
) -> None:
    """估算处理这些图片所需的内存。"""

    setup_logging(logging.WARNING)
    image_queue = _load_queue(source, recursive)
    footprint = estimate_footprint(image_queue)
    typer.echo(f"{len(image_queue)} 张图片，预计内存占用 {format_file_size(footprint)}")
    if image_queue.memory_warning:
        typer.secho(image_queue.memory_warning.message, fg=typer.colors.YELLOW)


if __name__ == "__main__":
    app()
