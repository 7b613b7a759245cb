"""文件扫描与筛选逻辑。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence

from framr.processing.codec import is_supported_filename


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def collect_image_paths(sources: Sequence[Path], recursive: bool = True) -> list[Path]:
    """扫描文件或目录，返回受支持的图片路径。

    目录内的文件按路径排序；显式给出的多个来源保持给定顺序。
    """

    collected: list[Path] = []
    seen_paths: set[Path] = set()

    for root in sources:
        resolved_root = root.resolve()
        found = [
            candidate
            for candidate in _iter_candidate_files(resolved_root, recursive)
            if is_supported_filename(candidate.name)
        ]
        found.sort(key=lambda p: str(p).lower())
        for candidate in found:
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)
            collected.append(candidate)

    return collected
