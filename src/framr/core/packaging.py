"""结果打包与写出：文件名去重、zip 归档与单文件保存。"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime
from itertools import count
from pathlib import Path
from typing import Callable, Iterable, Optional

from framr.core.exceptions import ArchiveError, InvalidConfigurationError
from framr.core.models import ProcessingResult
from framr.processing.codec import EXTENSION_RE

LOGGER = logging.getLogger(__name__)

ARCHIVE_PREFIX = "framr-export"
COMPRESSION_LEVEL = 6
VALID_CONFLICT_STRATEGIES = {"overwrite", "skip", "rename"}

ArchiveProgress = Optional[Callable[[float], None]]


@dataclass(slots=True)
class SaveOutcome:
    """单文件保存的结果。"""

    path: Path
    action: str  # write | overwrite | skip | rename


def dedupe_filenames(filenames: Iterable[str]) -> list[str]:
    """同名文件在扩展名前依次插入 ``_1``、``_2`` …… 直到唯一。"""

    used: set[str] = set()
    unique: list[str] = []
    for filename in filenames:
        candidate = filename
        if candidate in used:
            base = EXTENSION_RE.sub("", filename)
            match = EXTENSION_RE.search(filename)
            extension = match.group(0) if match else ""
            for idx in count(1):
                candidate = f"{base}_{idx}{extension}"
                if candidate not in used:
                    break
        used.add(candidate)
        unique.append(candidate)
    return unique


def build_archive(results: list[ProcessingResult], progress_callback: ArchiveProgress = None) -> bytes:
    """把结果按顺序写入 zip（DEFLATE），返回归档字节。"""

    names = dedupe_filenames(result.filename for result in results)
    buffer = io.BytesIO()
    total = len(results)

    try:
        with zipfile.ZipFile(
            buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL
        ) as archive:
            for idx, (name, result) in enumerate(zip(names, results), start=1):
                archive.writestr(name, result.data)
                if progress_callback is not None:
                    progress_callback(idx / total * 100)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"生成归档失败: {exc}") from exc

    if progress_callback is not None and total == 0:
        progress_callback(100.0)
    return buffer.getvalue()


def generate_archive_filename(now: Optional[datetime] = None) -> str:
    """``framr-export-YYYY-MM-DD-HHMM.zip``，使用本地时间。"""

    moment = now or datetime.now()
    return f"{ARCHIVE_PREFIX}-{moment:%Y-%m-%d}-{moment:%H%M}.zip"


def save_archive(
    results: list[ProcessingResult],
    output_dir: Path,
    filename: Optional[str] = None,
    progress_callback: ArchiveProgress = None,
) -> Path:
    payload = build_archive(results, progress_callback)
    outcome = save_single(payload, filename or generate_archive_filename(), output_dir)
    LOGGER.info("归档已写出：%s（%d 个文件）", outcome.path, len(results))
    return outcome.path


def save_single(
    data: bytes,
    filename: str,
    output_dir: Path,
    conflict_strategy: str = "rename",
) -> SaveOutcome:
    """把字节写入 ``output_dir/filename``，按冲突策略处理已存在的文件。"""

    if conflict_strategy not in VALID_CONFLICT_STRATEGIES:
        raise InvalidConfigurationError(f"未知的冲突策略: {conflict_strategy}")

    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / filename
    action = "write"

    if destination.exists():
        if conflict_strategy == "skip":
            LOGGER.info("跳过输出（已存在）：%s", destination)
            return SaveOutcome(path=destination, action="skip")
        if conflict_strategy == "rename":
            destination = _generate_renamed_path(destination)
            action = "rename"
        else:
            action = "overwrite"

    try:
        destination.write_bytes(data)
    except OSError as exc:
        raise ArchiveError(f"写入文件失败: {destination}") from exc
    return SaveOutcome(path=destination, action=action)


def _generate_renamed_path(destination: Path) -> Path:
    """在 rename 策略下生成新的文件名。"""

    stem = destination.stem
    suffix = destination.suffix

    for idx in count(1):
        candidate = destination.with_name(f"{stem}_{idx}{suffix}")
        if not candidate.exists():
            return candidate

    # 理论上不会执行到此处
    return destination
